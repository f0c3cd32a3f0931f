import os
import logging
import requests
import uvicorn
from dotenv import load_dotenv
from fastapi import HTTPException, Query, FastAPI, status, Depends, Header, Request, Response, BackgroundTasks
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from typing import Optional
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from . import (
    attendance,
    clubs,
    database,
    errors,
    events,
    feedback,
    membership,
    models,
    registration,
    schemas,
    users,
    utils,
)
from .models import ClubCategory, EventStatus, EventType

models.Base.metadata.create_all(bind=database.engine)

load_dotenv()

VALID_API_KEY = os.getenv("API_SECRET_KEY")
NEXTJS_URL = os.getenv("NEXTJS_APP_URL", "http://localhost:3000")
REVALIDATION_TOKEN = os.getenv("REVALIDATION_TOKEN")

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler('app.log'),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

# request limiter
limiter = Limiter(key_func=get_remote_address)

# create api
api = FastAPI(title="Club Portal API")

# add limiter
api.state.limiter = limiter
api.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore

# middlewares
origins = [
    os.getenv("FRONTEND_URL", "http://localhost:3000"),
]

api.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


# helper
async def verify_api_key(x_api_key: str = Header(None)):
    if x_api_key != VALID_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid API Key")


# helper
def revalidate_frontend(tags: list[str]):
    """
    Tells Next.js to purge cache for a list of tags.
    Usage: revalidate_frontend(["events", "clubs"])
    """
    if not tags or not REVALIDATION_TOKEN:
        return

    tag_str = ",".join(tags)

    try:
        url = f"{NEXTJS_URL}/api/revalidate?tags={tag_str}&secret={REVALIDATION_TOKEN}"

        # Fire and Forget (don't wait too long)
        response = requests.post(url, timeout=2)

        if response.status_code == 200:
            logger.info(f"Revalidation triggered for: {tags}")
        else:
            logger.info(f"Revalidation failed: {response.text}")

    except requests.RequestException as e:
        logger.info(f"Error triggering revalidation: {e}")


# helper
def to_http_exception(pe: errors.PortalError) -> HTTPException:
    """Domain error -> HTTP error with the stable code in the detail"""
    return HTTPException(status_code=pe.status_code, detail=pe.to_detail())


# helper
def internal_error(db: Session, where: str, e: Exception) -> HTTPException:
    logger.info("Exception occured in %s: %s", where, e)
    db.rollback()
    return HTTPException(status_code=500, detail="Internal Server Error. Please contact support.")


# helper
def map_membership_to_response(m: models.ClubMembership) -> schemas.MembershipOut:
    return schemas.MembershipOut(
        id=m.id,
        club_id=m.club_id,
        user_id=m.user_id,
        user_name=m.user.name if m.user else None,
        role=m.role,
        joined_at=m.joined_at,
        is_active=bool(m.is_active),
    )


# helper
def map_club_to_response(club: models.Club, with_members: bool = False) -> schemas.ClubDetail:
    """Convert Club model to ClubDetail schema."""
    return schemas.ClubDetail(
        id=club.id,
        slug=club.slug,
        name=club.name,
        description=club.description,
        category=club.category,
        coordinator_id=club.coordinator_id,
        coordinator_name=club.coordinator.name if club.coordinator else None,
        contact_email=club.contact_email,
        meeting_schedule=club.meeting_schedule,
        is_active=bool(club.is_active),
        member_count=club.member_count,
        created_at=club.created_at,
        members=[map_membership_to_response(m) for m in club.active_members] if with_members else [],
    )


# helper
def map_event_to_response(event: models.Event) -> schemas.EventOut:
    """Convert Event model to EventOut schema."""
    return schemas.EventOut(
        id=event.id,
        slug=event.slug,
        club_id=event.club_id,
        club_name=event.club.name if event.club else "Unknown",
        title=event.title,
        description=event.description,
        event_type=event.event_type,
        event_date=event.event_date,
        start_time=event.start_time,
        end_time=event.end_time,
        venue=event.venue,
        max_participants=event.max_participants,
        registration_deadline=event.registration_deadline,
        status=event.status,
        cancellation_reason=event.cancellation_reason,
        registered_count=event.active_count,
        available_spots=event.available_spots,
        is_full=event.is_full,
        registration_status=events.registration_status(event),
    )


# helper
def map_registration_to_response(r: models.EventRegistration) -> schemas.RegistrationOut:
    return schemas.RegistrationOut(
        id=r.id,
        event_id=r.event_id,
        user_id=r.user_id,
        user_name=r.user.name if r.user else None,
        registration_date=r.registration_date,
        status=r.status,
    )


@api.get("/health")
async def health_check():
    return {"status": "healthy"}


# --- AUTH ---

@api.post("/signup", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
def create_user(
    request: Request,
    response: Response,
    user: schemas.UserCreate,
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    # self sign-up always yields a student account
    try:
        new_user = users.create_user(db, user)
        return schemas.UserResponse(success=True, data=schemas.UserOut.model_validate(new_user))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "signup", e)


@api.post("/login", response_model=schemas.Token)
@limiter.limit("10/minute")
def login_for_access_token(
    request: Request,
    response: Response,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    # OAuth2PasswordRequestForm expects 'username', we treat it as 'email'
    user = users.authenticate(db, form_data.username, form_data.password)

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = utils.create_access_token(data={"sub": user.id})
    return {"access_token": access_token, "token_type": "bearer"}


# after login, returns current user
@api.get("/users/me", response_model=schemas.UserOut)
def read_users_me(current_user: models.User = Depends(utils.get_current_user)):
    return current_user


# --- USERS ---

@api.post("/admin/users", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
def admin_create_user(
    user_in: schemas.AdminUserCreate,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        new_user = users.admin_create_user(db, current_user, user_in)
        return schemas.UserResponse(success=True, data=schemas.UserOut.model_validate(new_user))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "admin create user", e)


@api.patch("/admin/users/{user_id}/status", response_model=schemas.UserResponse)
def set_user_status(
    user_id: str,
    status_update: schemas.UserStatusUpdate,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        user = users.set_user_active(db, current_user, user_id, status_update.is_active)
        return schemas.UserResponse(success=True, data=schemas.UserOut.model_validate(user))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "set user status", e)


@api.get("/users/{user_id}/clubs", response_model=schemas.MembersResponse)
def get_user_clubs(
    user_id: str,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        rows = users.list_user_memberships(db, current_user, user_id)
        return schemas.MembersResponse(success=True, data=[map_membership_to_response(m) for m in rows])
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "get user clubs", e)


@api.get("/users/{user_id}/registrations", response_model=schemas.RegistrationsResponse)
def get_user_registrations(
    user_id: str,
    include_cancelled: bool = False,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        rows = users.list_user_registrations(db, current_user, user_id, include_cancelled=include_cancelled)
        return schemas.RegistrationsResponse(success=True, data=[map_registration_to_response(r) for r in rows])
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "get user registrations", e)


@api.put("/users/{user_id}", response_model=schemas.UserResponse)
def update_user_profile(
    user_id: str,
    profile_in: schemas.UserProfileUpdate,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        user = users.update_profile(db, current_user, user_id, profile_in)
        return schemas.UserResponse(success=True, data=schemas.UserOut.model_validate(user))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "update user profile", e)


# --- CLUBS ---

@api.get("/clubs", response_model=schemas.AllClubsResponse)
def get_all_clubs(
    category: Optional[ClubCategory] = None,
    search: Optional[str] = None,
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    """
    Public directory of all active clubs.
    """
    try:
        result = clubs.list_clubs(db, category=category, search=search)
        return schemas.AllClubsResponse(success=True, data=[map_club_to_response(c) for c in result])
    except Exception as e:
        raise internal_error(db, "get all clubs", e)


@api.get("/clubs/{club_id}", response_model=schemas.ClubApiResponse)
def handle_club(club_id: str, db: Session = Depends(database.get_db), token: str = Depends(verify_api_key)):
    try:
        club = clubs.get_club(db, club_id)
        return schemas.ClubApiResponse(success=True, data=map_club_to_response(club, with_members=True))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "handle club", e)


@api.get("/clubs/{club_id}/members", response_model=schemas.MembersResponse)
def get_club_members(
    club_id: str,
    include_inactive: bool = False,
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        rows = membership.get_roster(db, club_id, include_inactive=include_inactive)
        return schemas.MembersResponse(success=True, data=[map_membership_to_response(m) for m in rows])
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "get club members", e)


@api.get("/clubs/{club_id}/stats", response_model=schemas.ClubStatsResponse)
def get_club_stats(club_id: str, db: Session = Depends(database.get_db), token: str = Depends(verify_api_key)):
    try:
        return schemas.ClubStatsResponse(success=True, data=clubs.club_stats(db, club_id))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "get club stats", e)


@api.post("/clubs", response_model=schemas.ClubApiResponse, status_code=status.HTTP_201_CREATED)
def create_club(
    club_in: schemas.ClubCreate,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        club = clubs.create_club(db, current_user, club_in)
        bg_tasks.add_task(revalidate_frontend, ["clubs"])
        return schemas.ClubApiResponse(success=True, data=map_club_to_response(club, with_members=True))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "create club", e)


# club update (profile update) by admin or a teacher with authority over the club
@api.patch("/clubs/{club_id}", response_model=schemas.ClubApiResponse)
def update_club(
    club_id: str,
    club_update: schemas.ClubUpdate,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        club = clubs.update_club(db, current_user, club_id, club_update)
        bg_tasks.add_task(revalidate_frontend, ["clubs", "events"])
        return schemas.ClubApiResponse(success=True, data=map_club_to_response(club, with_members=True))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "update club", e)


@api.delete("/clubs/{club_id}")
def delete_club(
    club_id: str,
    bg_tasks: BackgroundTasks,
    hard: bool = False,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    """
    Soft delete (deactivate) by default, ?hard=true removes the club.
    """
    try:
        if hard:
            clubs.delete_club(db, current_user, club_id)
        else:
            clubs.deactivate_club(db, current_user, club_id)
        bg_tasks.add_task(revalidate_frontend, ["clubs", "events"])
        return {"success": True}
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "delete club", e)


@api.put("/clubs/{club_id}/coordinator", response_model=schemas.ClubApiResponse)
def set_club_coordinator(
    club_id: str,
    coordinator_update: schemas.CoordinatorUpdate,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        club = clubs.set_coordinator(db, current_user, club_id, coordinator_update.coordinator_id)
        bg_tasks.add_task(revalidate_frontend, ["clubs"])
        return schemas.ClubApiResponse(success=True, data=map_club_to_response(club, with_members=True))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "set club coordinator", e)


# --- MEMBERSHIP ---

@api.post("/clubs/{club_id}/join", response_model=schemas.MembershipResponse)
def join_club(
    club_id: str,
    bg_tasks: BackgroundTasks,
    user_id: Optional[str] = Query(None, description="Acting on behalf of another user (admin only)"),
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        row = membership.join_club(db, current_user, club_id, user_id or current_user.id)
        bg_tasks.add_task(revalidate_frontend, ["clubs"])
        return schemas.MembershipResponse(success=True, data=map_membership_to_response(row))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "join club", e)


@api.post("/clubs/{club_id}/leave")
def leave_club(
    club_id: str,
    bg_tasks: BackgroundTasks,
    user_id: Optional[str] = Query(None, description="Acting on behalf of another user (admin only)"),
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        membership.leave_club(db, current_user, club_id, user_id or current_user.id)
        bg_tasks.add_task(revalidate_frontend, ["clubs"])
        return {"success": True}
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "leave club", e)


@api.patch("/clubs/{club_id}/members/{user_id}", response_model=schemas.ClubApiResponse)
def promote_member(
    club_id: str,
    user_id: str,
    role_update: schemas.MemberRoleUpdate,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        club = membership.promote_member(db, current_user, club_id, user_id, role_update.role)
        return schemas.ClubApiResponse(success=True, data=map_club_to_response(club, with_members=True))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "promote member", e)


# --- EVENTS ---

@api.get("/events", response_model=schemas.MultiEventResponse)
def get_events(
    club_id: Optional[str] = None,
    status: Optional[EventStatus] = None,
    search: Optional[str] = None,
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        result = events.list_events(db, club_id=club_id, status=status, search=search)
        return schemas.MultiEventResponse(success=True, data=[map_event_to_response(e) for e in result])
    except Exception as e:
        raise internal_error(db, "get events", e)


# registered before /events/{event_id} so the literal paths win
@api.get("/events/upcoming", response_model=schemas.MultiEventResponse)
def get_upcoming_events(
    limit: int = Query(10, ge=1, le=100),
    club_id: Optional[str] = None,
    event_type: Optional[EventType] = None,
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        result = events.list_upcoming(db, limit=limit, club_id=club_id, event_type=event_type)
        return schemas.MultiEventResponse(success=True, data=[map_event_to_response(e) for e in result])
    except Exception as e:
        raise internal_error(db, "get upcoming events", e)


@api.get("/events/stats", response_model=schemas.EventStatsResponse)
def get_event_stats(
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        return schemas.EventStatsResponse(success=True, data=events.event_stats(db, current_user))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "get event stats", e)


@api.get("/events/{event_id}", response_model=schemas.SingleEventResponse)
def handle_event(event_id: str, db: Session = Depends(database.get_db), token: str = Depends(verify_api_key)):
    try:
        event = events.get_event(db, event_id)
        return schemas.SingleEventResponse(success=True, data=map_event_to_response(event))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "handle event", e)


@api.post("/events", response_model=schemas.SingleEventResponse, status_code=status.HTTP_201_CREATED)
def create_event(
    event_in: schemas.EventCreate,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        event = events.create_event(db, current_user, event_in)
        bg_tasks.add_task(revalidate_frontend, ["events"])
        return schemas.SingleEventResponse(success=True, data=map_event_to_response(event))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "create event", e)


@api.patch("/events/{event_id}", response_model=schemas.SingleEventResponse)
def update_event(
    event_id: str,
    event_update: schemas.EventUpdate,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        event = events.update_event(db, current_user, event_id, event_update)
        bg_tasks.add_task(revalidate_frontend, ["events"])
        return schemas.SingleEventResponse(success=True, data=map_event_to_response(event))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "update event", e)


@api.post("/events/{event_id}/status", response_model=schemas.SingleEventResponse)
def advance_event_status(
    event_id: str,
    status_update: schemas.EventStatusUpdate,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        event = events.advance_status(db, current_user, event_id, status_update.status)
        bg_tasks.add_task(revalidate_frontend, ["events"])
        return schemas.SingleEventResponse(success=True, data=map_event_to_response(event))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "advance event status", e)


@api.post("/events/{event_id}/cancel", response_model=schemas.SingleEventResponse)
def cancel_event(
    event_id: str,
    cancel_in: schemas.EventCancel,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        event = events.cancel_event(db, current_user, event_id, reason=cancel_in.reason)
        bg_tasks.add_task(revalidate_frontend, ["events"])
        return schemas.SingleEventResponse(success=True, data=map_event_to_response(event))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "cancel event", e)


@api.delete("/events/{event_id}")
def delete_event(
    event_id: str,
    bg_tasks: BackgroundTasks,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        events.delete_event(db, current_user, event_id)
        bg_tasks.add_task(revalidate_frontend, ["events"])
        return {"success": True}
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "delete event", e)


# --- REGISTRATION ---

@api.post("/events/{event_id}/register", response_model=schemas.RegistrationResponse)
def register_for_event(
    event_id: str,
    bg_tasks: BackgroundTasks,
    user_id: Optional[str] = Query(None, description="Acting on behalf of another user (admin only)"),
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        row = registration.register_for_event(db, current_user, event_id, user_id or current_user.id)
        bg_tasks.add_task(revalidate_frontend, ["events"])
        return schemas.RegistrationResponse(success=True, data=map_registration_to_response(row))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "register for event", e)


@api.post("/events/{event_id}/unregister")
def cancel_event_registration(
    event_id: str,
    bg_tasks: BackgroundTasks,
    user_id: Optional[str] = Query(None, description="Acting on behalf of another user (admin only)"),
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        registration.cancel_registration(db, current_user, event_id, user_id or current_user.id)
        bg_tasks.add_task(revalidate_frontend, ["events"])
        return {"success": True}
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "cancel event registration", e)


@api.get("/events/{event_id}/registrations", response_model=schemas.RegistrationsResponse)
def get_event_registrations(
    event_id: str,
    include_cancelled: bool = False,
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        rows = registration.get_registrations(db, event_id, include_cancelled=include_cancelled)
        return schemas.RegistrationsResponse(success=True, data=[map_registration_to_response(r) for r in rows])
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "get event registrations", e)


# --- ATTENDANCE ---

@api.post("/events/{event_id}/attendance", response_model=schemas.AttendanceResponse)
def mark_attendance(
    event_id: str,
    attendance_in: schemas.AttendanceMark,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        summary = attendance.mark_attendance(db, current_user, event_id, attendance_in.present_user_ids)
        return schemas.AttendanceResponse(success=True, data=summary)
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "mark attendance", e)


@api.get("/events/{event_id}/attendance", response_model=schemas.AttendanceResponse)
def get_event_attendance(
    event_id: str,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        return schemas.AttendanceResponse(success=True, data=attendance.get_attendance(db, current_user, event_id))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "get event attendance", e)


@api.get("/attendance/reports/club/{club_id}", response_model=schemas.ClubAttendanceResponse)
def get_club_attendance_report(
    club_id: str,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        report = attendance.club_attendance_report(db, current_user, club_id)
        return schemas.ClubAttendanceResponse(success=True, data=report)
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "get club attendance report", e)


# --- FEEDBACK ---

@api.post("/events/{event_id}/feedback", response_model=schemas.FeedbackResponse, status_code=status.HTTP_201_CREATED)
def submit_feedback(
    event_id: str,
    feedback_in: schemas.FeedbackCreate,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        entry = feedback.submit_feedback(db, current_user, event_id, feedback_in)
        return schemas.FeedbackResponse(success=True, data=feedback.to_feedback_out(entry))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "submit feedback", e)


@api.get("/events/{event_id}/feedback", response_model=schemas.FeedbackListResponse)
def get_event_feedback(
    event_id: str,
    include_archived: bool = False,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        rows = feedback.list_event_feedback(db, current_user, event_id, include_archived=include_archived)
        return schemas.FeedbackListResponse(success=True, data=[feedback.to_feedback_out(f) for f in rows])
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "get event feedback", e)


@api.get("/clubs/{club_id}/feedback/summary", response_model=schemas.FeedbackSummaryResponse)
def get_club_feedback_summary(
    club_id: str,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        summary = feedback.club_feedback_summary(db, current_user, club_id)
        return schemas.FeedbackSummaryResponse(success=True, data=summary)
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "get club feedback summary", e)


@api.get("/users/me/feedback", response_model=schemas.FeedbackListResponse)
def get_my_feedback(
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        rows = feedback.list_my_feedback(db, current_user)
        return schemas.FeedbackListResponse(success=True, data=[feedback.to_feedback_out(f) for f in rows])
    except Exception as e:
        raise internal_error(db, "get my feedback", e)


@api.delete("/feedback/{feedback_id}", response_model=schemas.FeedbackResponse)
def archive_feedback(
    feedback_id: int,
    current_user: models.User = Depends(utils.get_current_user),
    db: Session = Depends(database.get_db),
    token: str = Depends(verify_api_key),
):
    try:
        entry = feedback.archive_feedback(db, current_user, feedback_id)
        return schemas.FeedbackResponse(success=True, data=feedback.to_feedback_out(entry))
    except errors.PortalError as pe:
        raise to_http_exception(pe)
    except Exception as e:
        raise internal_error(db, "archive feedback", e)


if __name__ == "__main__":
    uvicorn.run("clubportal.main:api", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
