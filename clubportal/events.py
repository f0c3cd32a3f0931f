"""
Event administration: creation, edits, lifecycle transitions.

Status only moves forward: upcoming -> ongoing -> completed, with a side
exit to cancelled from either non-terminal state.
"""

import datetime
import logging
from typing import List, Optional

from sqlalchemy import func, select, or_
from sqlalchemy.orm import Session

from . import models, schemas
from .authorization import Action, ResourceRef, require
from .clubs import get_club
from .database import resource_lock
from .errors import (
    PortalError,
    CapacityBelowRoster,
    ClubInactive,
    EventAlreadyStarted,
    InvalidSchedule,
    InvalidStatusTransition,
    HistoryRecorded,
    NotFoundError,
)
from .models import EventStatus, EventType, RegistrationStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    EventStatus.UPCOMING: {EventStatus.ONGOING, EventStatus.CANCELLED},
    EventStatus.ONGOING: {EventStatus.COMPLETED, EventStatus.CANCELLED},
    EventStatus.COMPLETED: set(),
    EventStatus.CANCELLED: set(),
}


def get_event(db: Session, event_id: str) -> models.Event:
    event = db.get(models.Event, event_id)
    if event is None:
        raise NotFoundError("Event", event_id)
    return event


def list_events(
    db: Session,
    club_id: Optional[str] = None,
    status: Optional[EventStatus] = None,
    search: Optional[str] = None,
) -> List[models.Event]:
    query = select(models.Event)

    if club_id:
        query = query.where(models.Event.club_id == club_id)

    if status:
        query = query.where(models.Event.status == status)

    if search:
        search_fmt = f"%{search}%"
        query = query.where(
            or_(
                models.Event.title.ilike(search_fmt),
                models.Event.description.ilike(search_fmt)
            )
        )

    query = query.order_by(models.Event.event_date.asc(), models.Event.start_time.asc())
    return list(db.execute(query).scalars().all())


def list_upcoming(
    db: Session,
    limit: int = 10,
    club_id: Optional[str] = None,
    event_type: Optional[EventType] = None,
    today: Optional[datetime.date] = None,
) -> List[models.Event]:
    """Upcoming events from today on, soonest first"""
    today = today or models.utcnow().date()
    query = select(models.Event).where(
        models.Event.status == EventStatus.UPCOMING,
        models.Event.event_date >= today,
    )

    if club_id:
        query = query.where(models.Event.club_id == club_id)

    if event_type:
        query = query.where(models.Event.event_type == event_type)

    query = query.order_by(models.Event.event_date.asc(), models.Event.start_time.asc()).limit(limit)
    return list(db.execute(query).scalars().all())


def event_stats(db: Session, actor: models.User) -> schemas.EventStats:
    require(actor, Action.REPORT_VIEW)

    by_status = {status.value: 0 for status in EventStatus}
    for status, count in db.execute(
        select(models.Event.status, func.count(models.Event.id)).group_by(models.Event.status)
    ).all():
        by_status[status.value] = count

    registration_counts = dict(
        db.execute(
            select(models.EventRegistration.status, func.count(models.EventRegistration.id))
            .group_by(models.EventRegistration.status)
        ).all()
    )
    attended = registration_counts.get(RegistrationStatus.ATTENDED, 0)

    return schemas.EventStats(
        total_events=sum(by_status.values()),
        by_status=by_status,
        total_registrations=registration_counts.get(RegistrationStatus.REGISTERED, 0) + attended,
        total_attended=attended,
    )


def registration_status(event: models.Event, now=None) -> str:
    """'open', 'closed' or 'full' as shown next to the register button"""
    now = now or models.utcnow()
    if event.status != EventStatus.UPCOMING or now > event.registration_deadline:
        return "closed"
    if event.is_full:
        return "full"
    return "open"


def create_event(db: Session, actor: models.User, event_in: schemas.EventCreate) -> models.Event:
    club = get_club(db, event_in.club_id)
    require(actor, Action.EVENT_CREATE, ResourceRef(club=club))

    if not club.is_active:
        raise ClubInactive()

    db_event = models.Event(
        slug=models.generate_slug(f"{event_in.title} {event_in.event_date}"),
        title=event_in.title,
        description=event_in.description,
        event_type=event_in.event_type,
        club_id=club.id,
        organizer_id=actor.id,
        event_date=event_in.event_date,
        start_time=event_in.start_time,
        end_time=event_in.end_time,
        venue=event_in.venue,
        max_participants=event_in.max_participants,
        registration_deadline=event_in.registration_deadline,
        status=EventStatus.UPCOMING,
    )

    db.add(db_event)
    db.commit()
    db.refresh(db_event)
    logger.info("Event %s created in club %s by %s", db_event.id, club.id, actor.id)
    return db_event


def update_event(db: Session, actor: models.User, event_id: str, event_update: schemas.EventUpdate) -> models.Event:
    with resource_lock(f"event:{event_id}"):
        try:
            db_event = get_event(db, event_id)
            require(actor, Action.EVENT_UPDATE, ResourceRef(event=db_event))

            if db_event.status in (EventStatus.ONGOING, EventStatus.COMPLETED):
                raise EventAlreadyStarted("Cannot edit event after it has started")

            start_time = event_update.start_time or db_event.start_time
            end_time = event_update.end_time or db_event.end_time
            if schemas.to_minutes(end_time) <= schemas.to_minutes(start_time):
                raise InvalidSchedule("End time must be after start time")

            event_date = event_update.event_date or db_event.event_date
            deadline = event_update.registration_deadline or db_event.registration_deadline
            if deadline.date() > event_date:
                raise InvalidSchedule("Registration deadline must not be after the event date")

            if event_update.max_participants is not None and event_update.max_participants > 0:
                if event_update.max_participants < db_event.active_count:
                    raise CapacityBelowRoster()

            # Only update what is sent
            if event_update.title is not None: db_event.title = event_update.title
            if event_update.description is not None: db_event.description = event_update.description
            if event_update.venue is not None: db_event.venue = event_update.venue
            if event_update.event_type is not None: db_event.event_type = event_update.event_type
            if event_update.max_participants is not None: db_event.max_participants = event_update.max_participants

            db_event.event_date = event_date
            db_event.start_time = start_time
            db_event.end_time = end_time
            db_event.registration_deadline = deadline

            db.commit()

        except PortalError:
            db.rollback()
            raise

    db.refresh(db_event)
    logger.info("Event %s updated by %s", db_event.id, actor.id)
    return db_event


def _transition(db_event: models.Event, target: EventStatus):
    if target not in ALLOWED_TRANSITIONS[db_event.status]:
        raise InvalidStatusTransition(db_event.status, target)
    db_event.status = target


def advance_status(db: Session, actor: models.User, event_id: str, target: EventStatus, reason: str = None) -> models.Event:
    """Move the event forward in its lifecycle; regressions are rejected"""
    with resource_lock(f"event:{event_id}"):
        try:
            db_event = get_event(db, event_id)
            require(actor, Action.EVENT_ADVANCE_STATUS, ResourceRef(event=db_event))

            previous = db_event.status
            _transition(db_event, target)

            if target == EventStatus.CANCELLED:
                db_event.cancellation_reason = reason or "Event cancelled by organizer"
                db_event.cancelled_at = models.utcnow()

            db.commit()

        except PortalError:
            db.rollback()
            raise

    db.refresh(db_event)
    logger.info("Event %s %s -> %s by %s", db_event.id, previous.value, target.value, actor.id)
    return db_event


def cancel_event(db: Session, actor: models.User, event_id: str, reason: str = None) -> models.Event:
    return advance_status(db, actor, event_id, EventStatus.CANCELLED, reason=reason)


def delete_event(db: Session, actor: models.User, event_id: str) -> None:
    db_event = get_event(db, event_id)
    require(actor, Action.EVENT_DELETE, ResourceRef(event=db_event))

    if db_event.attendance_records or db_event.feedback_entries:
        raise HistoryRecorded()

    db.delete(db_event)
    db.commit()
    logger.info("Event %s deleted by %s", event_id, actor.id)
