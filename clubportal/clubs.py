"""
Club administration: creation, profile updates, coordinator changes and
statistics. Roster changes live in ``membership``.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas, users
from .authorization import Action, ResourceRef, can_coordinate, require
from .errors import DuplicateClub, HistoryRecorded, InvalidCoordinator, NotFoundError
from .models import ClubCategory, EventStatus, MembershipRole

logger = logging.getLogger(__name__)


def get_club(db: Session, club_id: str) -> models.Club:
    club = db.get(models.Club, club_id)
    if club is None:
        raise NotFoundError("Club", club_id)
    return club


def list_clubs(
    db: Session,
    category: Optional[ClubCategory] = None,
    search: Optional[str] = None,
    active_only: bool = True,
) -> List[models.Club]:
    query = select(models.Club)

    if active_only:
        query = query.where(models.Club.is_active == True)

    if category:
        query = query.where(models.Club.category == category)

    if search:
        search_fmt = f"%{search}%"
        query = query.where(
            or_(
                models.Club.name.ilike(search_fmt),
                models.Club.description.ilike(search_fmt)
            )
        )

    query = query.order_by(models.Club.name.asc())
    return list(db.execute(query).scalars().all())


def _check_name_free(db: Session, name: str, exclude_id: Optional[str] = None):
    query = select(models.Club).where(models.Club.name == name)
    if exclude_id:
        query = query.where(models.Club.id != exclude_id)
    if db.execute(query).scalars().first():
        raise DuplicateClub()


def _coordinator(db: Session, user_id: str) -> models.User:
    user = users.get_user(db, user_id)
    if not can_coordinate(user):
        raise InvalidCoordinator()
    return user


def create_club(db: Session, actor: models.User, club_in: schemas.ClubCreate) -> models.Club:
    require(actor, Action.CLUB_CREATE)

    coordinator = _coordinator(db, club_in.coordinator_id)
    _check_name_free(db, club_in.name)

    club = models.Club(
        name=club_in.name,
        slug=models.generate_slug(club_in.name),
        description=club_in.description,
        category=club_in.category,
        coordinator_id=coordinator.id,
        contact_email=club_in.contact_email,
        meeting_schedule=club_in.meeting_schedule,
        is_active=True,
    )

    try:
        db.add(club)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateClub()

    db.refresh(club)
    logger.info("Club %s created by %s", club.id, actor.id)
    return club


def update_club(db: Session, actor: models.User, club_id: str, club_update: schemas.ClubUpdate) -> models.Club:
    club = get_club(db, club_id)
    require(actor, Action.CLUB_UPDATE, ResourceRef(club=club))

    # Only touch what was sent
    if club_update.name is not None and club_update.name != club.name:
        _check_name_free(db, club_update.name, exclude_id=club.id)
        club.name = club_update.name
        club.slug = models.generate_slug(club_update.name)

    if club_update.description is not None:
        club.description = club_update.description

    if club_update.category is not None:
        club.category = club_update.category

    if club_update.contact_email is not None:
        club.contact_email = club_update.contact_email

    if club_update.meeting_schedule is not None:
        club.meeting_schedule = club_update.meeting_schedule

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateClub()

    db.refresh(club)
    logger.info("Club %s updated by %s", club.id, actor.id)
    return club


def deactivate_club(db: Session, actor: models.User, club_id: str) -> models.Club:
    """Soft delete; rosters and events are kept"""
    club = get_club(db, club_id)
    require(actor, Action.CLUB_DELETE, ResourceRef(club=club))

    club.is_active = False
    db.commit()
    db.refresh(club)
    logger.info("Club %s deactivated by %s", club.id, actor.id)
    return club


def delete_club(db: Session, actor: models.User, club_id: str) -> None:
    """Hard delete, takes memberships and events with it"""
    club = get_club(db, club_id)
    require(actor, Action.CLUB_DELETE, ResourceRef(club=club))

    if any(e.attendance_records or e.feedback_entries for e in club.events):
        raise HistoryRecorded()

    db.delete(club)
    db.commit()
    logger.info("Club %s deleted by %s", club_id, actor.id)


def set_coordinator(db: Session, actor: models.User, club_id: str, coordinator_id: str) -> models.Club:
    """
    Replace the club coordinator.

    The previous coordinator keeps whatever membership row they had.
    """
    club = get_club(db, club_id)
    require(actor, Action.CLUB_SET_COORDINATOR, ResourceRef(club=club))

    coordinator = _coordinator(db, coordinator_id)
    previous = club.coordinator_id
    club.coordinator_id = coordinator.id
    db.commit()
    db.refresh(club)
    logger.info("Club %s coordinator %s -> %s", club.id, previous, coordinator.id)
    return club


def club_stats(db: Session, club_id: str) -> schemas.ClubStats:
    club = get_club(db, club_id)
    active = club.active_members

    return schemas.ClubStats(
        club_id=club.id,
        active_members=len(active),
        total_memberships=len(club.members),
        leaders=len([m for m in active if m.role == MembershipRole.LEADER]),
        total_events=len(club.events),
        upcoming_events=len([e for e in club.events if e.status == EventStatus.UPCOMING]),
    )
