"""
Club Membership Engine

Join, leave and promote. Rows are never deleted: leaving flips
``is_active`` so the history stays available for statistics, and the
member count is always recomputed from the active rows.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from . import models, users
from .authorization import Action, ResourceRef, can_coordinate, require
from .database import resource_lock
from .errors import (
    PortalError,
    AlreadyMember,
    ClubInactive,
    InvalidCoordinator,
    NotAMember,
    NotFoundError,
)
from .models import MembershipRole

logger = logging.getLogger(__name__)


def _lock_key(club_id: str) -> str:
    return f"club:{club_id}"


def load_club_for_update(db: Session, club_id: str) -> models.Club:
    """Fresh read of the club and its roster, row-locked where the backend supports it"""
    query = (
        select(models.Club)
        .where(models.Club.id == club_id)
        .options(selectinload(models.Club.members))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    club = db.execute(query).scalars().first()
    if club is None:
        raise NotFoundError("Club", club_id)
    return club


def join_club(db: Session, actor: models.User, club_id: str, user_id: str, now=None) -> models.ClubMembership:
    now = now or models.utcnow()

    with resource_lock(_lock_key(club_id)):
        try:
            club = load_club_for_update(db, club_id)
            require(actor, Action.CLUB_JOIN, ResourceRef(club=club, subject_id=user_id))
            user = users.get_user(db, user_id)

            if club.active_membership_for(user.id) is not None:
                raise AlreadyMember()

            if not club.is_active:
                raise ClubInactive()

            membership = models.ClubMembership(
                user_id=user.id,
                role=MembershipRole.MEMBER,
                joined_at=now,
                is_active=True,
            )
            club.members.append(membership)
            db.commit()

        except PortalError as pe:
            db.rollback()
            logger.info("join_club %s by %s rejected: %s", club_id, user_id, pe.code)
            raise
        except IntegrityError:
            # partial unique index caught a concurrent join from another process
            db.rollback()
            raise AlreadyMember()

    db.refresh(membership)
    logger.info("User %s joined club %s", user_id, club_id)
    return membership


def leave_club(db: Session, actor: models.User, club_id: str, user_id: str) -> models.ClubMembership:
    """
    Soft-remove the active membership row.

    The coordinator slot is untouched; coordinators change through
    ``clubs.set_coordinator`` or ``promote_member``.
    """
    with resource_lock(_lock_key(club_id)):
        try:
            club = load_club_for_update(db, club_id)
            require(actor, Action.CLUB_LEAVE, ResourceRef(club=club, subject_id=user_id))

            membership = club.active_membership_for(user_id)
            if membership is None:
                raise NotAMember()

            membership.is_active = False
            db.commit()

        except PortalError as pe:
            db.rollback()
            logger.info("leave_club %s by %s rejected: %s", club_id, user_id, pe.code)
            raise

    db.refresh(membership)
    logger.info("User %s left club %s", user_id, club_id)
    return membership


def promote_member(
    db: Session,
    actor: models.User,
    club_id: str,
    user_id: str,
    new_role: MembershipRole,
) -> models.Club:
    """
    Change a member's role between member and leader.

    Promoting to coordinator replaces ``club.coordinator`` instead; the
    previous coordinator stays in ``members`` as they were.
    """
    with resource_lock(_lock_key(club_id)):
        try:
            club = load_club_for_update(db, club_id)
            require(actor, Action.MEMBER_PROMOTE, ResourceRef(club=club, subject_id=user_id))

            if new_role == MembershipRole.COORDINATOR:
                user = users.get_user(db, user_id)
                if not can_coordinate(user):
                    raise InvalidCoordinator()
                club.coordinator_id = user.id
            else:
                membership = club.active_membership_for(user_id)
                if membership is None:
                    raise NotAMember()
                membership.role = new_role

            db.commit()

        except PortalError as pe:
            db.rollback()
            logger.info("promote %s in club %s rejected: %s", user_id, club_id, pe.code)
            raise

    db.refresh(club)
    logger.info("User %s in club %s promoted to %s by %s", user_id, club_id, new_role.value, actor.id)
    return club


def get_roster(db: Session, club_id: str, include_inactive: bool = False) -> List[models.ClubMembership]:
    """Authoritative roster snapshot, in join order"""
    query = (
        select(models.ClubMembership)
        .where(models.ClubMembership.club_id == club_id)
        .order_by(models.ClubMembership.id)
    )
    if not include_inactive:
        query = query.where(models.ClubMembership.is_active == True)

    if db.get(models.Club, club_id) is None:
        raise NotFoundError("Club", club_id)
    return list(db.execute(query).scalars().all())


def get_membership(db: Session, club_id: str, user_id: str) -> Optional[models.ClubMembership]:
    return db.execute(
        select(models.ClubMembership)
        .where(models.ClubMembership.club_id == club_id)
        .where(models.ClubMembership.user_id == user_id)
        .where(models.ClubMembership.is_active == True)
    ).scalars().first()
