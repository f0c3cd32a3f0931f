"""
Event feedback

Attendees of a completed event rate it once. Entries are anonymous by
default: the author is still stored, so the one-per-attendee rule holds,
but it is left out of everything handed back to staff.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models, schemas
from .authorization import NOT_AN_ATTENDEE, Action, ResourceRef, require
from .clubs import get_club
from .database import resource_lock
from .errors import (
    PortalError,
    AuthorizationError,
    EventNotCompleted,
    FeedbackAlreadySubmitted,
    NotFoundError,
)
from .models import EventStatus, FeedbackStatus
from .registration import event_lock_key, load_event

logger = logging.getLogger(__name__)

SUB_RATINGS = ("organization", "content", "venue", "speakers")


def to_feedback_out(entry: models.FeedbackEntry) -> schemas.FeedbackOut:
    return schemas.FeedbackOut(
        id=entry.id,
        event_id=entry.event_id,
        club_id=entry.club_id,
        user_id=None if entry.anonymous else entry.user_id,
        anonymous=entry.anonymous,
        rating_overall=entry.rating_overall,
        rating_organization=entry.rating_organization,
        rating_content=entry.rating_content,
        rating_venue=entry.rating_venue,
        rating_speakers=entry.rating_speakers,
        what_worked_well=entry.what_worked_well,
        improvements=entry.improvements,
        additional_comments=entry.additional_comments,
        recommend_to_others=entry.recommend_to_others,
        status=entry.status,
        created_at=entry.created_at,
    )


def submit_feedback(
    db: Session,
    actor: models.User,
    event_id: str,
    feedback_in: schemas.FeedbackCreate,
    now=None,
) -> models.FeedbackEntry:
    """
    Record the actor's feedback on a completed event they attended.

    Raises FeedbackAlreadySubmitted on a second entry for the same event.
    """
    now = now or models.utcnow()

    with resource_lock(event_lock_key(event_id)):
        try:
            event = load_event(db, event_id)
            require(actor, Action.FEEDBACK_SUBMIT, ResourceRef(event=event, subject_id=actor.id))

            # admins pass the gate, the attendance rule still applies to them
            if event.status != EventStatus.COMPLETED:
                raise EventNotCompleted()
            if not event.attended_by(actor.id):
                raise AuthorizationError(NOT_AN_ATTENDEE)

            if any(entry.user_id == actor.id for entry in event.feedback_entries):
                raise FeedbackAlreadySubmitted()

            entry = models.FeedbackEntry(
                event_id=event.id,
                club_id=event.club_id,
                user_id=actor.id,
                anonymous=feedback_in.anonymous,
                rating_overall=feedback_in.rating_overall,
                rating_organization=feedback_in.rating_organization,
                rating_content=feedback_in.rating_content,
                rating_venue=feedback_in.rating_venue,
                rating_speakers=feedback_in.rating_speakers,
                what_worked_well=feedback_in.what_worked_well,
                improvements=feedback_in.improvements,
                additional_comments=feedback_in.additional_comments,
                recommend_to_others=feedback_in.recommend_to_others,
                status=FeedbackStatus.SUBMITTED,
                created_at=now,
            )
            db.add(entry)

            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise FeedbackAlreadySubmitted()

        except PortalError as pe:
            db.rollback()
            logger.info("submit_feedback for %s by %s rejected: %s", event_id, actor.id, pe.code)
            raise

    db.refresh(entry)
    logger.info("Feedback %s submitted for event %s", entry.id, event_id)
    return entry


def list_event_feedback(
    db: Session,
    actor: models.User,
    event_id: str,
    include_archived: bool = False,
) -> List[models.FeedbackEntry]:
    event = load_event(db, event_id, for_update=False)
    require(actor, Action.FEEDBACK_VIEW, ResourceRef(event=event))

    query = (
        select(models.FeedbackEntry)
        .where(models.FeedbackEntry.event_id == event.id)
        .order_by(models.FeedbackEntry.created_at.desc(), models.FeedbackEntry.id.desc())
    )
    if not include_archived:
        query = query.where(models.FeedbackEntry.status == FeedbackStatus.SUBMITTED)
    return list(db.execute(query).scalars().all())


def _average(values: List[int]) -> Optional[float]:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def club_feedback_summary(db: Session, actor: models.User, club_id: str) -> schemas.FeedbackSummary:
    """Averages and rating distribution over the club's submitted feedback"""
    club = get_club(db, club_id)
    require(actor, Action.FEEDBACK_VIEW, ResourceRef(club=club))

    entries = list(db.execute(
        select(models.FeedbackEntry)
        .where(models.FeedbackEntry.club_id == club.id)
        .where(models.FeedbackEntry.status == FeedbackStatus.SUBMITTED)
    ).scalars().all())

    distribution = {rating: 0 for rating in range(1, 6)}
    for entry in entries:
        distribution[entry.rating_overall] += 1

    sub_averages = {}
    for name in SUB_RATINGS:
        ratings = [getattr(e, f"rating_{name}") for e in entries]
        sub_averages[f"average_{name}"] = _average([r for r in ratings if r is not None])

    answered = [e.recommend_to_others for e in entries if e.recommend_to_others is not None]
    recommend = round(answered.count(True) / len(answered) * 100) if answered else None

    return schemas.FeedbackSummary(
        club_id=club.id,
        total_feedback=len(entries),
        average_overall=_average([e.rating_overall for e in entries]),
        rating_distribution=distribution,
        recommend_percentage=recommend,
        **sub_averages,
    )


def list_my_feedback(db: Session, actor: models.User) -> List[models.FeedbackEntry]:
    """The actor's own submitted entries, newest first"""
    query = (
        select(models.FeedbackEntry)
        .where(models.FeedbackEntry.user_id == actor.id)
        .where(models.FeedbackEntry.status == FeedbackStatus.SUBMITTED)
        .order_by(models.FeedbackEntry.created_at.desc(), models.FeedbackEntry.id.desc())
    )
    return list(db.execute(query).scalars().all())


def archive_feedback(db: Session, actor: models.User, feedback_id: int) -> models.FeedbackEntry:
    """Hide an entry from listings and summaries; the row itself is kept"""
    require(actor, Action.FEEDBACK_ARCHIVE)

    entry = db.get(models.FeedbackEntry, feedback_id)
    if entry is None:
        raise NotFoundError("Feedback", feedback_id)

    entry.status = FeedbackStatus.ARCHIVED
    db.commit()
    db.refresh(entry)
    logger.info("Feedback %s archived by %s", entry.id, actor.id)
    return entry
