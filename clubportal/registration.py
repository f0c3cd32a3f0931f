"""
Event Registration Engine

A registration row goes unregistered -> registered -> attended | cancelled.
``attended`` is only ever written by the attendance recorder.

Capacity counts rows in ``registered`` or ``attended``; cancelled rows free
their seat. Every write on an event runs under that event's lock and
re-reads the event inside the same transaction as the insert, so two
concurrent registrations cannot both take the last seat.
"""

import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from . import models, users
from .authorization import Action, ResourceRef, require
from .database import resource_lock
from .errors import (
    PortalError,
    AlreadyRegistered,
    DeadlinePassed,
    EventAlreadyStarted,
    EventFull,
    EventNotUpcoming,
    NotFoundError,
    NotRegistered,
)
from .models import EventStatus, RegistrationStatus

logger = logging.getLogger(__name__)


def event_lock_key(event_id: str) -> str:
    return f"event:{event_id}"


def load_event(db: Session, event_id: str, for_update: bool = True) -> models.Event:
    """Fresh read of the event and its registrations, row-locked where supported"""
    query = (
        select(models.Event)
        .where(models.Event.id == event_id)
        .options(
            selectinload(models.Event.registrations),
            selectinload(models.Event.attendance_records),
            selectinload(models.Event.club).selectinload(models.Club.members),
        )
        .execution_options(populate_existing=True)
    )
    if for_update:
        query = query.with_for_update()
    event = db.execute(query).scalars().first()
    if event is None:
        raise NotFoundError("Event", event_id)
    return event


def register_for_event(db: Session, actor: models.User, event_id: str, user_id: str, now=None) -> models.EventRegistration:
    """
    Register ``user_id`` for the event.

    Checks run in this order: status, deadline, duplicate, capacity. The
    duplicate check comes before capacity so a repeated attempt never
    counts twice against the limit.
    """
    now = now or models.utcnow()

    with resource_lock(event_lock_key(event_id)):
        try:
            event = load_event(db, event_id)
            require(actor, Action.EVENT_REGISTER, ResourceRef(event=event, subject_id=user_id))
            user = users.get_user(db, user_id)

            if event.status != EventStatus.UPCOMING:
                raise EventNotUpcoming()

            if now > event.registration_deadline:
                raise DeadlinePassed()

            if event.active_registration_for(user.id) is not None:
                raise AlreadyRegistered()

            if event.is_full:
                raise EventFull()

            registration = models.EventRegistration(
                user_id=user.id,
                registration_date=now,
                status=RegistrationStatus.REGISTERED,
            )
            event.registrations.append(registration)
            db.commit()

        except PortalError as pe:
            db.rollback()
            logger.info("register %s for %s rejected: %s", user_id, event_id, pe.code)
            raise
        except IntegrityError:
            db.rollback()
            raise AlreadyRegistered()

    db.refresh(registration)
    logger.info("User %s registered for event %s", user_id, event_id)
    return registration


def cancel_registration(db: Session, actor: models.User, event_id: str, user_id: str) -> models.EventRegistration:
    """Cancel the user's active registration; the seat becomes free again"""
    with resource_lock(event_lock_key(event_id)):
        try:
            event = load_event(db, event_id)
            require(actor, Action.EVENT_CANCEL_REGISTRATION, ResourceRef(event=event, subject_id=user_id))

            registration = event.active_registration_for(user_id)
            if registration is None:
                raise NotRegistered()

            if event.status in (EventStatus.ONGOING, EventStatus.COMPLETED):
                raise EventAlreadyStarted("Cannot unregister after event has started")

            registration.status = RegistrationStatus.CANCELLED
            db.commit()

        except PortalError as pe:
            db.rollback()
            logger.info("cancel %s for %s rejected: %s", user_id, event_id, pe.code)
            raise

    db.refresh(registration)
    logger.info("User %s cancelled registration for event %s", user_id, event_id)
    return registration


def get_registrations(db: Session, event_id: str, include_cancelled: bool = False) -> List[models.EventRegistration]:
    """Authoritative registration snapshot, in registration order"""
    if db.get(models.Event, event_id) is None:
        raise NotFoundError("Event", event_id)

    query = (
        select(models.EventRegistration)
        .where(models.EventRegistration.event_id == event_id)
        .order_by(models.EventRegistration.id)
    )
    if not include_cancelled:
        query = query.where(
            models.EventRegistration.status.in_(models.ACTIVE_REGISTRATION_STATUSES)
        )
    return list(db.execute(query).scalars().all())
