"""
Attendance Recorder

Marks who showed up once an event is completed. Each call replaces the
previous marking: the full registrant list is recomputed from the given
set, so the outcome only depends on the last set submitted.
"""

import logging
from typing import Iterable

from sqlalchemy.orm import Session

from . import models, schemas
from .authorization import Action, ResourceRef, require
from .clubs import get_club
from .database import resource_lock
from .errors import PortalError, EventNotCompleted, UnknownParticipant
from .models import EventStatus, RegistrationStatus
from .registration import event_lock_key, load_event

logger = logging.getLogger(__name__)


def build_summary(event: models.Event) -> schemas.AttendanceSummary:
    active = event.active_registrations
    attended = [r.user_id for r in active if r.status == RegistrationStatus.ATTENDED]
    absent = [r.user_id for r in active if r.status == RegistrationStatus.REGISTERED]

    total = len(active)
    percentage = round(len(attended) / total * 100) if total else 0
    marked_at = max((rec.marked_at for rec in event.attendance_records), default=None)

    return schemas.AttendanceSummary(
        event_id=event.id,
        event_title=event.title,
        total_registered=total,
        total_attended=len(attended),
        absent_count=len(absent),
        attendance_percentage=percentage,
        attended_user_ids=attended,
        absent_user_ids=absent,
        marked_at=marked_at,
    )


def mark_attendance(
    db: Session,
    actor: models.User,
    event_id: str,
    present_user_ids: Iterable[str],
    now=None,
) -> schemas.AttendanceSummary:
    """
    Set every active registrant to ``attended`` or back to ``registered``
    depending on membership in ``present_user_ids``.

    Raises UnknownParticipant if any id has no active registration; nothing
    is written in that case.
    """
    now = now or models.utcnow()
    present = set(present_user_ids)

    with resource_lock(event_lock_key(event_id)):
        try:
            event = load_event(db, event_id)
            require(actor, Action.ATTENDANCE_MARK, ResourceRef(event=event))

            # admins pass the gate on any status
            if event.status != EventStatus.COMPLETED:
                raise EventNotCompleted()

            active = {r.user_id: r for r in event.active_registrations}
            unknown = present - active.keys()
            if unknown:
                raise UnknownParticipant(unknown)

            for user_id, row in active.items():
                row.status = RegistrationStatus.ATTENDED if user_id in present else RegistrationStatus.REGISTERED

            existing = {rec.user_id: rec for rec in event.attendance_records}
            for user_id, record in existing.items():
                if user_id not in present:
                    db.delete(record)
            for user_id in sorted(present - existing.keys()):
                event.attendance_records.append(
                    models.AttendanceRecord(user_id=user_id, marked_at=now, marked_by_id=actor.id)
                )

            db.commit()

        except PortalError as pe:
            db.rollback()
            logger.info("mark_attendance for %s rejected: %s", event_id, pe.code)
            raise

    db.refresh(event)
    summary = build_summary(event)
    logger.info(
        "Attendance for event %s marked by %s: %s/%s",
        event_id, actor.id, summary.total_attended, summary.total_registered,
    )
    return summary


def get_attendance(db: Session, actor: models.User, event_id: str) -> schemas.AttendanceSummary:
    event = load_event(db, event_id, for_update=False)
    require(actor, Action.ATTENDANCE_VIEW, ResourceRef(event=event))
    return build_summary(event)


def club_attendance_report(db: Session, actor: models.User, club_id: str) -> schemas.ClubAttendanceReport:
    """Attendance summary for every completed event of the club, plus the totals"""
    club = get_club(db, club_id)
    require(actor, Action.REPORT_VIEW, ResourceRef(club=club))

    completed = sorted(
        (e for e in club.events if e.status == EventStatus.COMPLETED),
        key=lambda e: (e.event_date, e.start_time),
    )
    summaries = [build_summary(event) for event in completed]

    registered = sum(s.total_registered for s in summaries)
    attended = sum(s.total_attended for s in summaries)

    return schemas.ClubAttendanceReport(
        club_id=club.id,
        club_name=club.name,
        total_events=len(summaries),
        total_registrations=registered,
        total_attended=attended,
        attendance_percentage=round(attended / registered * 100) if registered else 0,
        events=summaries,
    )
