"""
Authorization Gate

Single place where roles are compared. Every mutation in the portal asks
``authorize`` first; it is a pure decision function and never raises for
an expected policy violation.
"""

import logging
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from . import models
from .errors import AuthorizationError
from .models import UserRole, MembershipRole, EventStatus

logger = logging.getLogger(__name__)


class Action(str, Enum):
    # club administration
    CLUB_CREATE = "club:create"
    CLUB_UPDATE = "club:update"
    CLUB_DELETE = "club:delete"
    CLUB_SET_COORDINATOR = "club:set-coordinator"
    MEMBER_PROMOTE = "club:promote-member"

    # event administration
    EVENT_CREATE = "event:create"
    EVENT_UPDATE = "event:update"
    EVENT_DELETE = "event:delete"
    EVENT_ADVANCE_STATUS = "event:advance-status"

    # attendance
    ATTENDANCE_MARK = "attendance:mark"
    ATTENDANCE_VIEW = "attendance:view"

    # feedback
    FEEDBACK_SUBMIT = "feedback:submit"
    FEEDBACK_VIEW = "feedback:view"
    FEEDBACK_ARCHIVE = "feedback:archive"

    # statistics and reports
    REPORT_VIEW = "report:view"

    # self service
    CLUB_JOIN = "club:join"
    CLUB_LEAVE = "club:leave"
    EVENT_REGISTER = "event:register"
    EVENT_CANCEL_REGISTRATION = "event:cancel-registration"

    # accounts
    USER_MANAGE = "user:manage"
    USER_READ = "user:read"
    USER_UPDATE = "user:update"


# Deny reasons
UNAUTHENTICATED = "unauthenticated"
ROLE_MISMATCH = "role-mismatch"
NOT_CLUB_AUTHORITY = "not-club-authority"
EVENT_NOT_COMPLETED = "event-not-completed"
NOT_AN_ATTENDEE = "not-an-attendee"
SELF_ONLY = "self-only"
UNKNOWN_ACTION = "unknown-action"

# reassigning the coordinator hands out authority over every event of the
# club, so it stays with admins, as does removing a club
ADMIN_ONLY = {
    Action.CLUB_DELETE,
    Action.CLUB_SET_COORDINATOR,
    Action.FEEDBACK_ARCHIVE,
    Action.USER_MANAGE,
}

EVENT_MUTATIONS = {
    Action.EVENT_CREATE,
    Action.EVENT_UPDATE,
    Action.EVENT_DELETE,
    Action.EVENT_ADVANCE_STATUS,
}

SELF_SERVICE = {
    Action.CLUB_JOIN,
    Action.CLUB_LEAVE,
    Action.EVENT_REGISTER,
    Action.EVENT_CANCEL_REGISTRATION,
    Action.USER_UPDATE,
}

STAFF_VIEWS = {
    Action.ATTENDANCE_VIEW,
    Action.FEEDBACK_VIEW,
    Action.REPORT_VIEW,
}

STAFF_ROLES = (UserRole.TEACHER, UserRole.ADMIN)


class Decision(BaseModel):
    """Outcome of an authorization check"""
    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(allowed=False, reason=reason)


class ResourceRef(BaseModel):
    """What an action targets: a club, an event, and/or the user acted upon"""
    club: Optional[Any] = None
    event: Optional[Any] = None
    subject_id: Optional[str] = None

    class Config:
        arbitrary_types_allowed = True

    def owning_club(self):
        if self.club is not None:
            return self.club
        if self.event is not None:
            return self.event.club
        return None


def is_staff(user: Optional[models.User]) -> bool:
    """Teachers and admins"""
    return user is not None and user.role in STAFF_ROLES


def can_coordinate(user: Optional[models.User]) -> bool:
    """Only active teachers and admins may be a club coordinator"""
    return is_staff(user) and bool(user.is_active)


def is_club_coordinator(user: models.User, club) -> bool:
    """The coordinator slot itself, or an active coordinator-role member"""
    if club is None:
        return False
    if club.coordinator_id == user.id:
        return True
    membership = club.active_membership_for(user.id)
    return membership is not None and membership.role == MembershipRole.COORDINATOR


def has_club_authority(user: models.User, club) -> bool:
    """Coordinator of the club, or an active leader/coordinator-role member"""
    if is_club_coordinator(user, club):
        return True
    if club is None:
        return False
    membership = club.active_membership_for(user.id)
    return membership is not None and membership.role == MembershipRole.LEADER


def authorize(actor: Optional[models.User], action: Action, resource: Optional[ResourceRef] = None) -> Decision:
    """
    Decide whether ``actor`` may perform ``action`` on ``resource``.

    Rules are checked in order and the first match wins.
    """
    resource = resource or ResourceRef()

    if actor is None or not actor.is_active:
        return Decision.deny(UNAUTHENTICATED)

    if actor.role == UserRole.ADMIN:
        return Decision.allow()

    if action in ADMIN_ONLY:
        return Decision.deny(ROLE_MISMATCH)

    if action == Action.CLUB_CREATE:
        if actor.role == UserRole.TEACHER:
            return Decision.allow()
        return Decision.deny(ROLE_MISMATCH)

    if action == Action.CLUB_UPDATE or action in EVENT_MUTATIONS:
        if actor.role != UserRole.TEACHER:
            return Decision.deny(ROLE_MISMATCH)
        if not has_club_authority(actor, resource.owning_club()):
            return Decision.deny(NOT_CLUB_AUTHORITY)
        return Decision.allow()

    # leaders run events but only the coordinator hands out roles
    if action == Action.MEMBER_PROMOTE:
        if actor.role != UserRole.TEACHER:
            return Decision.deny(ROLE_MISMATCH)
        if not is_club_coordinator(actor, resource.owning_club()):
            return Decision.deny(NOT_CLUB_AUTHORITY)
        return Decision.allow()

    if action == Action.ATTENDANCE_MARK:
        if actor.role != UserRole.TEACHER:
            return Decision.deny(ROLE_MISMATCH)
        if resource.event is None or resource.event.status != EventStatus.COMPLETED:
            return Decision.deny(EVENT_NOT_COMPLETED)
        return Decision.allow()

    if action in STAFF_VIEWS:
        if actor.role == UserRole.TEACHER:
            return Decision.allow()
        return Decision.deny(ROLE_MISMATCH)

    if action == Action.FEEDBACK_SUBMIT:
        if resource.subject_id != actor.id:
            return Decision.deny(SELF_ONLY)
        if resource.event is None or resource.event.status != EventStatus.COMPLETED:
            return Decision.deny(EVENT_NOT_COMPLETED)
        if not resource.event.attended_by(actor.id):
            return Decision.deny(NOT_AN_ATTENDEE)
        return Decision.allow()

    if action in SELF_SERVICE:
        if resource.subject_id != actor.id:
            return Decision.deny(SELF_ONLY)
        return Decision.allow()

    if action == Action.USER_READ:
        if actor.role == UserRole.TEACHER or resource.subject_id == actor.id:
            return Decision.allow()
        return Decision.deny(SELF_ONLY)

    return Decision.deny(UNKNOWN_ACTION)


def require(actor: Optional[models.User], action: Action, resource: Optional[ResourceRef] = None) -> Decision:
    """Run the gate and raise ``AuthorizationError`` on deny"""
    decision = authorize(actor, action, resource)
    if not decision.allowed:
        logger.info(
            "Denied %s for %s: %s",
            action.value,
            actor.id if actor is not None else "anonymous",
            decision.reason,
        )
        raise AuthorizationError(decision.reason)
    return decision
