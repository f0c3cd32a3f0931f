"""
Domain errors raised by the club, membership, registration, attendance and
feedback operations.

Every error carries a stable ``code`` that the API hands back to the
frontend, and the HTTP status it maps to. None of them is fatal: the
caller can re-fetch state and try something else.
"""

from fastapi import status

if hasattr(status, "HTTP_422_UNPROCESSABLE_CONTENT"):
    HTTP_422 = status.HTTP_422_UNPROCESSABLE_CONTENT
else:  # older Starlette builds
    HTTP_422 = status.HTTP_422_UNPROCESSABLE_ENTITY


class PortalError(Exception):
    """Base class for every expected domain failure"""

    code = "PortalError"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Operation failed"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


# --- Authorization ---

class AuthorizationError(PortalError):
    """The gate denied the action; ``code`` is the deny reason"""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, reason: str, message: str = None):
        self.code = reason
        super().__init__(message or f"Action not allowed: {reason}")


# --- Referential ---

class NotFoundError(PortalError):
    code = "NotFound"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: str = None):
        self.resource = resource
        if resource_id:
            super().__init__(f"{resource} {resource_id} not found")
        else:
            super().__init__(f"{resource} not found")


class ReferentialError(PortalError):
    status_code = HTTP_422


class UnknownParticipant(ReferentialError):
    code = "UnknownParticipant"
    default_message = "Attendance can only be marked for registered participants"

    def __init__(self, user_ids):
        self.user_ids = sorted(user_ids)
        super().__init__(
            f"No active registration for: {', '.join(self.user_ids)}"
        )


class InvalidCoordinator(ReferentialError):
    code = "InvalidCoordinator"
    default_message = "Coordinator must be an active teacher or admin"


# --- Lifecycle state ---

class StateError(PortalError):
    status_code = status.HTTP_409_CONFLICT


class ClubInactive(StateError):
    code = "ClubInactive"
    default_message = "Club is not active"


class EventNotUpcoming(StateError):
    code = "EventNotUpcoming"
    default_message = "Registration is only possible for upcoming events"


class DeadlinePassed(StateError):
    code = "DeadlinePassed"
    default_message = "Registration deadline has passed"


class EventNotCompleted(StateError):
    code = "EventNotCompleted"
    default_message = "Attendance can only be recorded for completed events"


class EventAlreadyStarted(StateError):
    code = "EventAlreadyStarted"
    default_message = "Event has already started"


class HistoryRecorded(StateError):
    code = "HistoryRecorded"
    default_message = "Events with recorded attendance or feedback cannot be deleted, cancel them instead"


class InvalidStatusTransition(StateError):
    code = "InvalidStatusTransition"

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move event from '{current.value}' to '{target.value}'")


# --- Roster conflicts ---

class ConflictError(PortalError):
    status_code = status.HTTP_409_CONFLICT


class AlreadyMember(ConflictError):
    code = "AlreadyMember"
    default_message = "Already a member of this club"


class NotAMember(ConflictError):
    code = "NotAMember"
    default_message = "Not a member of this club"


class AlreadyRegistered(ConflictError):
    code = "AlreadyRegistered"
    default_message = "Already registered for this event"


class NotRegistered(ConflictError):
    code = "NotRegistered"
    default_message = "Not registered for this event"


class EventFull(ConflictError):
    code = "EventFull"
    default_message = "Event has reached maximum capacity"


class EmailAlreadyRegistered(ConflictError):
    code = "EmailAlreadyRegistered"
    default_message = "Email already registered"


class DuplicateClub(ConflictError):
    code = "DuplicateClub"
    default_message = "A club with this name already exists"


class FeedbackAlreadySubmitted(ConflictError):
    code = "FeedbackAlreadySubmitted"
    default_message = "Feedback for this event was already submitted"


class CapacityBelowRoster(ConflictError):
    code = "CapacityBelowRoster"
    default_message = "Capacity cannot be lower than the number of active registrations"


# --- Input ---

class InvalidSchedule(PortalError):
    code = "InvalidSchedule"
    status_code = HTTP_422
    default_message = "Event schedule is inconsistent"
