"""
Authorization gate tests - pure decisions, no database needed
"""

import pytest

from clubportal import models
from clubportal.authorization import (
    Action,
    ResourceRef,
    authorize,
    require,
    EVENT_NOT_COMPLETED,
    NOT_AN_ATTENDEE,
    NOT_CLUB_AUTHORITY,
    ROLE_MISMATCH,
    SELF_ONLY,
    UNAUTHENTICATED,
)
from clubportal.errors import AuthorizationError
from clubportal.models import EventStatus, MembershipRole, RegistrationStatus, UserRole


def user(user_id, role, is_active=True):
    return models.User(id=user_id, role=role, is_active=is_active, name=user_id, email=f"{user_id}@uni.edu")


def club_with(coordinator_id, members=()):
    club = models.Club(id="club-1", name="Chess", coordinator_id=coordinator_id, is_active=True)
    for user_id, role, is_active in members:
        club.members.append(models.ClubMembership(user_id=user_id, role=role, is_active=is_active))
    return club


def event_in(club, status=EventStatus.UPCOMING):
    return models.Event(id="event-1", title="Open", status=status, club=club)


class TestAdmin:
    """Admins pass every rule"""

    @pytest.mark.parametrize("action", list(Action))
    def test_admin_allowed_everything(self, action):
        admin = user("a", UserRole.ADMIN)
        event = event_in(club_with("t"), status=EventStatus.UPCOMING)
        decision = authorize(admin, action, ResourceRef(event=event, subject_id="someone-else"))
        assert decision.allowed
        assert decision.reason is None

    def test_inactive_admin_denied(self):
        admin = user("a", UserRole.ADMIN, is_active=False)
        decision = authorize(admin, Action.CLUB_CREATE)
        assert not decision.allowed
        assert decision.reason == UNAUTHENTICATED

    def test_missing_actor_denied(self):
        decision = authorize(None, Action.CLUB_JOIN, ResourceRef(subject_id="x"))
        assert decision.reason == UNAUTHENTICATED


class TestClubMutations:
    """Teachers create clubs and edit their own; the rest is admin only"""

    def test_teacher_creates(self):
        assert authorize(user("t", UserRole.TEACHER), Action.CLUB_CREATE).allowed

    def test_coordinator_updates(self):
        assert authorize(user("t", UserRole.TEACHER), Action.CLUB_UPDATE, ResourceRef(club=club_with("t"))).allowed

    def test_leader_teacher_updates(self):
        club = club_with("other", members=[("t", MembershipRole.LEADER, True)])
        assert authorize(user("t", UserRole.TEACHER), Action.CLUB_UPDATE, ResourceRef(club=club)).allowed

    def test_outside_teacher_cannot_update(self):
        decision = authorize(user("t", UserRole.TEACHER), Action.CLUB_UPDATE, ResourceRef(club=club_with("other")))
        assert decision.reason == NOT_CLUB_AUTHORITY

    @pytest.mark.parametrize("action", [Action.CLUB_DELETE, Action.CLUB_SET_COORDINATOR])
    @pytest.mark.parametrize("coordinator_id", ["t", "other"])
    def test_teacher_denied_admin_actions(self, action, coordinator_id):
        club = club_with(coordinator_id)
        decision = authorize(user("t", UserRole.TEACHER), action, ResourceRef(club=club))
        assert decision.reason == ROLE_MISMATCH

    @pytest.mark.parametrize("action", [Action.CLUB_CREATE, Action.CLUB_UPDATE, Action.CLUB_SET_COORDINATOR])
    def test_student_denied(self, action):
        decision = authorize(user("s", UserRole.STUDENT), action, ResourceRef(club=club_with("t")))
        assert decision.reason == ROLE_MISMATCH


class TestEventMutations:
    """Teachers need authority over the owning club"""

    def test_coordinator_allowed(self):
        event = event_in(club_with("t"))
        assert authorize(user("t", UserRole.TEACHER), Action.EVENT_UPDATE, ResourceRef(event=event)).allowed

    def test_leader_teacher_allowed(self):
        event = event_in(club_with("other", members=[("t", MembershipRole.LEADER, True)]))
        assert authorize(user("t", UserRole.TEACHER), Action.EVENT_ADVANCE_STATUS, ResourceRef(event=event)).allowed

    def test_former_leader_denied(self):
        event = event_in(club_with("other", members=[("t", MembershipRole.LEADER, False)]))
        decision = authorize(user("t", UserRole.TEACHER), Action.EVENT_UPDATE, ResourceRef(event=event))
        assert decision.reason == NOT_CLUB_AUTHORITY

    def test_plain_member_teacher_denied(self):
        club = club_with("other", members=[("t", MembershipRole.MEMBER, True)])
        decision = authorize(user("t", UserRole.TEACHER), Action.EVENT_CREATE, ResourceRef(club=club))
        assert decision.reason == NOT_CLUB_AUTHORITY

    def test_student_leader_denied_on_role(self):
        event = event_in(club_with("t", members=[("s", MembershipRole.LEADER, True)]))
        decision = authorize(user("s", UserRole.STUDENT), Action.EVENT_DELETE, ResourceRef(event=event))
        assert decision.reason == ROLE_MISMATCH

    def test_promote_needs_club_authority(self):
        club = club_with("other")
        decision = authorize(user("t", UserRole.TEACHER), Action.MEMBER_PROMOTE, ResourceRef(club=club, subject_id="s"))
        assert decision.reason == NOT_CLUB_AUTHORITY

    def test_leader_cannot_promote(self):
        club = club_with("other", members=[("t", MembershipRole.LEADER, True)])
        decision = authorize(user("t", UserRole.TEACHER), Action.MEMBER_PROMOTE, ResourceRef(club=club, subject_id="s"))
        assert decision.reason == NOT_CLUB_AUTHORITY

    def test_coordinator_promotes(self):
        club = club_with("t")
        assert authorize(user("t", UserRole.TEACHER), Action.MEMBER_PROMOTE, ResourceRef(club=club, subject_id="s")).allowed


class TestAttendance:
    """Marking attendance needs staff and a completed event"""

    def test_teacher_on_completed_event(self):
        event = event_in(club_with("other"), status=EventStatus.COMPLETED)
        assert authorize(user("t", UserRole.TEACHER), Action.ATTENDANCE_MARK, ResourceRef(event=event)).allowed

    @pytest.mark.parametrize("status", [EventStatus.UPCOMING, EventStatus.ONGOING, EventStatus.CANCELLED])
    def test_teacher_on_open_event(self, status):
        event = event_in(club_with("t"), status=status)
        decision = authorize(user("t", UserRole.TEACHER), Action.ATTENDANCE_MARK, ResourceRef(event=event))
        assert decision.reason == EVENT_NOT_COMPLETED

    def test_student_denied_on_role(self):
        event = event_in(club_with("t"), status=EventStatus.COMPLETED)
        decision = authorize(user("s", UserRole.STUDENT), Action.ATTENDANCE_MARK, ResourceRef(event=event))
        assert decision.reason == ROLE_MISMATCH

    def test_student_cannot_view_summary(self):
        event = event_in(club_with("t"), status=EventStatus.COMPLETED)
        decision = authorize(user("s", UserRole.STUDENT), Action.ATTENDANCE_VIEW, ResourceRef(event=event))
        assert decision.reason == ROLE_MISMATCH


def attended(event, *user_ids):
    for user_id in user_ids:
        event.registrations.append(models.EventRegistration(user_id=user_id, status=RegistrationStatus.ATTENDED))
    return event


class TestFeedback:
    """Only attendees of a completed event leave feedback"""

    def test_attendee_allowed(self):
        event = attended(event_in(club_with("t"), status=EventStatus.COMPLETED), "s")
        assert authorize(user("s", UserRole.STUDENT), Action.FEEDBACK_SUBMIT, ResourceRef(event=event, subject_id="s")).allowed

    def test_registered_but_absent(self):
        event = event_in(club_with("t"), status=EventStatus.COMPLETED)
        event.registrations.append(models.EventRegistration(user_id="s", status=RegistrationStatus.REGISTERED))
        decision = authorize(user("s", UserRole.STUDENT), Action.FEEDBACK_SUBMIT, ResourceRef(event=event, subject_id="s"))
        assert decision.reason == NOT_AN_ATTENDEE

    def test_event_not_completed(self):
        event = attended(event_in(club_with("t"), status=EventStatus.ONGOING), "s")
        decision = authorize(user("s", UserRole.STUDENT), Action.FEEDBACK_SUBMIT, ResourceRef(event=event, subject_id="s"))
        assert decision.reason == EVENT_NOT_COMPLETED

    def test_on_behalf_of_someone_else(self):
        event = attended(event_in(club_with("t"), status=EventStatus.COMPLETED), "s", "x")
        decision = authorize(user("s", UserRole.STUDENT), Action.FEEDBACK_SUBMIT, ResourceRef(event=event, subject_id="x"))
        assert decision.reason == SELF_ONLY

    def test_viewing_is_staff_only(self):
        event = event_in(club_with("t"), status=EventStatus.COMPLETED)
        assert authorize(user("t", UserRole.TEACHER), Action.FEEDBACK_VIEW, ResourceRef(event=event)).allowed
        decision = authorize(user("s", UserRole.STUDENT), Action.FEEDBACK_VIEW, ResourceRef(event=event))
        assert decision.reason == ROLE_MISMATCH

    def test_archive_is_admin_only(self):
        decision = authorize(user("t", UserRole.TEACHER), Action.FEEDBACK_ARCHIVE)
        assert decision.reason == ROLE_MISMATCH


class TestSelfService:
    """Join, leave, register and cancel act on one's own identity"""

    @pytest.mark.parametrize("role", [UserRole.STUDENT, UserRole.TEACHER])
    @pytest.mark.parametrize("action", [
        Action.CLUB_JOIN, Action.CLUB_LEAVE, Action.EVENT_REGISTER, Action.EVENT_CANCEL_REGISTRATION,
    ])
    def test_self_allowed(self, role, action):
        assert authorize(user("u", role), action, ResourceRef(subject_id="u")).allowed

    @pytest.mark.parametrize("role", [UserRole.STUDENT, UserRole.TEACHER])
    def test_other_subject_denied(self, role):
        decision = authorize(user("u", role), Action.EVENT_REGISTER, ResourceRef(subject_id="v"))
        assert decision.reason == SELF_ONLY


class TestAccounts:
    """User management is admin only, history is self or staff"""

    def test_teacher_cannot_manage_users(self):
        decision = authorize(user("t", UserRole.TEACHER), Action.USER_MANAGE, ResourceRef(subject_id="s"))
        assert decision.reason == ROLE_MISMATCH

    def test_teacher_reads_any_history(self):
        assert authorize(user("t", UserRole.TEACHER), Action.USER_READ, ResourceRef(subject_id="s")).allowed

    def test_student_reads_only_own_history(self):
        assert authorize(user("s", UserRole.STUDENT), Action.USER_READ, ResourceRef(subject_id="s")).allowed
        assert authorize(user("s", UserRole.STUDENT), Action.USER_READ, ResourceRef(subject_id="x")).reason == SELF_ONLY

    @pytest.mark.parametrize("role", [UserRole.STUDENT, UserRole.TEACHER])
    def test_profile_is_self_only(self, role):
        assert authorize(user("u", role), Action.USER_UPDATE, ResourceRef(subject_id="u")).allowed
        assert authorize(user("u", role), Action.USER_UPDATE, ResourceRef(subject_id="v")).reason == SELF_ONLY

    def test_reports_are_staff_only(self):
        assert authorize(user("t", UserRole.TEACHER), Action.REPORT_VIEW).allowed
        assert authorize(user("s", UserRole.STUDENT), Action.REPORT_VIEW).reason == ROLE_MISMATCH


class TestRequire:
    """require() turns a deny into an AuthorizationError"""

    def test_raises_with_reason_code(self):
        with pytest.raises(AuthorizationError) as exc_info:
            require(user("s", UserRole.STUDENT), Action.CLUB_CREATE)
        assert exc_info.value.code == ROLE_MISMATCH
        assert exc_info.value.status_code == 403

    def test_returns_decision_on_allow(self):
        assert require(user("a", UserRole.ADMIN), Action.CLUB_CREATE).allowed
