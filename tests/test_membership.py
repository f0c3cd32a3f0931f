"""
Club membership engine and club administration tests
"""

import pytest
from sqlalchemy import select

from clubportal import attendance, clubs, events, membership, models, registration, schemas
from clubportal.errors import (
    AlreadyMember,
    AuthorizationError,
    ClubInactive,
    DuplicateClub,
    HistoryRecorded,
    InvalidCoordinator,
    NotAMember,
    NotFoundError,
)
from clubportal.models import EventStatus, MembershipRole, UserRole


class TestJoin:
    """join_club"""

    def test_join_appends_active_member_row(self, db, club, student):
        row = membership.join_club(db, student, club.id, student.id)

        assert row.user_id == student.id
        assert row.role == MembershipRole.MEMBER
        assert row.is_active
        assert row.joined_at is not None
        db.refresh(club)
        assert club.member_count == 1

    def test_join_twice_rejected_without_duplicate(self, db, club, student):
        membership.join_club(db, student, club.id, student.id)

        with pytest.raises(AlreadyMember):
            membership.join_club(db, student, club.id, student.id)

        assert len(membership.get_roster(db, club.id, include_inactive=True)) == 1

    def test_join_inactive_club(self, db, make_club, student):
        inactive = make_club(is_active=False)
        with pytest.raises(ClubInactive):
            membership.join_club(db, student, inactive.id, student.id)
        assert membership.get_roster(db, inactive.id) == []

    def test_join_on_behalf_of_someone_else(self, db, club, student, other_student):
        with pytest.raises(AuthorizationError) as exc_info:
            membership.join_club(db, student, club.id, other_student.id)
        assert exc_info.value.code == "self-only"

    def test_admin_joins_on_behalf(self, db, club, admin, student):
        row = membership.join_club(db, admin, club.id, student.id)
        assert row.user_id == student.id

    def test_rejoin_after_leave_creates_new_row(self, db, club, student):
        membership.join_club(db, student, club.id, student.id)
        membership.leave_club(db, student, club.id, student.id)
        membership.join_club(db, student, club.id, student.id)

        history = membership.get_roster(db, club.id, include_inactive=True)
        assert [m.is_active for m in history] == [False, True]


class TestLeave:
    """leave_club"""

    def test_leave_twice(self, db, club, student):
        membership.join_club(db, student, club.id, student.id)

        left = membership.leave_club(db, student, club.id, student.id)
        assert not left.is_active

        with pytest.raises(NotAMember):
            membership.leave_club(db, student, club.id, student.id)

        history = membership.get_roster(db, club.id, include_inactive=True)
        assert len(history) == 1

    def test_leave_keeps_coordinator(self, db, club, teacher):
        membership.join_club(db, teacher, club.id, teacher.id)
        membership.leave_club(db, teacher, club.id, teacher.id)

        db.refresh(club)
        assert club.coordinator_id == teacher.id


class TestMemberCount:
    """Reported count always equals the filtered history"""

    def test_count_matches_filtered_history(self, db, club, make_user):
        people = [make_user(UserRole.STUDENT) for _ in range(4)]
        for person in people:
            membership.join_club(db, person, club.id, person.id)
        membership.leave_club(db, people[1], club.id, people[1].id)
        membership.leave_club(db, people[3], club.id, people[3].id)

        db.refresh(club)
        history = membership.get_roster(db, club.id, include_inactive=True)
        assert club.member_count == len([m for m in history if m.is_active]) == 2
        assert clubs.club_stats(db, club.id).active_members == 2
        assert clubs.club_stats(db, club.id).total_memberships == 4


class TestPromote:
    """promote_member"""

    def test_coordinator_promotes_member_to_leader(self, db, club, teacher, student):
        membership.join_club(db, student, club.id, student.id)

        membership.promote_member(db, teacher, club.id, student.id, MembershipRole.LEADER)

        assert membership.get_membership(db, club.id, student.id).role == MembershipRole.LEADER

    def test_promote_non_member(self, db, club, teacher, student):
        with pytest.raises(NotAMember):
            membership.promote_member(db, teacher, club.id, student.id, MembershipRole.LEADER)

    def test_promote_to_coordinator_replaces_slot(self, db, club, teacher, outside_teacher):
        membership.join_club(db, teacher, club.id, teacher.id)

        updated = membership.promote_member(db, teacher, club.id, outside_teacher.id, MembershipRole.COORDINATOR)

        assert updated.coordinator_id == outside_teacher.id
        # previous coordinator keeps their member row
        assert membership.get_membership(db, club.id, teacher.id) is not None

    def test_student_cannot_be_coordinator(self, db, club, admin, student):
        with pytest.raises(InvalidCoordinator):
            membership.promote_member(db, admin, club.id, student.id, MembershipRole.COORDINATOR)

    def test_outside_teacher_denied(self, db, club, outside_teacher, student):
        membership.join_club(db, student, club.id, student.id)
        with pytest.raises(AuthorizationError) as exc_info:
            membership.promote_member(db, outside_teacher, club.id, student.id, MembershipRole.LEADER)
        assert exc_info.value.code == "not-club-authority"
        assert membership.get_membership(db, club.id, student.id).role == MembershipRole.MEMBER

    def test_leader_cannot_promote(self, db, make_club, admin, outside_teacher, student):
        club = make_club(coordinator=admin, members=[(outside_teacher, MembershipRole.LEADER), (student, MembershipRole.MEMBER)])
        with pytest.raises(AuthorizationError) as exc_info:
            membership.promote_member(db, outside_teacher, club.id, student.id, MembershipRole.LEADER)
        assert exc_info.value.code == "not-club-authority"

        with pytest.raises(AuthorizationError):
            membership.promote_member(db, outside_teacher, club.id, outside_teacher.id, MembershipRole.COORDINATOR)
        db.refresh(club)
        assert club.coordinator_id == admin.id


class TestClubAdministration:
    """Club create/update/coordinator"""

    def club_in(self, coordinator, name="Robotics Club"):
        return schemas.ClubCreate(
            name=name,
            description="We build robots every week.",
            category=models.ClubCategory.TECHNICAL,
            coordinator_id=coordinator.id,
        )

    def test_teacher_creates_club(self, db, teacher):
        club = clubs.create_club(db, teacher, self.club_in(teacher))
        assert club.slug == "robotics-club"
        assert club.coordinator_id == teacher.id
        assert club.member_count == 0

    def test_student_cannot_create_club(self, db, student, teacher):
        with pytest.raises(AuthorizationError):
            clubs.create_club(db, student, self.club_in(teacher))

    def test_duplicate_name(self, db, teacher):
        clubs.create_club(db, teacher, self.club_in(teacher))
        with pytest.raises(DuplicateClub):
            clubs.create_club(db, teacher, self.club_in(teacher))

    def test_coordinator_must_be_staff(self, db, admin, student):
        with pytest.raises(InvalidCoordinator):
            clubs.create_club(db, admin, self.club_in(student))

    def test_set_coordinator(self, db, club, admin, outside_teacher):
        updated = clubs.set_coordinator(db, admin, club.id, outside_teacher.id)
        assert updated.coordinator_id == outside_teacher.id

    def test_deactivate_is_soft(self, db, club, admin, student):
        membership.join_club(db, student, club.id, student.id)
        clubs.deactivate_club(db, admin, club.id)

        assert clubs.list_clubs(db) == []
        assert len(membership.get_roster(db, club.id)) == 1

    def test_coordinator_updates_club(self, db, club, teacher):
        updated = clubs.update_club(db, teacher, club.id, schemas.ClubUpdate(meeting_schedule="Fridays 5pm"))
        assert updated.meeting_schedule == "Fridays 5pm"

    def test_outside_teacher_cannot_update_club(self, db, club, outside_teacher):
        with pytest.raises(AuthorizationError) as exc_info:
            clubs.update_club(db, outside_teacher, club.id, schemas.ClubUpdate(name="Taken Over"))
        assert exc_info.value.code == "not-club-authority"
        db.refresh(club)
        assert club.name != "Taken Over"

    def test_outside_teacher_cannot_take_over_club(self, db, club, event, teacher, outside_teacher):
        with pytest.raises(AuthorizationError) as exc_info:
            clubs.set_coordinator(db, outside_teacher, club.id, outside_teacher.id)
        assert exc_info.value.code == "role-mismatch"

        db.refresh(club)
        assert club.coordinator_id == teacher.id
        with pytest.raises(AuthorizationError):
            events.advance_status(db, outside_teacher, event.id, EventStatus.CANCELLED)

    def test_coordinator_cannot_reassign_or_remove(self, db, club, teacher, outside_teacher):
        with pytest.raises(AuthorizationError) as exc_info:
            clubs.set_coordinator(db, teacher, club.id, outside_teacher.id)
        assert exc_info.value.code == "role-mismatch"

        with pytest.raises(AuthorizationError):
            clubs.deactivate_club(db, teacher, club.id)

    def test_teacher_cannot_delete_club(self, db, club, outside_teacher):
        with pytest.raises(AuthorizationError) as exc_info:
            clubs.delete_club(db, outside_teacher, club.id)
        assert exc_info.value.code == "role-mismatch"
        assert clubs.get_club(db, club.id).id == club.id

    def test_delete_keeps_attendance_history(self, db, club, event, admin, student, set_status):
        registration.register_for_event(db, student, event.id, student.id)
        set_status(event, EventStatus.COMPLETED)
        attendance.mark_attendance(db, admin, event.id, [student.id])

        with pytest.raises(HistoryRecorded):
            clubs.delete_club(db, admin, club.id)
        with pytest.raises(HistoryRecorded):
            events.delete_event(db, admin, event.id)

        kept = db.execute(select(models.AttendanceRecord).where(models.AttendanceRecord.event_id == event.id)).scalars().all()
        assert [r.user_id for r in kept] == [student.id]

    def test_delete_without_history(self, db, club, event, admin):
        clubs.delete_club(db, admin, club.id)
        with pytest.raises(NotFoundError):
            clubs.get_club(db, club.id)
