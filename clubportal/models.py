from sqlalchemy import String, Boolean, ForeignKey, Text, Date, DateTime, Integer, Index, text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .database import Base
from typing import List, Optional
import datetime
import uuid
import re
from enum import Enum


class UserRole(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class ClubCategory(str, Enum):
    TECHNICAL = "technical"
    CULTURAL = "cultural"
    SPORTS = "sports"
    ACADEMIC = "academic"
    SOCIAL = "social"
    ARTS = "arts"
    MUSIC = "music"
    DANCE = "dance"
    DRAMA = "drama"
    PHOTOGRAPHY = "photography"
    LITERATURE = "literature"
    DEBATE = "debate"
    ENTREPRENEURSHIP = "entrepreneurship"
    VOLUNTEER = "volunteer"
    ENVIRONMENTAL = "environmental"


class MembershipRole(str, Enum):
    MEMBER = "member"
    LEADER = "leader"
    COORDINATOR = "coordinator"


class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class EventType(str, Enum):
    WORKSHOP = "workshop"
    SEMINAR = "seminar"
    COMPETITION = "competition"
    MEETING = "meeting"
    CULTURAL = "cultural"
    SPORTS = "sports"
    CONFERENCE = "conference"
    HACKATHON = "hackathon"
    EXHIBITION = "exhibition"
    PERFORMANCE = "performance"
    NETWORKING = "networking"
    TRAINING = "training"
    CEREMONY = "ceremony"
    FUNDRAISER = "fundraiser"


class RegistrationStatus(str, Enum):
    REGISTERED = "registered"
    ATTENDED = "attended"
    CANCELLED = "cancelled"


class FeedbackStatus(str, Enum):
    SUBMITTED = "submitted"
    ARCHIVED = "archived"


# rows in these states hold a seat
ACTIVE_REGISTRATION_STATUSES = (RegistrationStatus.REGISTERED, RegistrationStatus.ATTENDED)


def generate_uuid():
    return str(uuid.uuid4())


def generate_slug(text: str) -> str:
    # Basic slugify: lowercase, remove special chars, replace space with dash
    text = text.lower()
    text = re.sub(r'[^a-z0-9\s-]', '', text)
    text = re.sub(r'\s+', '-', text.strip())
    return text


def utcnow() -> datetime.datetime:
    # naive UTC, matches what SQLite hands back
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def enum_column(enum_cls):
    # store the lowercase values, the partial indexes below compare against them
    return SQLEnum(enum_cls, values_callable=lambda e: [member.value for member in e])


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String)

    # Profile
    name: Mapped[str] = mapped_column(String, index=True)
    department: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    student_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Status / Access Control
    role: Mapped[UserRole] = mapped_column(
        enum_column(UserRole),
        nullable=False,
        default=UserRole.STUDENT
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow)

    # Relationships
    memberships = relationship("ClubMembership", back_populates="user")
    registrations = relationship("EventRegistration", back_populates="user", foreign_keys="EventRegistration.user_id")


class Club(Base):
    __tablename__ = "clubs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    slug: Mapped[str] = mapped_column(String, unique=True, index=True)

    # Content
    name: Mapped[str] = mapped_column(String, unique=True, index=True)
    description: Mapped[str] = mapped_column(Text)
    category: Mapped[ClubCategory] = mapped_column(enum_column(ClubCategory), index=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    meeting_schedule: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    # Exactly one coordinator, not required to appear in members
    coordinator_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"))
    coordinator = relationship("User", foreign_keys=[coordinator_id])

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow)

    # Full membership history, including soft-deleted rows
    members: Mapped[List["ClubMembership"]] = relationship(
        "ClubMembership",
        back_populates="club",
        order_by="ClubMembership.id",
        cascade="all, delete-orphan"
    )
    events = relationship("Event", back_populates="club", cascade="all, delete-orphan")

    @property
    def active_members(self) -> List["ClubMembership"]:
        return [m for m in self.members if m.is_active]

    @property
    def member_count(self) -> int:
        # always recomputed from the rows
        return len(self.active_members)

    def active_membership_for(self, user_id: str) -> Optional["ClubMembership"]:
        for membership in self.members:
            if membership.is_active and membership.user_id == user_id:
                return membership
        return None


class ClubMembership(Base):
    __tablename__ = "club_memberships"
    __table_args__ = (
        Index(
            "uq_active_membership",
            "club_id",
            "user_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    club_id: Mapped[str] = mapped_column(String, ForeignKey("clubs.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    role: Mapped[MembershipRole] = mapped_column(enum_column(MembershipRole), default=MembershipRole.MEMBER)
    joined_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    club = relationship("Club", back_populates="members")
    user = relationship("User", back_populates="memberships")


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=generate_uuid)
    slug: Mapped[str] = mapped_column(String, index=True)

    # Content
    title: Mapped[str] = mapped_column(String, index=True)
    description: Mapped[str] = mapped_column(Text)
    event_type: Mapped[Optional[EventType]] = mapped_column(enum_column(EventType), nullable=True)

    # Time
    event_date: Mapped[datetime.date] = mapped_column(Date, index=True)
    start_time: Mapped[str] = mapped_column(String)  # Format: "HH:MM"
    end_time: Mapped[str] = mapped_column(String)    # Format: "HH:MM"

    # Location
    venue: Mapped[str] = mapped_column(String)

    # Registration
    max_participants: Mapped[int] = mapped_column(Integer, default=0)  # 0 = unlimited
    registration_deadline: Mapped[datetime.datetime] = mapped_column(DateTime)

    # Lifecycle
    status: Mapped[EventStatus] = mapped_column(
        enum_column(EventStatus),
        nullable=False,
        default=EventStatus.UPCOMING
    )
    cancellation_reason: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cancelled_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow)

    # Relationships
    club_id: Mapped[str] = mapped_column(String, ForeignKey("clubs.id", ondelete="CASCADE"), index=True)
    club = relationship("Club", back_populates="events")

    organizer_id: Mapped[Optional[str]] = mapped_column(String, ForeignKey("users.id"), nullable=True)
    organizer = relationship("User", foreign_keys=[organizer_id])

    registrations: Mapped[List["EventRegistration"]] = relationship(
        "EventRegistration",
        back_populates="event",
        order_by="EventRegistration.id",
        cascade="all, delete-orphan"
    )
    # history rows: never removed along with the event
    attendance_records: Mapped[List["AttendanceRecord"]] = relationship(
        "AttendanceRecord",
        back_populates="event",
        order_by="AttendanceRecord.id",
        passive_deletes="all"
    )
    feedback_entries: Mapped[List["FeedbackEntry"]] = relationship(
        "FeedbackEntry",
        back_populates="event",
        order_by="FeedbackEntry.id",
        passive_deletes="all"
    )

    @property
    def active_registrations(self) -> List["EventRegistration"]:
        return [r for r in self.registrations if r.status in ACTIVE_REGISTRATION_STATUSES]

    @property
    def active_count(self) -> int:
        return len(self.active_registrations)

    @property
    def available_spots(self) -> Optional[int]:
        if self.max_participants <= 0:
            return None
        return max(self.max_participants - self.active_count, 0)

    @property
    def is_full(self) -> bool:
        return self.max_participants > 0 and self.active_count >= self.max_participants

    def active_registration_for(self, user_id: str) -> Optional["EventRegistration"]:
        for registration in self.registrations:
            if registration.user_id == user_id and registration.status in ACTIVE_REGISTRATION_STATUSES:
                return registration
        return None

    def attended_by(self, user_id: str) -> bool:
        return any(
            r.user_id == user_id and r.status == RegistrationStatus.ATTENDED
            for r in self.registrations
        )


class EventRegistration(Base):
    __tablename__ = "event_registrations"
    __table_args__ = (
        Index(
            "uq_active_registration",
            "event_id",
            "user_id",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String, ForeignKey("events.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    registration_date: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow)
    status: Mapped[RegistrationStatus] = mapped_column(
        enum_column(RegistrationStatus),
        nullable=False,
        default=RegistrationStatus.REGISTERED
    )

    event = relationship("Event", back_populates="registrations")
    user = relationship("User", back_populates="registrations", foreign_keys=[user_id])


class AttendanceRecord(Base):
    __tablename__ = "attendance_records"
    __table_args__ = (
        Index("uq_attendance_event_user", "event_id", "user_id", unique=True),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # back-references only, no ownership of the event or the user
    event_id: Mapped[str] = mapped_column(String, ForeignKey("events.id"), index=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    marked_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow)
    marked_by_id: Mapped[Optional[str]] = mapped_column(String, ForeignKey("users.id"), nullable=True)

    event = relationship("Event", back_populates="attendance_records")
    user = relationship("User", foreign_keys=[user_id])


class FeedbackEntry(Base):
    __tablename__ = "feedback_entries"
    __table_args__ = (
        Index("uq_feedback_event_user", "event_id", "user_id", unique=True),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String, ForeignKey("events.id"), index=True)
    club_id: Mapped[str] = mapped_column(String, ForeignKey("clubs.id"), index=True)
    # always stored so one attendee submits once, hidden on output when anonymous
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id"), index=True)
    anonymous: Mapped[bool] = mapped_column(Boolean, default=True)

    # Ratings, 1..5
    rating_overall: Mapped[int] = mapped_column(Integer)
    rating_organization: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rating_content: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rating_venue: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rating_speakers: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Content
    what_worked_well: Mapped[str] = mapped_column(Text)
    improvements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    additional_comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    recommend_to_others: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    status: Mapped[FeedbackStatus] = mapped_column(
        enum_column(FeedbackStatus),
        nullable=False,
        default=FeedbackStatus.SUBMITTED
    )
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow)

    event = relationship("Event", back_populates="feedback_entries")
    user = relationship("User", foreign_keys=[user_id])
