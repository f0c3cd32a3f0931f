from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Dict, Optional, List, Set
import datetime

from .models import (
    UserRole,
    ClubCategory,
    MembershipRole,
    EventStatus,
    EventType,
    RegistrationStatus,
    FeedbackStatus,
)

TIME_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"


def to_minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def to_naive_utc(value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
    # everything is stored as naive UTC
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(datetime.timezone.utc).replace(tzinfo=None)
    return value


# --- USER SCHEMAS ---

# What the frontend sends to US
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str = Field(..., min_length=2, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    student_id: Optional[str] = Field(None, alias="studentId", max_length=50)

    class Config:
        populate_by_name = True


# Admins may create staff accounts, the role is fixed from then on
class AdminUserCreate(UserCreate):
    role: UserRole = UserRole.STUDENT


# profile fields only, role and account status are not editable here
class UserProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    department: Optional[str] = Field(None, max_length=100)
    student_id: Optional[str] = Field(None, alias="studentId", max_length=50)

    class Config:
        populate_by_name = True


class UserStatusUpdate(BaseModel):
    is_active: bool = Field(..., alias="isActive")

    class Config:
        populate_by_name = True


# What WE send back to the frontend (No password!)
class UserOut(BaseModel):
    id: str
    email: EmailStr
    name: str
    role: UserRole
    department: Optional[str] = None
    student_id: Optional[str] = None
    is_active: bool

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    success: bool
    data: Optional[UserOut] = None
    error_msg: Optional[str] = None


class Token(BaseModel):
    access_token: str
    token_type: str


# --- CLUB SCHEMAS ---

class ClubCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: str = Field(..., min_length=10, max_length=2000)
    category: ClubCategory
    coordinator_id: str = Field(..., alias="coordinatorId")
    contact_email: Optional[EmailStr] = Field(None, alias="contactEmail")
    meeting_schedule: Optional[str] = Field(None, alias="meetingSchedule", max_length=200)

    @field_validator("name", "description")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    class Config:
        populate_by_name = True


class ClubUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=2000)
    category: Optional[ClubCategory] = None
    contact_email: Optional[EmailStr] = Field(None, alias="contactEmail")
    meeting_schedule: Optional[str] = Field(None, alias="meetingSchedule", max_length=200)

    class Config:
        populate_by_name = True


class CoordinatorUpdate(BaseModel):
    coordinator_id: str = Field(..., alias="coordinatorId")

    class Config:
        populate_by_name = True


class MemberRoleUpdate(BaseModel):
    role: MembershipRole


class MembershipOut(BaseModel):
    id: int
    club_id: str
    user_id: str
    user_name: Optional[str] = None
    role: MembershipRole
    joined_at: datetime.datetime
    is_active: bool


class ClubOut(BaseModel):
    id: str
    slug: str
    name: str
    description: str
    category: ClubCategory
    coordinator_id: str
    coordinator_name: Optional[str] = None
    contact_email: Optional[str] = None
    meeting_schedule: Optional[str] = None
    is_active: bool
    member_count: int
    created_at: datetime.datetime


class ClubDetail(ClubOut):
    members: List[MembershipOut] = []


class ClubStats(BaseModel):
    club_id: str
    active_members: int
    total_memberships: int
    leaders: int
    total_events: int
    upcoming_events: int


class ClubApiResponse(BaseModel):
    success: bool
    data: Optional[ClubDetail] = None
    error_msg: Optional[str] = None


class AllClubsResponse(BaseModel):
    success: bool
    data: Optional[List[ClubOut]] = None
    error_msg: Optional[str] = None


class MembershipResponse(BaseModel):
    success: bool
    data: Optional[MembershipOut] = None
    error_msg: Optional[str] = None


class MembersResponse(BaseModel):
    success: bool
    data: Optional[List[MembershipOut]] = None
    error_msg: Optional[str] = None


class ClubStatsResponse(BaseModel):
    success: bool
    data: Optional[ClubStats] = None
    error_msg: Optional[str] = None


# --- EVENT SCHEMAS ---

class EventCreate(BaseModel):
    # Required Fields
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=10, max_length=5000)
    club_id: str = Field(..., alias="clubId")
    event_date: datetime.date = Field(..., alias="eventDate")
    start_time: str = Field(..., alias="startTime", pattern=TIME_PATTERN)
    end_time: str = Field(..., alias="endTime", pattern=TIME_PATTERN)
    venue: str = Field(..., min_length=2, max_length=200)
    registration_deadline: datetime.datetime = Field(..., alias="registrationDeadline")

    # Optional Fields
    event_type: Optional[EventType] = Field(None, alias="eventType")
    max_participants: int = Field(0, alias="maxParticipants", ge=0)  # 0 = unlimited

    @field_validator("registration_deadline")
    @classmethod
    def normalize_deadline(cls, value: datetime.datetime) -> datetime.datetime:
        return to_naive_utc(value)

    @model_validator(mode="after")
    def check_schedule(self):
        if to_minutes(self.end_time) <= to_minutes(self.start_time):
            raise ValueError("End time must be after start time")
        if self.registration_deadline.date() > self.event_date:
            raise ValueError("Registration deadline must not be after the event date")
        return self

    class Config:
        populate_by_name = True


# event update by club authority (only what is sent gets changed)
class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, min_length=10, max_length=5000)
    event_date: Optional[datetime.date] = Field(None, alias="eventDate")
    start_time: Optional[str] = Field(None, alias="startTime", pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, alias="endTime", pattern=TIME_PATTERN)
    venue: Optional[str] = Field(None, min_length=2, max_length=200)
    event_type: Optional[EventType] = Field(None, alias="eventType")
    max_participants: Optional[int] = Field(None, alias="maxParticipants", ge=0)
    registration_deadline: Optional[datetime.datetime] = Field(None, alias="registrationDeadline")

    @field_validator("registration_deadline")
    @classmethod
    def normalize_deadline(cls, value: Optional[datetime.datetime]) -> Optional[datetime.datetime]:
        return to_naive_utc(value)

    class Config:
        populate_by_name = True


class EventStatusUpdate(BaseModel):
    status: EventStatus


class EventCancel(BaseModel):
    reason: Optional[str] = Field(None, min_length=10, max_length=500)


class EventOut(BaseModel):
    id: str
    slug: str
    club_id: str
    club_name: Optional[str] = None
    title: str
    description: str
    event_type: Optional[EventType] = None
    event_date: datetime.date
    start_time: str
    end_time: str
    venue: str
    max_participants: int
    registration_deadline: datetime.datetime
    status: EventStatus
    cancellation_reason: Optional[str] = None
    registered_count: int
    available_spots: Optional[int] = None
    is_full: bool
    registration_status: str


class SingleEventResponse(BaseModel):
    success: bool
    data: Optional[EventOut] = None
    error_msg: Optional[str] = None


class MultiEventResponse(BaseModel):
    success: bool
    data: Optional[List[EventOut]] = None
    error_msg: Optional[str] = None


# --- REGISTRATION / ATTENDANCE SCHEMAS ---

class RegistrationOut(BaseModel):
    id: int
    event_id: str
    user_id: str
    user_name: Optional[str] = None
    registration_date: datetime.datetime
    status: RegistrationStatus


class RegistrationResponse(BaseModel):
    success: bool
    data: Optional[RegistrationOut] = None
    error_msg: Optional[str] = None


class RegistrationsResponse(BaseModel):
    success: bool
    data: Optional[List[RegistrationOut]] = None
    error_msg: Optional[str] = None


class AttendanceMark(BaseModel):
    present_user_ids: Set[str] = Field(..., alias="presentUserIds")

    class Config:
        populate_by_name = True


class AttendanceSummary(BaseModel):
    event_id: str
    event_title: str
    total_registered: int
    total_attended: int
    absent_count: int
    attendance_percentage: int
    attended_user_ids: List[str]
    absent_user_ids: List[str]
    marked_at: Optional[datetime.datetime] = None


class AttendanceResponse(BaseModel):
    success: bool
    data: Optional[AttendanceSummary] = None
    error_msg: Optional[str] = None


class ClubAttendanceReport(BaseModel):
    club_id: str
    club_name: str
    total_events: int
    total_registrations: int
    total_attended: int
    attendance_percentage: int
    events: List[AttendanceSummary] = []


class ClubAttendanceResponse(BaseModel):
    success: bool
    data: Optional[ClubAttendanceReport] = None
    error_msg: Optional[str] = None


class EventStats(BaseModel):
    total_events: int
    by_status: Dict[str, int]
    total_registrations: int
    total_attended: int


class EventStatsResponse(BaseModel):
    success: bool
    data: Optional[EventStats] = None
    error_msg: Optional[str] = None


# --- FEEDBACK SCHEMAS ---

class FeedbackCreate(BaseModel):
    rating_overall: int = Field(..., alias="ratingOverall", ge=1, le=5)
    rating_organization: Optional[int] = Field(None, alias="ratingOrganization", ge=1, le=5)
    rating_content: Optional[int] = Field(None, alias="ratingContent", ge=1, le=5)
    rating_venue: Optional[int] = Field(None, alias="ratingVenue", ge=1, le=5)
    rating_speakers: Optional[int] = Field(None, alias="ratingSpeakers", ge=1, le=5)

    what_worked_well: str = Field(..., alias="whatWorkedWell", min_length=10, max_length=2000)
    improvements: Optional[str] = Field(None, max_length=2000)
    additional_comments: Optional[str] = Field(None, alias="additionalComments", max_length=1000)
    recommend_to_others: Optional[bool] = Field(None, alias="recommendToOthers")
    anonymous: bool = True

    @field_validator("what_worked_well")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 10:
            raise ValueError("must be at least 10 characters")
        return value

    class Config:
        populate_by_name = True


class FeedbackOut(BaseModel):
    id: int
    event_id: str
    club_id: str
    user_id: Optional[str] = None  # None when anonymous
    anonymous: bool
    rating_overall: int
    rating_organization: Optional[int] = None
    rating_content: Optional[int] = None
    rating_venue: Optional[int] = None
    rating_speakers: Optional[int] = None
    what_worked_well: str
    improvements: Optional[str] = None
    additional_comments: Optional[str] = None
    recommend_to_others: Optional[bool] = None
    status: FeedbackStatus
    created_at: datetime.datetime


class FeedbackSummary(BaseModel):
    club_id: str
    total_feedback: int
    average_overall: Optional[float] = None
    average_organization: Optional[float] = None
    average_content: Optional[float] = None
    average_venue: Optional[float] = None
    average_speakers: Optional[float] = None
    rating_distribution: Dict[int, int]
    recommend_percentage: Optional[int] = None


class FeedbackResponse(BaseModel):
    success: bool
    data: Optional[FeedbackOut] = None
    error_msg: Optional[str] = None


class FeedbackListResponse(BaseModel):
    success: bool
    data: Optional[List[FeedbackOut]] = None
    error_msg: Optional[str] = None


class FeedbackSummaryResponse(BaseModel):
    success: bool
    data: Optional[FeedbackSummary] = None
    error_msg: Optional[str] = None
