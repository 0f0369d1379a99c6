"""
Database Schemas for the Irati course management backend

Each record model mirrors one MongoDB collection; the *In / *Update models are
the request bodies that write to it.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Type, TypeVar

from pydantic import BaseModel, Field, model_validator

Role = Literal["socio", "monitor", "professor", "gestor"]
Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
CourseStatus = Literal["upcoming", "active", "completed"]
AttendanceStatus = Literal["pending", "present", "absent", "excused"]
InterviewStatus = Literal["scheduled", "completed", "cancelled"]

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"

M = TypeVar("M", bound=BaseModel)


def from_doc(model: Type[M], doc: Dict[str, Any]) -> M:
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    return model.model_validate(data)


# Users
class Profile(BaseModel):
    id: str
    name: str
    email: str
    avatar_url: Optional[str] = None


class UserWithRole(Profile):
    role: Role = "socio"


class RoleAssignment(BaseModel):
    role: Role


# Courses
class Course(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    category: str
    instructor_id: Optional[str] = None
    instructor_name: str = "Sin asignar"
    duration: str = "2 horas"
    min_capacity: int = 5
    max_capacity: int = 25
    start_date: date
    end_date: Optional[date] = None
    schedule_days: List[Weekday] = []
    schedule_time: Optional[str] = "10:00"
    status: CourseStatus = "upcoming"
    image_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CourseIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    category: str = Field(..., min_length=1)
    instructor_id: Optional[str] = None
    duration: str = Field("2 horas", min_length=1)
    min_capacity: int = Field(5, ge=1)
    max_capacity: int = Field(25, ge=1)
    start_date: date
    end_date: Optional[date] = None
    schedule_days: List[Weekday] = Field(..., min_length=1)
    schedule_time: str = Field("10:00", pattern=TIME_PATTERN)
    status: CourseStatus = "upcoming"
    image_url: Optional[str] = None

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min_capacity > self.max_capacity:
            raise ValueError("min_capacity must not exceed max_capacity")
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CourseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, min_length=1)
    instructor_id: Optional[str] = None
    duration: Optional[str] = Field(None, min_length=1)
    min_capacity: Optional[int] = Field(None, ge=1)
    max_capacity: Optional[int] = Field(None, ge=1)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    schedule_days: Optional[List[Weekday]] = Field(None, min_length=1)
    schedule_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    status: Optional[CourseStatus] = None
    image_url: Optional[str] = None


class CapacitySummary(BaseModel):
    enrolled: int
    min_capacity: int
    max_capacity: int
    available_spots: int
    over_capacity: bool
    below_minimum: bool


class CourseDetail(Course):
    capacity: CapacitySummary


# Sessions
class CourseSession(BaseModel):
    id: str
    course_id: str
    session_date: date
    start_time: str
    end_time: str
    location: Optional[str] = None
    notes: Optional[str] = None
    is_cancelled: bool = False


class SessionDraft(BaseModel):
    """One expanded occurrence of a course's weekly schedule, not yet stored."""

    session_date: date
    start_time: str
    end_time: str


class SessionIn(BaseModel):
    session_date: date
    start_time: str = Field("10:00", pattern=TIME_PATTERN)
    end_time: str = Field("12:00", pattern=TIME_PATTERN)
    location: Optional[str] = None
    notes: Optional[str] = None


class SessionUpdate(BaseModel):
    session_date: Optional[date] = None
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    location: Optional[str] = None
    notes: Optional[str] = None
    is_cancelled: Optional[bool] = None


class GenerationResult(BaseModel):
    created: int
    sessions: List[CourseSession]


# Enrollments
class Enrollment(BaseModel):
    id: str
    user_id: str
    course_id: str
    status: str = "enrolled"
    enrolled_at: datetime
    completed_at: Optional[datetime] = None


class EnrollmentView(Enrollment):
    profile: Optional[Profile] = None


class EnrollRequest(BaseModel):
    # Managers may enroll someone else; members enroll themselves
    user_id: Optional[str] = None


# Attendance
class AttendanceRecord(BaseModel):
    id: str
    session_id: str
    user_id: str
    status: AttendanceStatus = "pending"
    notes: Optional[str] = None


class AttendanceMark(BaseModel):
    status: AttendanceStatus
    notes: Optional[str] = None


class RosterEntry(BaseModel):
    user_id: str
    enrollment_id: str
    profile: Optional[Profile] = None
    status: AttendanceStatus = "pending"
    notes: Optional[str] = None


class AttendanceSummaryRow(BaseModel):
    user_id: str
    profile: Optional[Profile] = None
    present: int = 0
    absent: int = 0
    excused: int = 0
    pending: int = 0
    rate: Optional[float] = None


# Monitor assignments
class MonitorAssignment(BaseModel):
    id: str
    monitor_id: str
    socio_id: str
    assigned_at: datetime
    notes: Optional[str] = None


class AssignmentView(MonitorAssignment):
    monitor: Optional[Profile] = None
    socio: Optional[Profile] = None


class AssignmentIn(BaseModel):
    monitor_id: Optional[str] = None
    socio_id: Optional[str] = None
    notes: Optional[str] = None


# Interviews
class Interview(BaseModel):
    id: str
    socio_id: str
    monitor_id: str
    scheduled_date: datetime
    notes: Optional[str] = None
    status: InterviewStatus = "scheduled"


class InterviewIn(BaseModel):
    socio_id: Optional[str] = None
    monitor_id: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    status: InterviewStatus = "scheduled"
    notes: Optional[str] = None


class InterviewUpdate(BaseModel):
    socio_id: Optional[str] = None
    monitor_id: Optional[str] = None
    scheduled_date: Optional[datetime] = None
    status: Optional[InterviewStatus] = None
    notes: Optional[str] = None


# Calendar
class CalendarEvent(BaseModel):
    id: str
    title: str
    event_date: date
    type: Literal["course", "interview"]
    is_highlighted: bool = False
    details: str = ""
