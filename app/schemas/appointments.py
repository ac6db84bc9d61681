"""Appointment schemas for request/response validation."""

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationInfo, field_validator, model_validator

from app.schemas.doctors import DoctorSummary
from app.schemas.patients import PatientSummary


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class AppointmentType(str, Enum):
    """Appointment type enumeration."""

    CONSULTATION = "consultation"
    FOLLOW_UP = "follow_up"
    EMERGENCY = "emergency"
    ROUTINE_CHECKUP = "routine_checkup"


class CalendarViewType(str, Enum):
    """Calendar granularity."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class StatsPeriod(str, Enum):
    """Look-back window of the doctor stats trend."""

    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


def _check_window(start: time | None, end: time | None) -> None:
    if start is not None and end is not None and end <= start:
        raise ValueError("End time must be after start time")


def _check_naive(value: time | None) -> None:
    # Schedules are wall-clock times in the scheduling timezone
    if value is not None and value.tzinfo is not None:
        raise ValueError("Time must not include a UTC offset")


# ============================================================================
# Requests
# ============================================================================


class AppointmentBase(BaseModel):
    """Base appointment schema with common fields."""

    appointment_date: date
    start_time: time
    end_time: time
    appointment_type: AppointmentType = AppointmentType.CONSULTATION
    reason: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=1000)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: time, info: ValidationInfo) -> time:
        """Reject offset times and validate end time is after start time."""
        _check_naive(v)
        if info.field_name == "end_time":
            _check_window(info.data.get("start_time"), v)
        return v


class AppointmentCreate(AppointmentBase):
    """Schema for booking a new appointment."""

    doctor_id: str = Field(..., min_length=1, max_length=64)
    patient_id: str = Field(..., min_length=1, max_length=64)
    created_by: str | None = Field(None, max_length=64)


class AppointmentUpdate(BaseModel):
    """Schema for a partial appointment update.

    Only fields present in the request body are applied.
    """

    appointment_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    appointment_type: AppointmentType | None = None
    status: AppointmentStatus | None = None
    reason: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=1000)
    diagnosis: str | None = Field(None, max_length=2000)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_naive(cls, v: time | None) -> time | None:
        """Reject times carrying a UTC offset."""
        _check_naive(v)
        return v

    @model_validator(mode="after")
    def validate_window(self) -> "AppointmentUpdate":
        """Validate the window when both ends are supplied."""
        _check_window(self.start_time, self.end_time)
        return self


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    reason: str | None = Field(None, max_length=1000)


class AppointmentConfirm(BaseModel):
    """Schema for confirming an appointment."""

    notes: str | None = Field(None, max_length=1000)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to a new window."""

    appointment_date: date
    start_time: time
    end_time: time
    reason: str | None = Field(None, max_length=500)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: time, info: ValidationInfo) -> time:
        """Reject offset times and validate end time is after start time."""
        _check_naive(v)
        if info.field_name == "end_time":
            _check_window(info.data.get("start_time"), v)
        return v


class AppointmentStatusUpdate(BaseModel):
    """Schema for a lifecycle transition (start, complete, no-show...)."""

    status: AppointmentStatus
    notes: str | None = Field(None, max_length=1000)
    diagnosis: str | None = Field(None, max_length=2000)


class ConflictCheckRequest(BaseModel):
    """Schema for a conflict pre-check."""

    doctor_id: str = Field(..., min_length=1, max_length=64)
    appointment_date: date
    start_time: time
    end_time: time
    exclude_appointment_id: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_times(cls, v: time, info: ValidationInfo) -> time:
        """Reject offset times and validate end time is after start time."""
        _check_naive(v)
        if info.field_name == "end_time":
            _check_window(info.data.get("start_time"), v)
        return v


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering and pagination."""

    doctor_id: str | None = None
    patient_id: str | None = None
    appointment_date: date | None = None
    date_from: date | None = None
    date_to: date | None = None
    status: AppointmentStatus | None = None
    appointment_type: AppointmentType | None = None
    search: str | None = Field(None, min_length=1, max_length=200)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @model_validator(mode="after")
    def validate_range(self) -> "AppointmentFilters":
        """Validate the date range is not inverted."""
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must be on or before date_to")
        return self

    @property
    def offset(self) -> int:
        """Row offset of the requested page."""
        return (self.page - 1) * self.limit


# ============================================================================
# Responses
# ============================================================================


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    appointment_id: str
    patient_id: str
    doctor_id: str
    appointment_date: date
    start_time: time
    end_time: time
    appointment_type: AppointmentType
    status: AppointmentStatus
    reason: str | None = None
    notes: str | None = None
    diagnosis: str | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentWithDetails(AppointmentResponse):
    """Appointment joined with doctor and patient summaries."""

    doctor: DoctorSummary | None = None
    patient: PatientSummary | None = None


class AppointmentSummary(BaseModel):
    """Compact appointment entry used by calendar and schedule views."""

    appointment_id: str
    doctor_id: str
    patient_id: str
    appointment_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    appointment_type: AppointmentType
    reason: str | None = None
    doctor_name: str | None = None
    patient_name: str | None = None

    model_config = {"from_attributes": True}


def summarize_conflicts(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Dump conflicting appointment rows as JSON-ready summaries."""
    return [AppointmentSummary.model_validate(dict(row)).model_dump(mode="json") for row in rows]


class ConflictCheckResponse(BaseModel):
    """Result of a conflict check."""

    has_conflict: bool
    conflicting_appointments: list[AppointmentSummary] = []
    message: str | None = None


class CalendarView(BaseModel):
    """Appointments grouped by date over a day, week or month."""

    view: CalendarViewType
    start_date: date
    end_date: date
    doctor_id: str | None = None
    total_appointments: int
    appointments: dict[date, list[AppointmentSummary]]


class ScheduleDay(BaseModel):
    """Working hours and slot occupancy of one day in a weekly schedule."""

    schedule_date: date
    day_of_week: int = Field(..., ge=1, le=7, description="ISO weekday, 1 = Monday")
    is_working_day: bool
    start_time: time | None = None
    end_time: time | None = None
    break_start: time | None = None
    break_end: time | None = None
    slot_duration: int | None = None
    total_slots: int = 0
    booked_slots: int = 0
    available_slots: int = 0


class WeekSummary(BaseModel):
    """Slot occupancy totals over a weekly schedule."""

    total_working_days: int = 0
    total_slots: int = 0
    total_booked: int = 0
    total_available: int = 0
    occupancy_rate: float = 0.0


class WeeklySchedule(BaseModel):
    """A doctor's seven-day schedule, every day present."""

    doctor_id: str
    doctor_name: str | None = None
    week_start: date
    week_end: date
    total_appointments: int
    days: dict[date, list[AppointmentSummary]]
    daily_schedules: list[ScheduleDay]
    summary: WeekSummary


class AppointmentStats(BaseModel):
    """Appointment counters."""

    total: int = 0
    today: int = 0
    this_week: int = 0
    this_month: int = 0
    by_status: dict[AppointmentStatus, int]
    by_type: dict[AppointmentType, int]


class DailyTrend(BaseModel):
    """Appointment counts for one day of a stats period."""

    trend_date: date
    total: int = 0
    completed: int = 0
    cancelled: int = 0
    follow_up: int = 0


class MonthlyComparison(BaseModel):
    """Appointments this calendar month against the previous one."""

    current_month: int = 0
    previous_month: int = 0
    growth_percentage: float = 0.0


class DoctorAppointmentStats(AppointmentStats):
    """Appointment counters for a single doctor."""

    doctor_id: str
    unique_patients: int = 0
    completion_rate: float = 0.0
    period: StatsPeriod = StatsPeriod.WEEK
    period_start: date
    period_end: date
    daily_trend: list[DailyTrend] = []
    monthly_comparison: MonthlyComparison


class TimeSlot(BaseModel):
    """A bookable slot in a doctor's working day."""

    slot_date: date
    start_time: time
    end_time: time
    is_available: bool
    doctor_id: str
    slot_duration: int
