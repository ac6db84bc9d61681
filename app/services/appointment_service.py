"""Appointment scheduling service: booking, lifecycle and read-side views."""

from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime, time, timedelta
from enum import Enum
from typing import Any
from uuid import uuid4
from zoneinfo import ZoneInfo

import structlog

from app.config import settings
from app.core.exceptions import (
    ConflictException,
    InvalidStateTransitionException,
    NotFoundException,
    ValidationException,
)
from app.repositories.ports import AppointmentRepository, DoctorDirectory, PatientDirectory
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentResponse,
    AppointmentStats,
    AppointmentStatus,
    AppointmentStatusUpdate,
    AppointmentSummary,
    AppointmentType,
    AppointmentUpdate,
    AppointmentWithDetails,
    CalendarView,
    CalendarViewType,
    DailyTrend,
    DoctorAppointmentStats,
    MonthlyComparison,
    ScheduleDay,
    StatsPeriod,
    TimeSlot,
    WeeklySchedule,
    WeekSummary,
    summarize_conflicts,
)
from app.schemas.common import Pagination
from app.schemas.doctors import WorkingHours
from app.services import date_ranges
from app.services.appointment_lifecycle import (
    ACTIVE_STATUSES,
    CALENDAR_STATUSES,
    ensure_transition,
    is_terminal,
)
from app.services.conflict_checker import ConflictCheck, find_conflicts
from app.services.doctor_service import generate_time_slots

logger = structlog.get_logger()

UPCOMING_STATUSES = frozenset({AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED})

SCHEDULE_FIELDS = ("appointment_date", "start_time", "end_time")

# Free-text fields a PATCH may explicitly null out
CLEARABLE_FIELDS = frozenset({"reason", "notes", "diagnosis"})


def default_clock() -> date:
    """Today's date in the configured scheduling timezone."""
    return datetime.now(ZoneInfo(settings.scheduling_timezone)).date()


def generate_appointment_id() -> str:
    """Generate a new appointment id such as ``APT3F9A0C1B2D4E``."""
    return f"APT{uuid4().hex[:12].upper()}"


def _ensure_window(start_time: time, end_time: time) -> None:
    if start_time >= end_time:
        raise ValidationException(
            "End time must be after start time",
            details={"start_time": start_time.isoformat(), "end_time": end_time.isoformat()},
        )


def _to_db(values: dict[str, Any]) -> dict[str, Any]:
    """Replace enum members with their stored string values."""
    return {key: value.value if isinstance(value, Enum) else value for key, value in values.items()}


def summarize(rows: Iterable[dict[str, Any]], today: date) -> dict[str, Any]:
    """
    Count appointments by status, type and date bucket in one pass.

    Args:
        rows: Appointment rows
        today: Reference date for the today/week/month buckets

    Returns:
        Keyword arguments for ``AppointmentStats``
    """
    week_first, week_last = date_ranges.week_range(today)
    month_first, month_last = date_ranges.month_range(today)

    by_status = {status: 0 for status in AppointmentStatus}
    by_type = {appointment_type: 0 for appointment_type in AppointmentType}
    total = today_count = week_count = month_count = 0

    for row in rows:
        total += 1
        by_status[AppointmentStatus(row["status"])] += 1
        by_type[AppointmentType(row["appointment_type"])] += 1

        appointment_date = row["appointment_date"]
        if appointment_date == today:
            today_count += 1
        if week_first <= appointment_date <= week_last:
            week_count += 1
        if month_first <= appointment_date <= month_last:
            month_count += 1

    return {
        "total": total,
        "today": today_count,
        "this_week": week_count,
        "this_month": month_count,
        "by_status": by_status,
        "by_type": by_type,
    }


def daily_trend(
    rows: Iterable[dict[str, Any]],
    first_day: date,
    last_day: date,
) -> list[DailyTrend]:
    """Bucket appointments per day between two dates, inclusive; empty days are omitted."""
    buckets: dict[date, DailyTrend] = {}

    for row in rows:
        appointment_date = row["appointment_date"]
        if not first_day <= appointment_date <= last_day:
            continue

        bucket = buckets.setdefault(appointment_date, DailyTrend(trend_date=appointment_date))
        bucket.total += 1

        status = AppointmentStatus(row["status"])
        if status == AppointmentStatus.COMPLETED:
            bucket.completed += 1
        elif status == AppointmentStatus.CANCELLED:
            bucket.cancelled += 1

        if AppointmentType(row["appointment_type"]) == AppointmentType.FOLLOW_UP:
            bucket.follow_up += 1

    return [buckets[day] for day in sorted(buckets)]


def compare_months(rows: Iterable[dict[str, Any]], today: date) -> MonthlyComparison:
    """Count this month's appointments against the previous month's."""
    current_first, current_last = date_ranges.month_range(today)
    previous_first, previous_last = date_ranges.previous_month_range(today)
    current = previous = 0

    for row in rows:
        appointment_date = row["appointment_date"]
        if current_first <= appointment_date <= current_last:
            current += 1
        elif previous_first <= appointment_date <= previous_last:
            previous += 1

    return MonthlyComparison(
        current_month=current,
        previous_month=previous,
        growth_percentage=round((current - previous) / previous * 100, 2) if previous else 0.0,
    )


def describe_day(
    day: date,
    hours: WorkingHours | None,
    booked: list[dict[str, Any]],
) -> ScheduleDay:
    """
    Describe one day's working hours and slot occupancy.

    Slots come from the doctor's own slot duration; a slot is booked when it
    overlaps any of ``booked``.
    """
    if hours is None or not hours.is_available:
        return ScheduleDay(schedule_date=day, day_of_week=day.isoweekday(), is_working_day=False)

    slots = generate_time_slots(hours, hours.slot_duration)
    taken = sum(1 for start, end in slots if find_conflicts(start, end, booked).has_conflict)

    return ScheduleDay(
        schedule_date=day,
        day_of_week=day.isoweekday(),
        is_working_day=True,
        start_time=hours.start_time,
        end_time=hours.end_time,
        break_start=hours.break_start,
        break_end=hours.break_end,
        slot_duration=hours.slot_duration,
        total_slots=len(slots),
        booked_slots=taken,
        available_slots=len(slots) - taken,
    )


def summarize_week(days: Iterable[ScheduleDay]) -> WeekSummary:
    """Total slot occupancy over the working days of a week."""
    working = [day for day in days if day.is_working_day]
    total = sum(day.total_slots for day in working)
    booked = sum(day.booked_slots for day in working)

    return WeekSummary(
        total_working_days=len(working),
        total_slots=total,
        total_booked=booked,
        total_available=total - booked,
        occupancy_rate=round(booked / total, 4) if total else 0.0,
    )


class AppointmentService:
    """Service for scheduling and managing appointments."""

    def __init__(
        self,
        repository: AppointmentRepository,
        doctors: DoctorDirectory,
        patients: PatientDirectory,
        clock: Callable[[], date] | None = None,
    ):
        """
        Initialize service with its collaborators.

        Args:
            repository: Appointment persistence
            doctors: Doctor directory
            patients: Patient directory
            clock: Returns today's date; defaults to the scheduling timezone
        """
        self.repository = repository
        self.doctors = doctors
        self.patients = patients
        self.clock = clock or default_clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_existing(self, appointment_id: str) -> dict[str, Any]:
        row = await self.repository.get_by_id(appointment_id)
        if not row:
            raise NotFoundException("Appointment not found")
        return row

    async def _apply(self, appointment_id: str, values: dict[str, Any]) -> AppointmentResponse:
        values = _to_db(values)
        values["updated_at"] = datetime.now(UTC)

        row = await self.repository.update(appointment_id, values)
        if not row:
            raise NotFoundException("Appointment not found")

        return AppointmentResponse.model_validate(row)

    @staticmethod
    def _conflict_error(check: ConflictCheck) -> ConflictException:
        return ConflictException(
            check.message or ConflictException().message,
            conflicting_appointments=summarize_conflicts(check.conflicting_appointments),
        )

    async def _ensure_no_conflict(
        self,
        doctor_id: str,
        appointment_date: date,
        start_time: time,
        end_time: time,
        exclude_appointment_id: str | None = None,
    ) -> None:
        check = await self.check_conflicts(
            doctor_id, appointment_date, start_time, end_time, exclude_appointment_id
        )
        if check.has_conflict:
            raise self._conflict_error(check)

    # ------------------------------------------------------------------
    # Conflict detection and booking
    # ------------------------------------------------------------------

    async def check_conflicts(
        self,
        doctor_id: str,
        appointment_date: date,
        start_time: time,
        end_time: time,
        exclude_appointment_id: str | None = None,
    ) -> ConflictCheck:
        """
        Check a window against the doctor's active appointments that day.

        Args:
            doctor_id: Doctor ID
            appointment_date: Day of the window
            start_time: Window start
            end_time: Window end
            exclude_appointment_id: Appointment to ignore (when moving it)

        Returns:
            ConflictCheck with the overlapping appointments

        Raises:
            ValidationException: If the window is empty or inverted
        """
        _ensure_window(start_time, end_time)

        existing = await self.repository.find_appointments(
            doctor_id=doctor_id,
            date_from=appointment_date,
            date_to=appointment_date,
            statuses=ACTIVE_STATUSES,
            exclude_appointment_id=exclude_appointment_id,
        )
        check = find_conflicts(start_time, end_time, existing, exclude_appointment_id)

        if check.has_conflict:
            logger.info(
                "appointment_conflict_detected",
                doctor_id=doctor_id,
                date=appointment_date.isoformat(),
                start_time=start_time.isoformat(),
                end_time=end_time.isoformat(),
                conflicts=[row["appointment_id"] for row in check.conflicting_appointments],
            )

        return check

    async def create_appointment(self, data: AppointmentCreate) -> AppointmentResponse:
        """
        Book a new appointment.

        Args:
            data: Appointment creation data

        Returns:
            Created appointment with status ``scheduled``

        Raises:
            ValidationException: If the window is invalid or the doctor is off duty
            NotFoundException: If the patient or doctor does not exist
            ConflictException: If the window overlaps an active appointment
        """
        _ensure_window(data.start_time, data.end_time)

        if not await self.patients.exists(data.patient_id):
            raise NotFoundException("Patient not found")

        if not await self.doctors.exists(data.doctor_id):
            raise NotFoundException("Doctor not found")

        if not await self.doctors.is_available(
            data.doctor_id, data.appointment_date, data.start_time, data.end_time
        ):
            raise ValidationException("Doctor is not available at the requested time")

        await self._ensure_no_conflict(
            data.doctor_id, data.appointment_date, data.start_time, data.end_time
        )

        now = datetime.now(UTC)
        values = _to_db(
            {
                "appointment_id": generate_appointment_id(),
                "patient_id": data.patient_id,
                "doctor_id": data.doctor_id,
                "appointment_date": data.appointment_date,
                "start_time": data.start_time,
                "end_time": data.end_time,
                "appointment_type": data.appointment_type,
                "status": AppointmentStatus.SCHEDULED,
                "reason": data.reason,
                "notes": data.notes,
                "created_by": data.created_by,
                "created_at": now,
                "updated_at": now,
            }
        )

        row = await self.repository.insert(values)

        logger.info(
            "appointment_created",
            appointment_id=row["appointment_id"],
            doctor_id=data.doctor_id,
            patient_id=data.patient_id,
            date=data.appointment_date.isoformat(),
        )

        return AppointmentResponse.model_validate(row)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_appointment(self, appointment_id: str) -> AppointmentWithDetails:
        """
        Get appointment by ID with doctor and patient summaries.

        Raises:
            NotFoundException: If appointment not found
        """
        row = await self.repository.get_by_id(appointment_id, with_details=True)
        if not row:
            raise NotFoundException("Appointment not found")
        return AppointmentWithDetails.model_validate(row)

    async def list_appointments(
        self,
        filters: AppointmentFilters,
    ) -> tuple[list[AppointmentWithDetails], Pagination]:
        """
        List appointments with filtering and pagination.

        Returns:
            Tuple of (page of appointments, pagination metadata)
        """
        rows, total = await self.repository.query_appointments(filters)
        items = [AppointmentWithDetails.model_validate(row) for row in rows]
        return items, Pagination.build(filters.page, filters.limit, total)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def update_appointment(
        self,
        appointment_id: str,
        data: AppointmentUpdate,
    ) -> AppointmentResponse:
        """
        Apply a partial update.

        Only fields present in ``data`` change. Moving the window re-runs the
        conflict check against every other active appointment of the doctor.

        Raises:
            NotFoundException: If appointment not found
            ValidationException: If the resulting window is invalid
            ConflictException: If the new window overlaps another appointment
            InvalidStateTransitionException: If the status change is not allowed
        """
        current = await self._get_existing(appointment_id)
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field in CLEARABLE_FIELDS
        }

        if not changes:
            return AppointmentResponse.model_validate(current)

        current_status = AppointmentStatus(current["status"])
        target_status = changes.get("status")

        if target_status is not None and target_status != current_status:
            ensure_transition(current_status, target_status)

        if any(field in changes for field in SCHEDULE_FIELDS):
            if is_terminal(current_status):
                raise InvalidStateTransitionException(
                    current_status.value,
                    current_status.value,
                    message=f"Cannot change the schedule of a {current_status.value} appointment",
                )

            new_date, new_start, new_end = (
                changes.get(field, current[field]) for field in SCHEDULE_FIELDS
            )
            _ensure_window(new_start, new_end)

            if (target_status or current_status) in ACTIVE_STATUSES:
                await self._ensure_no_conflict(
                    current["doctor_id"], new_date, new_start, new_end, appointment_id
                )

        appointment = await self._apply(appointment_id, changes)

        logger.info(
            "appointment_updated",
            appointment_id=appointment_id,
            fields=sorted(changes),
        )

        return appointment

    async def cancel_appointment(
        self,
        appointment_id: str,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Cancel an appointment, keeping the reason in its notes.

        Raises:
            NotFoundException: If appointment not found
            InvalidStateTransitionException: If it already finished or was cancelled
        """
        current = await self._get_existing(appointment_id)
        ensure_transition(AppointmentStatus(current["status"]), AppointmentStatus.CANCELLED)

        values: dict[str, Any] = {"status": AppointmentStatus.CANCELLED}
        if reason:
            values["notes"] = reason

        appointment = await self._apply(appointment_id, values)

        logger.info(
            "appointment_cancelled",
            appointment_id=appointment_id,
            previous_status=current["status"],
        )

        return appointment

    async def confirm_appointment(
        self,
        appointment_id: str,
        notes: str | None = None,
    ) -> AppointmentResponse:
        """
        Confirm a scheduled appointment.

        Raises:
            NotFoundException: If appointment not found
            InvalidStateTransitionException: If it is not scheduled or confirmed
        """
        current = await self._get_existing(appointment_id)
        ensure_transition(AppointmentStatus(current["status"]), AppointmentStatus.CONFIRMED)

        values: dict[str, Any] = {"status": AppointmentStatus.CONFIRMED}
        if notes:
            values["notes"] = notes

        appointment = await self._apply(appointment_id, values)

        logger.info("appointment_confirmed", appointment_id=appointment_id)

        return appointment

    async def reschedule_appointment(
        self,
        appointment_id: str,
        appointment_date: date,
        start_time: time,
        end_time: time,
        reason: str | None = None,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new window.

        Raises:
            NotFoundException: If appointment not found
            InvalidStateTransitionException: If the appointment is terminal
            ValidationException: If the window is invalid
            ConflictException: If the new window overlaps another appointment
        """
        current = await self._get_existing(appointment_id)
        current_status = AppointmentStatus(current["status"])

        if is_terminal(current_status):
            raise InvalidStateTransitionException(
                current_status.value,
                current_status.value,
                message=f"Cannot reschedule a {current_status.value} appointment",
            )

        _ensure_window(start_time, end_time)
        await self._ensure_no_conflict(
            current["doctor_id"], appointment_date, start_time, end_time, appointment_id
        )

        values: dict[str, Any] = {
            "appointment_date": appointment_date,
            "start_time": start_time,
            "end_time": end_time,
        }
        if reason:
            values["notes"] = f"Rescheduled: {reason}"

        appointment = await self._apply(appointment_id, values)

        logger.info(
            "appointment_rescheduled",
            appointment_id=appointment_id,
            from_date=current["appointment_date"].isoformat(),
            to_date=appointment_date.isoformat(),
        )

        return appointment

    async def update_status(
        self,
        appointment_id: str,
        data: AppointmentStatusUpdate,
    ) -> AppointmentResponse:
        """
        Move an appointment along its lifecycle (start, complete, no-show).

        Raises:
            NotFoundException: If appointment not found
            InvalidStateTransitionException: If the transition is not allowed
        """
        current = await self._get_existing(appointment_id)
        ensure_transition(AppointmentStatus(current["status"]), data.status)

        values: dict[str, Any] = {"status": data.status}
        if data.notes is not None:
            values["notes"] = data.notes
        if data.diagnosis is not None:
            values["diagnosis"] = data.diagnosis

        appointment = await self._apply(appointment_id, values)

        logger.info(
            "appointment_status_changed",
            appointment_id=appointment_id,
            from_status=current["status"],
            to_status=data.status.value,
        )

        return appointment

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def get_calendar(
        self,
        anchor_date: date,
        view: CalendarViewType = CalendarViewType.WEEK,
        doctor_id: str | None = None,
    ) -> CalendarView:
        """Group appointments by date over a day, week or month."""
        start_date, end_date = date_ranges.calendar_range(anchor_date, view)

        rows = await self.repository.find_appointments(
            doctor_id=doctor_id,
            date_from=start_date,
            date_to=end_date,
            statuses=CALENDAR_STATUSES,
        )

        grouped: dict[date, list[AppointmentSummary]] = {}
        for row in rows:
            grouped.setdefault(row["appointment_date"], []).append(
                AppointmentSummary.model_validate(row)
            )

        return CalendarView(
            view=view,
            start_date=start_date,
            end_date=end_date,
            doctor_id=doctor_id,
            total_appointments=len(rows),
            appointments=grouped,
        )

    async def get_weekly_schedule(
        self,
        doctor_id: str,
        week_start: date | None = None,
    ) -> WeeklySchedule:
        """
        Get a doctor's active appointments and slot occupancy over seven days.

        Every day of the week is present in ``days``, empty or not, and has a
        matching entry in ``daily_schedules`` describing its working hours.

        Raises:
            NotFoundException: If doctor not found
        """
        doctor = await self.doctors.get_summary(doctor_id)
        if not doctor:
            raise NotFoundException("Doctor not found")

        first_day = week_start or date_ranges.week_start(self.clock())
        week = date_ranges.days_from(first_day)
        last_day = week[-1]

        rows = await self.repository.find_appointments(
            doctor_id=doctor_id,
            date_from=first_day,
            date_to=last_day,
            statuses=ACTIVE_STATUSES,
        )

        booked: dict[date, list[dict[str, Any]]] = {day: [] for day in week}
        for row in rows:
            booked[row["appointment_date"]].append(row)

        daily_schedules = [
            describe_day(day, await self.doctors.get_working_hours(doctor_id, day), booked[day])
            for day in week
        ]

        return WeeklySchedule(
            doctor_id=doctor_id,
            doctor_name=doctor.full_name,
            week_start=first_day,
            week_end=last_day,
            total_appointments=len(rows),
            days={
                day: [AppointmentSummary.model_validate(row) for row in day_rows]
                for day, day_rows in booked.items()
            },
            daily_schedules=daily_schedules,
            summary=summarize_week(daily_schedules),
        )

    async def get_stats(self) -> AppointmentStats:
        """Count every appointment by status, type and date bucket."""
        rows = await self.repository.find_appointments()
        return AppointmentStats(**summarize(rows, self.clock()))

    async def get_doctor_stats(
        self,
        doctor_id: str,
        period: StatsPeriod = StatsPeriod.WEEK,
    ) -> DoctorAppointmentStats:
        """
        Count a doctor's appointments, distinct patients and completion rate.

        The counters cover every appointment of the doctor. ``period`` sets the
        look-back window of the daily trend; the month comparison always sets
        the current calendar month against the previous one.

        Raises:
            NotFoundException: If doctor not found
        """
        if not await self.doctors.exists(doctor_id):
            raise NotFoundException("Doctor not found")

        today = self.clock()
        rows = await self.repository.find_appointments(doctor_id=doctor_id)
        counters = summarize(rows, today)

        total = counters["total"]
        completed = counters["by_status"][AppointmentStatus.COMPLETED]
        period_start, period_end = date_ranges.period_range(today, period)

        return DoctorAppointmentStats(
            doctor_id=doctor_id,
            unique_patients=len({row["patient_id"] for row in rows}),
            completion_rate=round(completed / total, 4) if total else 0.0,
            period=period,
            period_start=period_start,
            period_end=period_end,
            daily_trend=daily_trend(rows, period_start, period_end),
            monthly_comparison=compare_months(rows, today),
            **counters,
        )

    async def get_upcoming_appointments(
        self,
        doctor_id: str,
        days: int | None = None,
    ) -> list[AppointmentSummary]:
        """Get the doctor's scheduled and confirmed appointments for the next ``days`` days."""
        today = self.clock()
        horizon = days if days is not None else settings.upcoming_days_default

        rows = await self.repository.find_appointments(
            doctor_id=doctor_id,
            date_from=today,
            date_to=today + timedelta(days=horizon),
            statuses=UPCOMING_STATUSES,
        )
        return [AppointmentSummary.model_validate(row) for row in rows]

    async def get_available_slots(
        self,
        doctor_id: str,
        slot_date: date,
        duration: int | None = None,
    ) -> list[TimeSlot]:
        """
        List a doctor's slots for one day, flagging the booked ones.

        Args:
            doctor_id: Doctor ID
            slot_date: Day to list
            duration: Slot length in minutes; defaults to DEFAULT_SLOT_DURATION_MINUTES

        Raises:
            NotFoundException: If doctor not found
        """
        if not await self.doctors.exists(doctor_id):
            raise NotFoundException("Doctor not found")

        hours = await self.doctors.get_working_hours(doctor_id, slot_date)
        if hours is None or not hours.is_available:
            return []

        slot_duration = duration or settings.default_slot_duration_minutes
        booked = await self.repository.find_appointments(
            doctor_id=doctor_id,
            date_from=slot_date,
            date_to=slot_date,
            statuses=ACTIVE_STATUSES,
        )

        return [
            TimeSlot(
                slot_date=slot_date,
                start_time=start,
                end_time=end,
                is_available=not find_conflicts(start, end, booked).has_conflict,
                doctor_id=doctor_id,
                slot_duration=slot_duration,
            )
            for start, end in generate_time_slots(hours, slot_duration)
        ]
