"""Doctor directory service: existence, summaries and working hours."""

from datetime import date, datetime, time, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import InternalException
from app.core.redis_client import CacheManager
from app.models.doctor_schedules import doctor_schedules
from app.models.doctors import doctors
from app.schemas.doctors import DoctorSummary, WorkingHours
from app.services.conflict_checker import intervals_overlap

logger = structlog.get_logger()


def fits_working_hours(hours: WorkingHours | None, start_time: time, end_time: time) -> bool:
    """
    Check a window lies inside a working day and clear of its break.

    Args:
        hours: Working hours for the day, or None when the doctor does not work
        start_time: Window start
        end_time: Window end

    Returns:
        True if the doctor can see a patient in that window
    """
    if hours is None or not hours.is_available:
        return False

    if start_time < hours.start_time or end_time > hours.end_time:
        return False

    if hours.has_break and intervals_overlap(
        start_time, end_time, hours.break_start, hours.break_end
    ):
        return False

    return True


def generate_time_slots(hours: WorkingHours, duration_minutes: int) -> list[tuple[time, time]]:
    """
    Split a working day into consecutive slots of ``duration_minutes``.

    Slots overlapping the break are skipped and the last slot must end by the
    end of the working day.
    """
    # Arithmetic on time objects needs a date to anchor them
    day = date.min
    step = timedelta(minutes=duration_minutes)
    cursor = datetime.combine(day, hours.start_time)
    day_end = datetime.combine(day, hours.end_time)

    slots: list[tuple[time, time]] = []
    while cursor + step <= day_end:
        slot_start, slot_end = cursor.time(), (cursor + step).time()
        if not (
            hours.has_break
            and intervals_overlap(slot_start, slot_end, hours.break_start, hours.break_end)
        ):
            slots.append((slot_start, slot_end))
        cursor += step

    return slots


class DoctorDirectoryService:
    """Read-only access to doctors and their weekly working schedules."""

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional cache manager."""
        self.db = db
        self.cache = cache_manager

    @staticmethod
    def _get_doctor_cache_key(doctor_id: str) -> str:
        """Generate cache key for doctor."""
        return f"doctor:{doctor_id}"

    @staticmethod
    def _get_schedule_cache_key(doctor_id: str) -> str:
        """Generate cache key for a doctor's weekly schedule."""
        return f"doctor:{doctor_id}:schedule"

    async def get_summary(self, doctor_id: str) -> DoctorSummary | None:
        """Get an active doctor's summary with caching."""
        if self.cache:
            cached = self.cache.get_json(self._get_doctor_cache_key(doctor_id))
            if cached:
                return DoctorSummary.model_validate(cached)

        query = select(
            doctors.c.doctor_id,
            doctors.c.full_name,
            doctors.c.specialty,
            doctors.c.phone_number,
            doctors.c.email,
        ).where(doctors.c.doctor_id == doctor_id, doctors.c.is_active.is_(True))

        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            logger.error("doctor_lookup_failed", doctor_id=doctor_id, error=str(e))
            raise InternalException("Failed to fetch doctor") from e

        row = result.mappings().first()
        if not row:
            return None

        summary = DoctorSummary.model_validate(dict(row))

        if self.cache:
            self.cache.set_json(
                self._get_doctor_cache_key(doctor_id),
                summary.model_dump(mode="json"),
                ttl=settings.doctor_cache_ttl,
            )

        return summary

    async def exists(self, doctor_id: str) -> bool:
        """Check the doctor exists and is active."""
        return await self.get_summary(doctor_id) is not None

    async def _get_weekly_hours(self, doctor_id: str) -> list[WorkingHours]:
        if self.cache:
            cached = self.cache.get_json(self._get_schedule_cache_key(doctor_id))
            if cached is not None:
                return [WorkingHours.model_validate(item) for item in cached]

        query = (
            select(doctor_schedules)
            .where(doctor_schedules.c.doctor_id == doctor_id)
            .order_by(doctor_schedules.c.day_of_week)
        )

        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            logger.error("doctor_schedule_lookup_failed", doctor_id=doctor_id, error=str(e))
            raise InternalException("Failed to fetch doctor schedule") from e

        week = [WorkingHours.model_validate(dict(row)) for row in result.mappings().all()]

        if self.cache:
            self.cache.set_json(
                self._get_schedule_cache_key(doctor_id),
                [hours.model_dump(mode="json") for hours in week],
                ttl=settings.doctor_cache_ttl,
            )

        return week

    async def get_working_hours(self, doctor_id: str, on_date: date) -> WorkingHours | None:
        """Get the doctor's working hours for the weekday of ``on_date``."""
        weekday = on_date.isoweekday()
        for hours in await self._get_weekly_hours(doctor_id):
            if hours.day_of_week == weekday:
                return hours
        return None

    async def is_available(
        self,
        doctor_id: str,
        on_date: date,
        start_time: time,
        end_time: time,
    ) -> bool:
        """Check the window lies inside the doctor's working hours for that day."""
        hours = await self.get_working_hours(doctor_id, on_date)
        available = fits_working_hours(hours, start_time, end_time)

        if not available:
            logger.info(
                "doctor_unavailable",
                doctor_id=doctor_id,
                date=on_date.isoformat(),
                start_time=start_time.isoformat(),
                end_time=end_time.isoformat(),
                has_schedule=hours is not None,
            )

        return available
