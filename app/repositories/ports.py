"""
Collaborator interfaces consumed by the scheduling service.

Rows are plain dicts keyed by column name, the same shape SQLAlchemy Core
returns from ``result.mappings()``.
"""

from collections.abc import Iterable
from datetime import date, time
from typing import Any, Protocol, runtime_checkable

from app.schemas.appointments import AppointmentFilters, AppointmentStatus
from app.schemas.doctors import DoctorSummary, WorkingHours
from app.schemas.patients import PatientSummary


@runtime_checkable
class AppointmentRepository(Protocol):
    """Persistence port for appointment records."""

    async def query_appointments(
        self,
        filters: AppointmentFilters,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Return one page of appointments joined with doctor and patient summaries.

        Rows carry nested ``doctor`` and ``patient`` dicts (or None). Ordered by
        date, start time and id.

        Returns:
            Tuple of (rows, total matching rows)
        """
        ...

    async def find_appointments(
        self,
        *,
        doctor_id: str | None = None,
        patient_id: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        statuses: Iterable[AppointmentStatus] | None = None,
        exclude_appointment_id: str | None = None,
    ) -> list[dict[str, Any]]:
        """
        Return every matching appointment, unpaginated.

        Rows carry flat ``doctor_name`` and ``patient_name`` columns and are
        ordered by date and start time.
        """
        ...

    async def get_by_id(
        self,
        appointment_id: str,
        with_details: bool = False,
    ) -> dict[str, Any] | None:
        """Return one appointment, optionally with doctor/patient summaries."""
        ...

    async def insert(self, values: dict[str, Any]) -> dict[str, Any]:
        """
        Atomically store a new appointment.

        Raises:
            ConflictException: If the window overlaps an active appointment
        """
        ...

    async def update(
        self,
        appointment_id: str,
        values: dict[str, Any],
    ) -> dict[str, Any] | None:
        """
        Atomically apply a partial update.

        Raises:
            ConflictException: If a new window overlaps another active appointment
        """
        ...


@runtime_checkable
class DoctorDirectory(Protocol):
    """Read access to doctors and their working schedules."""

    async def exists(self, doctor_id: str) -> bool:
        """Check the doctor exists and is active."""
        ...

    async def get_summary(self, doctor_id: str) -> DoctorSummary | None:
        """Return the doctor's summary fields."""
        ...

    async def get_working_hours(self, doctor_id: str, on_date: date) -> WorkingHours | None:
        """Return the doctor's working hours for ``on_date``'s weekday."""
        ...

    async def is_available(
        self,
        doctor_id: str,
        on_date: date,
        start_time: time,
        end_time: time,
    ) -> bool:
        """Check the window lies inside the doctor's working hours."""
        ...


@runtime_checkable
class PatientDirectory(Protocol):
    """Read access to patients."""

    async def exists(self, patient_id: str) -> bool:
        """Check the patient exists."""
        ...

    async def get_summary(self, patient_id: str) -> PatientSummary | None:
        """Return the patient's summary fields."""
        ...
