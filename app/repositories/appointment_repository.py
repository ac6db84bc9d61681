"""SQLAlchemy implementation of the appointment persistence port."""

from collections.abc import Iterable
from datetime import date, time
from typing import Any

import structlog
from sqlalchemy import Select, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, InternalException
from app.models.appointments import NO_OVERLAP_CONSTRAINT, appointments
from app.models.doctors import doctors
from app.models.patients import patients
from app.schemas.appointments import (
    AppointmentFilters,
    AppointmentStatus,
    summarize_conflicts,
)
from app.services.appointment_lifecycle import ACTIVE_STATUSES
from app.services.conflict_checker import CONFLICT_MESSAGE, find_conflicts

logger = structlog.get_logger()

EXCLUSION_VIOLATION = "23P01"

SCHEDULE_FIELDS = ("appointment_date", "start_time", "end_time")

LIKE_ESCAPE = "\\"

_DOCTOR_COLUMNS = {
    "full_name": doctors.c.full_name.label("doctor__full_name"),
    "specialty": doctors.c.specialty.label("doctor__specialty"),
    "phone_number": doctors.c.phone_number.label("doctor__phone_number"),
    "email": doctors.c.email.label("doctor__email"),
}

_PATIENT_COLUMNS = {
    "full_name": patients.c.full_name.label("patient__full_name"),
    "date_of_birth": patients.c.date_of_birth.label("patient__date_of_birth"),
    "gender": patients.c.gender.label("patient__gender"),
    "phone_number": patients.c.phone_number.label("patient__phone_number"),
    "email": patients.c.email.label("patient__email"),
}

_JOINED = appointments.outerjoin(
    doctors, doctors.c.doctor_id == appointments.c.doctor_id
).outerjoin(patients, patients.c.patient_id == appointments.c.patient_id)

_ORDERING = (
    appointments.c.appointment_date.asc(),
    appointments.c.start_time.asc(),
    appointments.c.appointment_id.asc(),
)


def escape_like(text: str) -> str:
    """Escape LIKE wildcards so ``text`` matches literally."""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def build_filter_conditions(filters: AppointmentFilters) -> list:
    """Translate search filters into AND-ed SQL conditions."""
    conditions: list = []

    if filters.doctor_id:
        conditions.append(appointments.c.doctor_id == filters.doctor_id)

    if filters.patient_id:
        conditions.append(appointments.c.patient_id == filters.patient_id)

    if filters.appointment_date:
        conditions.append(appointments.c.appointment_date == filters.appointment_date)

    if filters.date_from:
        conditions.append(appointments.c.appointment_date >= filters.date_from)

    if filters.date_to:
        conditions.append(appointments.c.appointment_date <= filters.date_to)

    if filters.status:
        conditions.append(appointments.c.status == filters.status.value)

    if filters.appointment_type:
        conditions.append(appointments.c.appointment_type == filters.appointment_type.value)

    if filters.search:
        pattern = f"%{escape_like(filters.search)}%"
        conditions.append(
            appointments.c.reason.ilike(pattern, escape=LIKE_ESCAPE)
            | appointments.c.notes.ilike(pattern, escape=LIKE_ESCAPE)
        )

    return conditions


def details_query() -> Select:
    """Select appointments with prefixed doctor and patient summary columns."""
    return select(
        appointments,
        doctors.c.doctor_id.label("doctor__doctor_id"),
        *_DOCTOR_COLUMNS.values(),
        patients.c.patient_id.label("patient__patient_id"),
        *_PATIENT_COLUMNS.values(),
    ).select_from(_JOINED)


def nest_details(row: dict[str, Any]) -> dict[str, Any]:
    """Fold prefixed join columns into nested ``doctor`` and ``patient`` dicts."""
    flat = dict(row)
    nested: dict[str, Any] = {}

    for prefix, columns in (("doctor", _DOCTOR_COLUMNS), ("patient", _PATIENT_COLUMNS)):
        id_key = f"{prefix}_id"
        joined_id = flat.pop(f"{prefix}__{id_key}", None)
        summary = {field: flat.pop(f"{prefix}__{field}", None) for field in columns}
        nested[prefix] = {id_key: joined_id, **summary} if joined_id is not None else None

    return {**flat, **nested}


class SQLAlchemyAppointmentRepository:
    """Appointment persistence on Postgres through SQLAlchemy Core."""

    def __init__(self, db: AsyncSession):
        """Initialize repository with database session."""
        self.db = db

    async def _execute(self, stmt: Any, operation: str) -> Any:
        try:
            return await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("appointment_query_failed", operation=operation, error=str(e))
            raise InternalException(f"Failed to {operation}") from e

    async def query_appointments(
        self,
        filters: AppointmentFilters,
    ) -> tuple[list[dict[str, Any]], int]:
        """Return one page of appointments with doctor/patient summaries."""
        conditions = build_filter_conditions(filters)

        count_stmt = select(func.count()).select_from(appointments).where(*conditions)
        total_result = await self._execute(count_stmt, "count appointments")
        total = total_result.scalar() or 0

        stmt = (
            details_query()
            .where(*conditions)
            .order_by(*_ORDERING)
            .limit(filters.limit)
            .offset(filters.offset)
        )
        result = await self._execute(stmt, "fetch appointments")

        return [nest_details(row) for row in result.mappings().all()], total

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
        """Return every matching appointment with doctor and patient names."""
        conditions: list = []

        if doctor_id:
            conditions.append(appointments.c.doctor_id == doctor_id)
        if patient_id:
            conditions.append(appointments.c.patient_id == patient_id)
        if date_from:
            conditions.append(appointments.c.appointment_date >= date_from)
        if date_to:
            conditions.append(appointments.c.appointment_date <= date_to)
        if statuses is not None:
            conditions.append(appointments.c.status.in_([s.value for s in statuses]))
        if exclude_appointment_id:
            conditions.append(appointments.c.appointment_id != exclude_appointment_id)

        stmt = (
            select(
                appointments,
                doctors.c.full_name.label("doctor_name"),
                patients.c.full_name.label("patient_name"),
            )
            .select_from(_JOINED)
            .where(*conditions)
            .order_by(*_ORDERING)
        )
        result = await self._execute(stmt, "fetch appointments")

        return [dict(row) for row in result.mappings().all()]

    async def get_by_id(
        self,
        appointment_id: str,
        with_details: bool = False,
    ) -> dict[str, Any] | None:
        """Return one appointment by id."""
        if with_details:
            stmt = details_query().where(appointments.c.appointment_id == appointment_id)
        else:
            stmt = select(appointments).where(appointments.c.appointment_id == appointment_id)

        result = await self._execute(stmt, "fetch appointment")
        row = result.mappings().first()

        if not row:
            return None
        return nest_details(row) if with_details else dict(row)

    async def _lock_doctor_day(self, doctor_id: str, appointment_date: date) -> None:
        """Serialize writers for one doctor and day until the transaction ends."""
        lock_key = func.hashtext(f"{doctor_id}:{appointment_date.isoformat()}")
        await self.db.execute(select(func.pg_advisory_xact_lock(lock_key)))

    async def _ensure_free(
        self,
        doctor_id: str,
        appointment_date: date,
        start_time: time,
        end_time: time,
        exclude_appointment_id: str | None = None,
    ) -> None:
        """Re-check the window inside the write transaction."""
        await self._lock_doctor_day(doctor_id, appointment_date)

        stmt = (
            select(
                appointments,
                doctors.c.full_name.label("doctor_name"),
                patients.c.full_name.label("patient_name"),
            )
            .select_from(_JOINED)
            .where(
                appointments.c.doctor_id == doctor_id,
                appointments.c.appointment_date == appointment_date,
                appointments.c.status.in_([s.value for s in ACTIVE_STATUSES]),
            )
        )
        result = await self.db.execute(stmt)
        check = find_conflicts(
            start_time,
            end_time,
            [dict(row) for row in result.mappings().all()],
            exclude_appointment_id=exclude_appointment_id,
        )

        if check.has_conflict:
            raise ConflictException(
                conflicting_appointments=summarize_conflicts(check.conflicting_appointments)
            )

    def _translate_integrity_error(self, error: IntegrityError, operation: str) -> Exception:
        code = getattr(error.orig, "sqlstate", None) or getattr(error.orig, "pgcode", None)
        if code == EXCLUSION_VIOLATION or NO_OVERLAP_CONSTRAINT in str(error.orig):
            logger.warning("appointment_overlap_rejected_by_database", operation=operation)
            return ConflictException(CONFLICT_MESSAGE)
        logger.error("appointment_write_failed", operation=operation, error=str(error))
        return InternalException(f"Failed to {operation}")

    async def insert(self, values: dict[str, Any]) -> dict[str, Any]:
        """
        Store a new appointment.

        The conflict check and the insert share one transaction guarded by a
        per-doctor-day advisory lock; the exclusion constraint is the backstop.
        """
        try:
            await self._ensure_free(
                values["doctor_id"],
                values["appointment_date"],
                values["start_time"],
                values["end_time"],
            )
            stmt = insert(appointments).values(**values).returning(appointments)
            result = await self.db.execute(stmt)
            row = result.mappings().one()
            await self.db.commit()
        except ConflictException:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            raise self._translate_integrity_error(e, "create appointment") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("appointment_write_failed", operation="create appointment", error=str(e))
            raise InternalException("Failed to create appointment") from e

        return dict(row)

    async def update(
        self,
        appointment_id: str,
        values: dict[str, Any],
    ) -> dict[str, Any] | None:
        """Apply a partial update, re-checking conflicts when the window moves."""
        try:
            current_result = await self.db.execute(
                select(appointments)
                .where(appointments.c.appointment_id == appointment_id)
                .with_for_update()
            )
            current = current_result.mappings().first()
            if not current:
                await self.db.rollback()
                return None

            effective = {**dict(current), **values}
            moves_window = any(field in values for field in SCHEDULE_FIELDS)
            stays_active = AppointmentStatus(effective["status"]) in ACTIVE_STATUSES

            if moves_window and stays_active:
                await self._ensure_free(
                    effective["doctor_id"],
                    effective["appointment_date"],
                    effective["start_time"],
                    effective["end_time"],
                    exclude_appointment_id=appointment_id,
                )

            stmt = (
                update(appointments)
                .where(appointments.c.appointment_id == appointment_id)
                .values(**values)
                .returning(appointments)
            )
            result = await self.db.execute(stmt)
            row = result.mappings().one()
            await self.db.commit()
        except ConflictException:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            raise self._translate_integrity_error(e, "update appointment") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("appointment_write_failed", operation="update appointment", error=str(e))
            raise InternalException("Failed to update appointment") from e

        return dict(row)
