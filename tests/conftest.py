"""Shared fixtures.

Tests run without Postgres or Redis: the appointment service is wired to
in-memory implementations of its repository and directory ports.
"""

from collections.abc import AsyncGenerator, Iterable
from datetime import UTC, date, datetime, time
from typing import Any

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient

# Load environment variables from .env file
load_dotenv()

from app.core.exceptions import ConflictException  # noqa: E402
from app.dependencies import get_appointment_service  # noqa: E402
from app.main import app  # noqa: E402
from app.schemas.appointments import (  # noqa: E402
    AppointmentCreate,
    AppointmentFilters,
    AppointmentStatus,
    summarize_conflicts,
)
from app.schemas.doctors import DoctorSummary, WorkingHours  # noqa: E402
from app.schemas.patients import PatientSummary  # noqa: E402
from app.services.appointment_lifecycle import ACTIVE_STATUSES  # noqa: E402
from app.services.appointment_service import AppointmentService  # noqa: E402
from app.services.conflict_checker import find_conflicts  # noqa: E402
from app.services.doctor_service import fits_working_hours  # noqa: E402

# Wednesday; its week runs Sunday 2024-01-07 to Saturday 2024-01-13
TODAY = date(2024, 1, 10)


def _order(row: dict[str, Any]) -> tuple:
    return row["appointment_date"], row["start_time"], row["appointment_id"]


class InMemoryAppointmentRepository:
    """Dict-backed appointment repository."""

    def __init__(
        self,
        doctors: dict[str, DoctorSummary],
        patients: dict[str, PatientSummary],
    ):
        self.rows: dict[str, dict[str, Any]] = {}
        self.doctors = doctors
        self.patients = patients
        self.insert_calls = 0

    def _with_details(self, row: dict[str, Any]) -> dict[str, Any]:
        doctor = self.doctors.get(row["doctor_id"])
        patient = self.patients.get(row["patient_id"])
        return {
            **row,
            "doctor": doctor.model_dump() if doctor else None,
            "patient": patient.model_dump() if patient else None,
        }

    def _with_names(self, row: dict[str, Any]) -> dict[str, Any]:
        doctor = self.doctors.get(row["doctor_id"])
        patient = self.patients.get(row["patient_id"])
        return {
            **row,
            "doctor_name": doctor.full_name if doctor else None,
            "patient_name": patient.full_name if patient else None,
        }

    @staticmethod
    def _matches(row: dict[str, Any], filters: AppointmentFilters) -> bool:
        if filters.doctor_id and row["doctor_id"] != filters.doctor_id:
            return False
        if filters.patient_id and row["patient_id"] != filters.patient_id:
            return False
        if filters.appointment_date and row["appointment_date"] != filters.appointment_date:
            return False
        if filters.date_from and row["appointment_date"] < filters.date_from:
            return False
        if filters.date_to and row["appointment_date"] > filters.date_to:
            return False
        if filters.status and row["status"] != filters.status.value:
            return False
        if filters.appointment_type and row["appointment_type"] != filters.appointment_type.value:
            return False
        if filters.search:
            needle = filters.search.lower()
            haystacks = (row.get("reason") or "", row.get("notes") or "")
            if not any(needle in text.lower() for text in haystacks):
                return False
        return True

    async def query_appointments(
        self,
        filters: AppointmentFilters,
    ) -> tuple[list[dict[str, Any]], int]:
        matching = sorted(
            (row for row in self.rows.values() if self._matches(row, filters)), key=_order
        )
        page = matching[filters.offset : filters.offset + filters.limit]
        return [self._with_details(row) for row in page], len(matching)

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
        allowed = {status.value for status in statuses} if statuses is not None else None
        rows = [
            row
            for row in self.rows.values()
            if (doctor_id is None or row["doctor_id"] == doctor_id)
            and (patient_id is None or row["patient_id"] == patient_id)
            and (date_from is None or row["appointment_date"] >= date_from)
            and (date_to is None or row["appointment_date"] <= date_to)
            and (allowed is None or row["status"] in allowed)
            and row["appointment_id"] != exclude_appointment_id
        ]
        return [self._with_names(row) for row in sorted(rows, key=_order)]

    async def get_by_id(
        self,
        appointment_id: str,
        with_details: bool = False,
    ) -> dict[str, Any] | None:
        row = self.rows.get(appointment_id)
        if row is None:
            return None
        return self._with_details(row) if with_details else dict(row)

    async def _ensure_free(self, row: dict[str, Any]) -> None:
        if AppointmentStatus(row["status"]) not in ACTIVE_STATUSES:
            return
        same_day = await self.find_appointments(
            doctor_id=row["doctor_id"],
            date_from=row["appointment_date"],
            date_to=row["appointment_date"],
            statuses=ACTIVE_STATUSES,
        )
        check = find_conflicts(
            row["start_time"], row["end_time"], same_day, row["appointment_id"]
        )
        if check.has_conflict:
            raise ConflictException(
                conflicting_appointments=summarize_conflicts(check.conflicting_appointments)
            )

    async def insert(self, values: dict[str, Any]) -> dict[str, Any]:
        self.insert_calls += 1
        await self._ensure_free(values)
        self.rows[values["appointment_id"]] = dict(values)
        return dict(values)

    async def update(
        self,
        appointment_id: str,
        values: dict[str, Any],
    ) -> dict[str, Any] | None:
        current = self.rows.get(appointment_id)
        if current is None:
            return None
        updated = {**current, **values}
        await self._ensure_free(updated)
        self.rows[appointment_id] = updated
        return dict(updated)


class FakeDoctorDirectory:
    """Doctor directory over in-memory summaries and weekly hours."""

    def __init__(
        self,
        summaries: dict[str, DoctorSummary],
        hours: dict[str, dict[int, WorkingHours]],
    ):
        self.summaries = summaries
        self.hours = hours

    async def exists(self, doctor_id: str) -> bool:
        return doctor_id in self.summaries

    async def get_summary(self, doctor_id: str) -> DoctorSummary | None:
        return self.summaries.get(doctor_id)

    async def get_working_hours(self, doctor_id: str, on_date: date) -> WorkingHours | None:
        return self.hours.get(doctor_id, {}).get(on_date.isoweekday())

    async def is_available(
        self,
        doctor_id: str,
        on_date: date,
        start_time: time,
        end_time: time,
    ) -> bool:
        hours = await self.get_working_hours(doctor_id, on_date)
        return fits_working_hours(hours, start_time, end_time)


class FakePatientDirectory:
    """Patient directory over in-memory summaries."""

    def __init__(self, summaries: dict[str, PatientSummary]):
        self.summaries = summaries

    async def exists(self, patient_id: str) -> bool:
        return patient_id in self.summaries

    async def get_summary(self, patient_id: str) -> PatientSummary | None:
        return self.summaries.get(patient_id)


@pytest.fixture
def doctor_summaries() -> dict[str, DoctorSummary]:
    """Known doctors."""
    return {
        "DOC1": DoctorSummary(
            doctor_id="DOC1",
            full_name="Dr. Ana Silva",
            specialty="Cardiology",
            phone_number="+15550100",
            email="ana.silva@hospital.test",
        ),
        "DOC2": DoctorSummary(
            doctor_id="DOC2",
            full_name="Dr. Ben Okafor",
            specialty="Dermatology",
        ),
    }


@pytest.fixture
def patient_summaries() -> dict[str, PatientSummary]:
    """Known patients."""
    return {
        "PAT1": PatientSummary(
            patient_id="PAT1",
            full_name="Maria Lopez",
            date_of_birth=date(1985, 4, 2),
            gender="female",
        ),
        "PAT2": PatientSummary(patient_id="PAT2", full_name="John Park"),
    }


@pytest.fixture
def working_hours() -> dict[str, dict[int, WorkingHours]]:
    """DOC1 works weekdays with a lunch break; DOC2 works every day."""
    weekday = {
        day: WorkingHours(
            day_of_week=day,
            start_time=time(8, 0),
            end_time=time(17, 0),
            break_start=time(12, 0),
            break_end=time(13, 0),
            slot_duration=30,
        )
        for day in range(1, 6)
    }
    every_day = {
        day: WorkingHours(day_of_week=day, start_time=time(8, 0), end_time=time(18, 0))
        for day in range(1, 8)
    }
    return {"DOC1": weekday, "DOC2": every_day}


@pytest.fixture
def repository(doctor_summaries, patient_summaries) -> InMemoryAppointmentRepository:
    """Empty in-memory appointment store."""
    return InMemoryAppointmentRepository(doctor_summaries, patient_summaries)


@pytest.fixture
def service(
    repository,
    doctor_summaries,
    patient_summaries,
    working_hours,
) -> AppointmentService:
    """Appointment service over in-memory collaborators with a fixed clock."""
    return AppointmentService(
        repository=repository,
        doctors=FakeDoctorDirectory(doctor_summaries, working_hours),
        patients=FakePatientDirectory(patient_summaries),
        clock=lambda: TODAY,
    )


@pytest.fixture
def make_appointment(service: AppointmentService):
    """Book an appointment through the service."""

    async def _make(
        start: str,
        end: str,
        appointment_date: date = TODAY,
        doctor_id: str = "DOC1",
        patient_id: str = "PAT1",
        **extra: Any,
    ):
        data = AppointmentCreate(
            doctor_id=doctor_id,
            patient_id=patient_id,
            appointment_date=appointment_date,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            **extra,
        )
        return await service.create_appointment(data)

    return _make


@pytest.fixture
def seed_row(repository: InMemoryAppointmentRepository):
    """Insert a raw row into the store, bypassing the service gates."""

    def _seed(appointment_id: str, **values: Any) -> dict[str, Any]:
        now = datetime.now(UTC)
        row = {
            "appointment_id": appointment_id,
            "doctor_id": "DOC1",
            "patient_id": "PAT1",
            "appointment_date": TODAY,
            "start_time": time(9, 0),
            "end_time": time(9, 30),
            "appointment_type": "consultation",
            "status": "scheduled",
            "reason": None,
            "notes": None,
            "diagnosis": None,
            "created_by": None,
            "created_at": now,
            "updated_at": now,
            **values,
        }
        repository.rows[appointment_id] = row
        return row

    return _seed


@pytest_asyncio.fixture
async def client(service: AppointmentService) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""
    app.dependency_overrides[get_appointment_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def sample_appointment_data() -> dict:
    """Sample appointment request body."""
    return {
        "doctor_id": "DOC1",
        "patient_id": "PAT1",
        "appointment_date": TODAY.isoformat(),
        "start_time": "09:00",
        "end_time": "09:30",
        "appointment_type": "consultation",
        "reason": "Chest pain follow-up",
        "notes": "First visit",
    }
