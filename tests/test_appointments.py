"""Tests for appointment endpoints."""

import pytest
from httpx import AsyncClient

BASE = "/api/v1/appointments"


async def _create(client: AsyncClient, body: dict) -> dict:
    response = await client.post(f"{BASE}/", json=body)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_create_appointment(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test creating an appointment returns the success envelope."""
    response = await client.post(f"{BASE}/", json=sample_appointment_data)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["error"] is None
    assert "timestamp" in body
    assert body["data"]["status"] == "scheduled"
    assert body["data"]["appointment_id"].startswith("APT")
    assert body["data"]["start_time"] == "09:00:00"


@pytest.mark.asyncio
async def test_create_conflict(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test an overlapping booking returns 400 with the conflicting set."""
    existing = await _create(client, sample_appointment_data)

    response = await client.post(
        f"{BASE}/",
        json={**sample_appointment_data, "start_time": "09:15", "end_time": "09:45"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "ConflictException"
    assert body["message"] == "Time slot conflicts with existing appointment"
    conflicts = body["details"]["conflicting_appointments"]
    assert [c["appointment_id"] for c in conflicts] == [existing["appointment_id"]]


@pytest.mark.asyncio
async def test_create_invalid_window(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test an inverted window is a 400 validation error."""
    response = await client.post(
        f"{BASE}/",
        json={**sample_appointment_data, "start_time": "10:00", "end_time": "09:00"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "ValidationError"
    assert body["details"]


@pytest.mark.asyncio
async def test_offset_times_are_rejected(
    client: AsyncClient, sample_appointment_data: dict
) -> None:
    """Test times with a UTC offset are a 400, not a comparison failure."""
    created = await _create(client, sample_appointment_data)
    url = f"{BASE}/{created['appointment_id']}"

    create = await client.post(
        f"{BASE}/", json={**sample_appointment_data, "start_time": "09:00:00Z"}
    )
    check = await client.post(
        f"{BASE}/check-conflicts",
        json={
            "doctor_id": "DOC1",
            "appointment_date": sample_appointment_data["appointment_date"],
            "start_time": "09:00:00+00:00",
            "end_time": "09:30:00",
        },
    )
    patch = await client.patch(url, json={"end_time": "10:00:00+02:00"})
    reschedule = await client.patch(
        f"{url}/reschedule",
        json={
            "appointment_date": "2024-01-11",
            "start_time": "14:00:00Z",
            "end_time": "14:30:00Z",
        },
    )

    for response in (create, check, patch, reschedule):
        assert response.status_code == 400
        assert response.json()["error"] == "ValidationError"
    assert (await client.get(url)).json()["data"]["end_time"] == "09:30:00"


@pytest.mark.asyncio
async def test_doctor_stats_period(client: AsyncClient) -> None:
    """Test the stats period is selectable and validated."""
    month = await client.get(f"{BASE}/doctor/DOC1/stats", params={"period": "month"})
    bad = await client.get(f"{BASE}/doctor/DOC1/stats", params={"period": "decade"})

    assert month.status_code == 200
    assert month.json()["data"]["period"] == "month"
    assert month.json()["data"]["period_start"] == "2023-12-11"
    assert bad.status_code == 400


@pytest.mark.asyncio
async def test_create_unknown_patient(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test an unknown patient is a 404."""
    response = await client.post(f"{BASE}/", json={**sample_appointment_data, "patient_id": "X"})

    assert response.status_code == 404
    assert response.json()["message"] == "Patient not found"


@pytest.mark.asyncio
async def test_get_appointment(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test fetching an appointment includes doctor and patient summaries."""
    created = await _create(client, sample_appointment_data)

    response = await client.get(f"{BASE}/{created['appointment_id']}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["appointment_id"] == created["appointment_id"]
    assert data["doctor"]["full_name"] == "Dr. Ana Silva"
    assert data["patient"]["patient_id"] == "PAT1"


@pytest.mark.asyncio
async def test_get_appointment_not_found(client: AsyncClient) -> None:
    """Test fetching a missing appointment."""
    response = await client.get(f"{BASE}/APTMISSING")

    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "NotFoundException"
    assert body["path"] == f"{BASE}/APTMISSING"


@pytest.mark.asyncio
async def test_list_appointments_pagination(
    client: AsyncClient,
    sample_appointment_data: dict,
) -> None:
    """Test listing returns pagination metadata."""
    for start, end in (("08:00", "08:30"), ("09:00", "09:30"), ("10:00", "10:30")):
        await _create(client, {**sample_appointment_data, "start_time": start, "end_time": end})

    response = await client.get(f"{BASE}/", params={"page": 2, "limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert len(body["data"]) == 1
    assert body["data"][0]["start_time"] == "10:00:00"
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "total_pages": 2}


@pytest.mark.asyncio
async def test_list_rejects_bad_paging(client: AsyncClient) -> None:
    """Test out-of-range paging parameters are rejected."""
    assert (await client.get(f"{BASE}/", params={"limit": 101})).status_code == 400
    assert (await client.get(f"{BASE}/", params={"page": 0})).status_code == 400
    inverted = {"date_from": "2024-01-10", "date_to": "2024-01-01"}
    assert (await client.get(f"{BASE}/", params=inverted)).status_code == 400


@pytest.mark.asyncio
async def test_list_by_doctor_and_patient(
    client: AsyncClient,
    sample_appointment_data: dict,
) -> None:
    """Test doctor and patient scoped listings."""
    await _create(client, sample_appointment_data)
    await _create(client, {**sample_appointment_data, "doctor_id": "DOC2", "patient_id": "PAT2"})

    by_doctor = (await client.get(f"{BASE}/doctor/DOC2")).json()
    by_patient = (await client.get(f"{BASE}/patient/PAT1")).json()

    assert [a["doctor_id"] for a in by_doctor["data"]] == ["DOC2"]
    assert [a["patient_id"] for a in by_patient["data"]] == ["PAT1"]
    assert by_patient["pagination"]["total"] == 1


@pytest.mark.asyncio
async def test_check_conflicts_endpoint(
    client: AsyncClient,
    sample_appointment_data: dict,
) -> None:
    """Test the conflict pre-check reports without writing."""
    created = await _create(client, sample_appointment_data)
    request = {
        "doctor_id": "DOC1",
        "appointment_date": sample_appointment_data["appointment_date"],
        "start_time": "09:15",
        "end_time": "09:45",
    }

    clash = (await client.post(f"{BASE}/check-conflicts", json=request)).json()["data"]
    own_slot = (
        await client.post(
            f"{BASE}/check-conflicts",
            json={
                **request,
                "start_time": "09:00",
                "end_time": "09:30",
                "exclude_appointment_id": created["appointment_id"],
            },
        )
    ).json()["data"]

    assert clash["has_conflict"] is True
    assert clash["conflicting_appointments"][0]["patient_name"] == "Maria Lopez"
    assert own_slot == {"has_conflict": False, "conflicting_appointments": [], "message": None}


@pytest.mark.asyncio
async def test_update_appointment(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test PATCH changes only the fields sent and PUT is accepted too."""
    created = await _create(client, sample_appointment_data)
    url = f"{BASE}/{created['appointment_id']}"

    patched = await client.patch(url, json={"reason": "Updated reason"})
    put = await client.put(url, json={"appointment_type": "follow_up"})

    assert patched.status_code == 200
    assert patched.json()["data"]["reason"] == "Updated reason"
    assert patched.json()["data"]["notes"] == "First visit"
    assert put.json()["data"]["appointment_type"] == "follow_up"
    assert put.json()["data"]["reason"] == "Updated reason"


@pytest.mark.asyncio
async def test_cancel_flow(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test cancelling then cancelling again."""
    created = await _create(client, sample_appointment_data)
    url = f"{BASE}/{created['appointment_id']}/cancel"

    first = await client.patch(url, json={"reason": "Feeling better"})
    second = await client.patch(url)

    assert first.status_code == 200
    assert first.json()["data"]["status"] == "cancelled"
    assert first.json()["data"]["notes"] == "Feeling better"
    assert second.status_code == 400
    assert second.json()["error"] == "InvalidStateTransitionException"
    assert second.json()["details"] == {
        "current_status": "cancelled",
        "target_status": "cancelled",
    }


@pytest.mark.asyncio
async def test_confirm_and_status_flow(
    client: AsyncClient,
    sample_appointment_data: dict,
) -> None:
    """Test confirm, start and complete through the API."""
    created = await _create(client, sample_appointment_data)
    url = f"{BASE}/{created['appointment_id']}"

    confirmed = await client.patch(f"{url}/confirm", json={"notes": "Reminder sent"})
    started = await client.patch(f"{url}/status", json={"status": "in_progress"})
    completed = await client.patch(
        f"{url}/status", json={"status": "completed", "diagnosis": "Healthy"}
    )
    reopened = await client.patch(f"{url}/status", json={"status": "scheduled"})

    assert confirmed.json()["data"]["notes"] == "Reminder sent"
    assert started.json()["data"]["status"] == "in_progress"
    assert completed.json()["data"]["diagnosis"] == "Healthy"
    assert reopened.status_code == 400


@pytest.mark.asyncio
async def test_reschedule_endpoint(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test rescheduling moves the appointment."""
    created = await _create(client, sample_appointment_data)

    response = await client.patch(
        f"{BASE}/{created['appointment_id']}/reschedule",
        json={
            "appointment_date": "2024-01-11",
            "start_time": "14:00",
            "end_time": "14:30",
            "reason": "Clinic closed",
        },
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["appointment_date"] == "2024-01-11"
    assert data["start_time"] == "14:00:00"
    assert data["notes"] == "Rescheduled: Clinic closed"


@pytest.mark.asyncio
async def test_weekly_schedule_endpoint(client: AsyncClient) -> None:
    """Test the weekly schedule always lists seven days."""
    response = await client.get(f"{BASE}/doctor/DOC1/weekly-schedule")
    missing = await client.get(f"{BASE}/doctor/NOPE/weekly-schedule")

    assert response.status_code == 200
    data = response.json()["data"]
    assert len(data["days"]) == 7
    assert data["week_start"] == "2024-01-07"
    assert "2024-01-13" in data["days"]
    assert len(data["daily_schedules"]) == 7
    assert data["daily_schedules"][0]["is_working_day"] is False
    assert data["summary"]["total_working_days"] == 5
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_calendar_endpoint(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test the calendar defaults to the current week."""
    await _create(client, sample_appointment_data)

    week = (await client.get(f"{BASE}/calendar")).json()["data"]
    day = (
        await client.get(f"{BASE}/calendar", params={"date": "2024-01-11", "view": "day"})
    ).json()

    assert week["view"] == "week"
    assert list(week["appointments"]) == ["2024-01-10"]
    assert day["data"]["appointments"] == {}


@pytest.mark.asyncio
async def test_stats_endpoints(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test global and per-doctor statistics."""
    await _create(client, sample_appointment_data)

    stats = (await client.get(f"{BASE}/stats")).json()["data"]
    doctor_stats = (await client.get(f"{BASE}/doctor/DOC1/stats")).json()["data"]

    assert stats["total"] == 1
    assert stats["today"] == 1
    assert stats["by_status"]["scheduled"] == 1
    assert stats["by_status"]["cancelled"] == 0
    assert doctor_stats["unique_patients"] == 1
    assert doctor_stats["completion_rate"] == 0.0
    assert doctor_stats["period"] == "week"
    assert doctor_stats["monthly_comparison"]["current_month"] == 1


@pytest.mark.asyncio
async def test_upcoming_and_slots(client: AsyncClient, sample_appointment_data: dict) -> None:
    """Test upcoming appointments and slot availability."""
    await _create(client, sample_appointment_data)

    upcoming = (await client.get(f"{BASE}/doctor/DOC1/upcoming")).json()["data"]
    slots = (
        await client.get(
            f"{BASE}/available-slots", params={"doctor_id": "DOC1", "date": "2024-01-10"}
        )
    ).json()["data"]

    assert len(upcoming) == 1
    assert upcoming[0]["doctor_name"] == "Dr. Ana Silva"
    nine = next(slot for slot in slots if slot["start_time"] == "09:00:00")
    assert nine["is_available"] is False
    assert all(slot["is_available"] for slot in slots if slot is not nine)
