"""Appointment endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Query, status

from app.dependencies import AppointmentServiceDep
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentConfirm,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStats,
    AppointmentStatusUpdate,
    AppointmentSummary,
    AppointmentUpdate,
    AppointmentWithDetails,
    CalendarView,
    CalendarViewType,
    ConflictCheckRequest,
    ConflictCheckResponse,
    DoctorAppointmentStats,
    StatsPeriod,
    TimeSlot,
    WeeklySchedule,
)
from app.schemas.common import ApiResponse

router = APIRouter()

FilterParams = Annotated[AppointmentFilters, Query()]


# ============================================================================
# Collection routes
# ============================================================================


@router.get(
    "/",
    response_model=ApiResponse[list[AppointmentWithDetails]],
    status_code=status.HTTP_200_OK,
    summary="List appointments",
)
async def list_appointments(
    filters: FilterParams,
    service: AppointmentServiceDep,
) -> ApiResponse[list[AppointmentWithDetails]]:
    """
    List appointments with filtering and pagination.

    Args:
        filters: Filter and pagination query parameters
        service: Appointment service

    Returns:
        Page of appointments with doctor and patient summaries
    """
    items, pagination = await service.list_appointments(filters)
    return ApiResponse(data=items, pagination=pagination)


@router.post(
    "/",
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_201_CREATED,
    summary="Book appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    service: AppointmentServiceDep,
) -> ApiResponse[AppointmentResponse]:
    """
    Book a new appointment.

    Args:
        data: Appointment creation data
        service: Appointment service

    Returns:
        Created appointment
    """
    appointment = await service.create_appointment(data)
    return ApiResponse(data=appointment, message="Appointment created successfully")


@router.post(
    "/check-conflicts",
    response_model=ApiResponse[ConflictCheckResponse],
    status_code=status.HTTP_200_OK,
    summary="Check a time slot for conflicts",
)
async def check_conflicts(
    data: ConflictCheckRequest,
    service: AppointmentServiceDep,
) -> ApiResponse[ConflictCheckResponse]:
    """Check whether a window overlaps the doctor's active appointments."""
    check = await service.check_conflicts(
        data.doctor_id,
        data.appointment_date,
        data.start_time,
        data.end_time,
        data.exclude_appointment_id,
    )
    result = ConflictCheckResponse(
        has_conflict=check.has_conflict,
        conflicting_appointments=[
            AppointmentSummary.model_validate(row) for row in check.conflicting_appointments
        ],
        message=check.message,
    )
    return ApiResponse(data=result)


@router.get(
    "/stats",
    response_model=ApiResponse[AppointmentStats],
    status_code=status.HTTP_200_OK,
    summary="Appointment statistics",
)
async def get_stats(service: AppointmentServiceDep) -> ApiResponse[AppointmentStats]:
    """Get appointment counters across all doctors."""
    return ApiResponse(data=await service.get_stats())


@router.get(
    "/calendar",
    response_model=ApiResponse[CalendarView],
    status_code=status.HTTP_200_OK,
    summary="Calendar view",
)
async def get_calendar(
    service: AppointmentServiceDep,
    anchor_date: date | None = Query(None, alias="date"),
    view: CalendarViewType = Query(CalendarViewType.WEEK),
    doctor_id: str | None = Query(None),
) -> ApiResponse[CalendarView]:
    """
    Get appointments grouped by date.

    Args:
        service: Appointment service
        anchor_date: Day inside the period to show (defaults to today)
        view: day, week or month
        doctor_id: Restrict to one doctor

    Returns:
        Calendar view
    """
    calendar = await service.get_calendar(anchor_date or service.clock(), view, doctor_id)
    return ApiResponse(data=calendar)


@router.get(
    "/available-slots",
    response_model=ApiResponse[list[TimeSlot]],
    status_code=status.HTTP_200_OK,
    summary="Doctor time slots for a day",
)
async def get_available_slots(
    service: AppointmentServiceDep,
    doctor_id: str = Query(..., min_length=1),
    slot_date: date = Query(..., alias="date"),
    duration: int | None = Query(None, ge=5, le=240),
) -> ApiResponse[list[TimeSlot]]:
    """List a doctor's slots for one day with their availability."""
    slots = await service.get_available_slots(doctor_id, slot_date, duration)
    return ApiResponse(data=slots)


# ============================================================================
# Doctor and patient scoped routes
# ============================================================================


@router.get(
    "/doctor/{doctor_id}",
    response_model=ApiResponse[list[AppointmentWithDetails]],
    status_code=status.HTTP_200_OK,
    summary="List a doctor's appointments",
)
async def list_doctor_appointments(
    doctor_id: str,
    filters: FilterParams,
    service: AppointmentServiceDep,
) -> ApiResponse[list[AppointmentWithDetails]]:
    """List appointments of one doctor with filtering and pagination."""
    items, pagination = await service.list_appointments(
        filters.model_copy(update={"doctor_id": doctor_id})
    )
    return ApiResponse(data=items, pagination=pagination)


@router.get(
    "/doctor/{doctor_id}/upcoming",
    response_model=ApiResponse[list[AppointmentSummary]],
    status_code=status.HTTP_200_OK,
    summary="Doctor's upcoming appointments",
)
async def get_upcoming_appointments(
    doctor_id: str,
    service: AppointmentServiceDep,
    days: int | None = Query(None, ge=1, le=365),
) -> ApiResponse[list[AppointmentSummary]]:
    """Get scheduled and confirmed appointments for the coming days."""
    return ApiResponse(data=await service.get_upcoming_appointments(doctor_id, days))


@router.get(
    "/doctor/{doctor_id}/weekly-schedule",
    response_model=ApiResponse[WeeklySchedule],
    status_code=status.HTTP_200_OK,
    summary="Doctor's weekly schedule",
)
async def get_weekly_schedule(
    doctor_id: str,
    service: AppointmentServiceDep,
    week_start: date | None = Query(None),
) -> ApiResponse[WeeklySchedule]:
    """
    Get a doctor's appointments and slot occupancy over seven days.

    Args:
        doctor_id: Doctor ID
        service: Appointment service
        week_start: First day to show (defaults to this week's Sunday)

    Returns:
        Weekly schedule with all seven days present and a week summary
    """
    return ApiResponse(data=await service.get_weekly_schedule(doctor_id, week_start))


@router.get(
    "/doctor/{doctor_id}/stats",
    response_model=ApiResponse[DoctorAppointmentStats],
    status_code=status.HTTP_200_OK,
    summary="Doctor appointment statistics",
)
async def get_doctor_stats(
    doctor_id: str,
    service: AppointmentServiceDep,
    period: StatsPeriod = Query(StatsPeriod.WEEK),
) -> ApiResponse[DoctorAppointmentStats]:
    """Get appointment counters, daily trend and month comparison for one doctor."""
    return ApiResponse(data=await service.get_doctor_stats(doctor_id, period))


@router.get(
    "/patient/{patient_id}",
    response_model=ApiResponse[list[AppointmentWithDetails]],
    status_code=status.HTTP_200_OK,
    summary="List a patient's appointments",
)
async def list_patient_appointments(
    patient_id: str,
    filters: FilterParams,
    service: AppointmentServiceDep,
) -> ApiResponse[list[AppointmentWithDetails]]:
    """List appointments of one patient with filtering and pagination."""
    items, pagination = await service.list_appointments(
        filters.model_copy(update={"patient_id": patient_id})
    )
    return ApiResponse(data=items, pagination=pagination)


# ============================================================================
# Single appointment routes
# ============================================================================


@router.get(
    "/{appointment_id}",
    response_model=ApiResponse[AppointmentWithDetails],
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
) -> ApiResponse[AppointmentWithDetails]:
    """
    Get a specific appointment by ID.

    Args:
        appointment_id: Appointment ID
        service: Appointment service

    Returns:
        Appointment with doctor and patient summaries

    Raises:
        NotFoundException: If appointment not found
    """
    return ApiResponse(data=await service.get_appointment(appointment_id))


@router.put(
    "/{appointment_id}",
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    summary="Update appointment",
)
@router.patch(
    "/{appointment_id}",
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    summary="Partially update appointment",
)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    service: AppointmentServiceDep,
) -> ApiResponse[AppointmentResponse]:
    """
    Update the fields present in the request body.

    Args:
        appointment_id: Appointment ID
        data: Fields to change
        service: Appointment service

    Returns:
        Updated appointment
    """
    appointment = await service.update_appointment(appointment_id, data)
    return ApiResponse(data=appointment, message="Appointment updated successfully")


@router.patch(
    "/{appointment_id}/cancel",
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
    data: AppointmentCancel | None = None,
) -> ApiResponse[AppointmentResponse]:
    """Cancel an appointment, optionally recording the reason."""
    appointment = await service.cancel_appointment(appointment_id, data.reason if data else None)
    return ApiResponse(data=appointment, message="Appointment cancelled successfully")


@router.patch(
    "/{appointment_id}/confirm",
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: str,
    service: AppointmentServiceDep,
    data: AppointmentConfirm | None = None,
) -> ApiResponse[AppointmentResponse]:
    """Confirm a scheduled appointment."""
    appointment = await service.confirm_appointment(appointment_id, data.notes if data else None)
    return ApiResponse(data=appointment, message="Appointment confirmed successfully")


@router.patch(
    "/{appointment_id}/reschedule",
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: str,
    data: AppointmentReschedule,
    service: AppointmentServiceDep,
) -> ApiResponse[AppointmentResponse]:
    """Move an appointment to a new date and time."""
    appointment = await service.reschedule_appointment(
        appointment_id,
        data.appointment_date,
        data.start_time,
        data.end_time,
        data.reason,
    )
    return ApiResponse(data=appointment, message="Appointment rescheduled successfully")


@router.patch(
    "/{appointment_id}/status",
    response_model=ApiResponse[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    summary="Change appointment status",
)
async def update_status(
    appointment_id: str,
    data: AppointmentStatusUpdate,
    service: AppointmentServiceDep,
) -> ApiResponse[AppointmentResponse]:
    """Move an appointment along its lifecycle."""
    appointment = await service.update_status(appointment_id, data)
    return ApiResponse(data=appointment, message="Appointment status updated successfully")
