"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.redis_client import CacheManager, get_redis_client
from app.database import get_db
from app.repositories.appointment_repository import SQLAlchemyAppointmentRepository
from app.services.appointment_service import AppointmentService
from app.services.doctor_service import DoctorDirectoryService
from app.services.patient_service import PatientDirectoryService


def get_cache_manager() -> CacheManager:
    """
    Get cache manager bound to the process-wide Redis client.

    Returns:
        Cache manager
    """
    return CacheManager(get_redis_client())


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
Cache = Annotated[CacheManager, Depends(get_cache_manager)]


def get_appointment_service(db: DatabaseSession, cache: Cache) -> AppointmentService:
    """
    Build the appointment service for one request.

    Args:
        db: Database session
        cache: Cache manager for doctor and patient lookups

    Returns:
        Appointment service wired to SQL adapters
    """
    return AppointmentService(
        repository=SQLAlchemyAppointmentRepository(db),
        doctors=DoctorDirectoryService(db, cache),
        patients=PatientDirectoryService(db, cache),
    )


AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
