"""Patient directory service."""

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import InternalException
from app.core.redis_client import CacheManager
from app.models.patients import patients
from app.schemas.patients import PatientSummary

logger = structlog.get_logger()


class PatientDirectoryService:
    """Read-only access to patient records."""

    def __init__(self, db: AsyncSession, cache_manager: CacheManager | None = None):
        """Initialize service with database session and optional cache manager."""
        self.db = db
        self.cache = cache_manager

    @staticmethod
    def _get_patient_cache_key(patient_id: str) -> str:
        """Generate cache key for patient."""
        return f"patient:{patient_id}"

    async def get_summary(self, patient_id: str) -> PatientSummary | None:
        """Get patient summary with caching."""
        if self.cache:
            cached = self.cache.get_json(self._get_patient_cache_key(patient_id))
            if cached:
                return PatientSummary.model_validate(cached)

        query = select(
            patients.c.patient_id,
            patients.c.full_name,
            patients.c.date_of_birth,
            patients.c.gender,
            patients.c.phone_number,
            patients.c.email,
        ).where(patients.c.patient_id == patient_id)

        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as e:
            logger.error("patient_lookup_failed", patient_id=patient_id, error=str(e))
            raise InternalException("Failed to fetch patient") from e

        row = result.mappings().first()
        if not row:
            return None

        summary = PatientSummary.model_validate(dict(row))

        if self.cache:
            self.cache.set_json(
                self._get_patient_cache_key(patient_id),
                summary.model_dump(mode="json"),
                ttl=settings.patient_cache_ttl,
            )

        return summary

    async def exists(self, patient_id: str) -> bool:
        """Check the patient exists."""
        return await self.get_summary(patient_id) is not None
