"""Database models."""

from sqlalchemy import MetaData

from app.models.appointments import appointments
from app.models.appointments import metadata as appointments_metadata
from app.models.doctor_schedules import doctor_schedules
from app.models.doctor_schedules import metadata as doctor_schedules_metadata
from app.models.doctors import doctors
from app.models.doctors import metadata as doctors_metadata
from app.models.patients import metadata as patients_metadata
from app.models.patients import patients

# Combined metadata for create_all and migration autogenerate
metadata = MetaData()
for _module_metadata in (
    appointments_metadata,
    doctors_metadata,
    patients_metadata,
    doctor_schedules_metadata,
):
    for _table in _module_metadata.tables.values():
        _table.to_metadata(metadata)

__all__ = [
    "appointments",
    "doctor_schedules",
    "doctors",
    "metadata",
    "patients",
]
