"""Patient schemas used by the scheduling service."""

from datetime import date

from pydantic import BaseModel


class PatientSummary(BaseModel):
    """Denormalized patient fields attached to appointment responses."""

    patient_id: str
    full_name: str | None = None
    date_of_birth: date | None = None
    gender: str | None = None
    phone_number: str | None = None
    email: str | None = None

    model_config = {"from_attributes": True}
