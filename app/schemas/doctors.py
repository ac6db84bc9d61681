"""Doctor schemas used by the scheduling service."""

from datetime import time

from pydantic import BaseModel, Field, ValidationInfo, field_validator


class DoctorSummary(BaseModel):
    """Denormalized doctor fields attached to appointment responses."""

    doctor_id: str
    full_name: str | None = None
    specialty: str | None = None
    phone_number: str | None = None
    email: str | None = None

    model_config = {"from_attributes": True}


class WorkingHours(BaseModel):
    """A doctor's working window for one ISO weekday."""

    day_of_week: int = Field(..., ge=1, le=7)
    start_time: time
    end_time: time
    break_start: time | None = None
    break_end: time | None = None
    slot_duration: int = Field(default=30, ge=5, le=240)
    is_available: bool = True

    model_config = {"from_attributes": True}

    @field_validator("end_time")
    @classmethod
    def validate_end_time(cls, v: time, info: ValidationInfo) -> time:
        """Validate working day ends after it starts."""
        if "start_time" in info.data and v <= info.data["start_time"]:
            raise ValueError("End time must be after start time")
        return v

    @property
    def has_break(self) -> bool:
        """Whether a complete break window is configured."""
        return self.break_start is not None and self.break_end is not None
