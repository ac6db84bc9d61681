"""Doctor working schedule model using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

metadata = MetaData()

# One row per doctor and ISO weekday (Monday=1 .. Sunday=7)
doctor_schedules = Table(
    "doctor_schedules",
    metadata,
    Column(
        "schedule_id",
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    ),
    Column("doctor_id", String(64), nullable=False, index=True),
    Column("day_of_week", Integer, nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("break_start", Time, nullable=True),
    Column("break_end", Time, nullable=True),
    Column("slot_duration", Integer, nullable=False, server_default=text("30")),
    Column("is_available", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    CheckConstraint("day_of_week BETWEEN 1 AND 7", name="doctor_schedules_day_check"),
    CheckConstraint("start_time < end_time", name="doctor_schedules_window_check"),
    UniqueConstraint("doctor_id", "day_of_week", name="uq_doctor_schedules_doctor_day"),
)
