"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    DDL,
    CheckConstraint,
    Column,
    Date,
    Index,
    MetaData,
    String,
    Table,
    Text,
    Time,
    event,
    text,
)
from sqlalchemy.dialects.postgresql import TIMESTAMP

# Metadata for all tables
metadata = MetaData()

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("appointment_id", String(32), primary_key=True),
    # Ownership / references
    Column("patient_id", String(64), nullable=False),
    Column("doctor_id", String(64), nullable=False),
    # Appointment window
    Column("appointment_date", Date, nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("appointment_type", Text, nullable=False, server_default="consultation"),
    # Status management
    Column(
        "status",
        Text,
        nullable=False,
        server_default="scheduled",
    ),
    # Free text
    Column("reason", Text, nullable=True),
    Column("notes", Text, nullable=True),
    Column("diagnosis", Text, nullable=True),
    # Audit fields
    Column("created_by", String(64), nullable=True),
    Column("created_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", TIMESTAMP(timezone=True), nullable=False, server_default=text("NOW()")),
    # Constraints
    CheckConstraint("start_time < end_time", name="appointments_time_window_check"),
    CheckConstraint(
        "status IN ('scheduled', 'confirmed', 'in_progress', 'completed', 'cancelled', 'no_show')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "appointment_type IN ('consultation', 'follow_up', 'emergency', 'routine_checkup')",
        name="appointments_type_check",
    ),
    Index("ix_appointments_doctor_date", "doctor_id", "appointment_date"),
    Index("ix_appointments_patient_id", "patient_id"),
    Index("ix_appointments_status", "status"),
)

# Active appointments of one doctor may not overlap. Needs the btree_gist extension.
NO_OVERLAP_CONSTRAINT = "appointments_no_overlap"

event.listen(
    appointments,
    "after_create",
    DDL(
        f"ALTER TABLE appointments ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT} "
        "EXCLUDE USING gist ("
        "doctor_id WITH =, "
        "tsrange(appointment_date + start_time, appointment_date + end_time, '[)') WITH &&"
        ") WHERE (status IN ('scheduled', 'confirmed', 'in_progress'))"
    ).execute_if(dialect="postgresql"),
)
