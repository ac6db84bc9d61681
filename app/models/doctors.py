"""Doctor model definition using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    Text,
    text,
)

metadata = MetaData()

# Owned by the doctor service; read here for existence checks and summaries
doctors = Table(
    "doctors",
    metadata,
    Column("doctor_id", String(64), primary_key=True),
    Column("full_name", Text, nullable=False),
    Column("specialty", String(200), index=True),
    Column("phone_number", String(20)),
    Column("email", String(255)),
    Column("is_active", Boolean, nullable=False, server_default=text("true")),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=text("NOW()")),
)
