"""Interval conflict detection for doctor time slots.

Intervals are half-open: ``[start, end)``. Two appointments that only touch
at an endpoint (one ends at 10:00, the next starts at 10:00) do not conflict.
The helpers work on any mutually comparable values, so ``datetime.time``,
zero-padded ``"HH:MM"`` strings and minute counts are all accepted.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

CONFLICT_MESSAGE = "Time slot conflicts with existing appointment"


@dataclass(frozen=True)
class ConflictCheck:
    """Outcome of checking a candidate window against existing appointments."""

    has_conflict: bool
    conflicting_appointments: list[Mapping[str, Any]] = field(default_factory=list)
    message: str | None = None


def intervals_overlap(new_start: Any, new_end: Any, existing_start: Any, existing_end: Any) -> bool:
    """Return True if ``[new_start, new_end)`` overlaps ``[existing_start, existing_end)``."""
    return new_start < existing_end and new_end > existing_start


def find_conflicts(
    new_start: Any,
    new_end: Any,
    existing: Iterable[Mapping[str, Any]],
    exclude_appointment_id: str | None = None,
) -> ConflictCheck:
    """
    Check a candidate window against existing appointments.

    The caller is responsible for narrowing ``existing`` to the same doctor,
    date and active statuses, and for rejecting empty windows beforehand.

    Args:
        new_start: Candidate start
        new_end: Candidate end
        existing: Rows with ``appointment_id``, ``start_time`` and ``end_time``
        exclude_appointment_id: Row to ignore (the appointment being moved)

    Returns:
        ConflictCheck listing every overlapping row
    """
    conflicts = [
        row
        for row in existing
        if row["appointment_id"] != exclude_appointment_id
        and intervals_overlap(new_start, new_end, row["start_time"], row["end_time"])
    ]

    return ConflictCheck(
        has_conflict=bool(conflicts),
        conflicting_appointments=conflicts,
        message=CONFLICT_MESSAGE if conflicts else None,
    )
