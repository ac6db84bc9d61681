"""Date range helpers for calendar, weekly and stats views.

Weeks run Sunday to Saturday.
"""

import calendar
from datetime import date, timedelta

from app.schemas.appointments import CalendarViewType, StatsPeriod

PERIOD_DAYS = {StatsPeriod.WEEK: 7, StatsPeriod.MONTH: 30, StatsPeriod.YEAR: 365}


def week_start(anchor: date) -> date:
    """Return the Sunday on or before ``anchor``."""
    # date.weekday(): Monday=0 .. Sunday=6
    return anchor - timedelta(days=(anchor.weekday() + 1) % 7)


def week_range(anchor: date) -> tuple[date, date]:
    """Return the Sunday..Saturday week containing ``anchor``."""
    start = week_start(anchor)
    return start, start + timedelta(days=6)


def month_range(anchor: date) -> tuple[date, date]:
    """Return the first and last day of ``anchor``'s month."""
    last_day = calendar.monthrange(anchor.year, anchor.month)[1]
    return anchor.replace(day=1), anchor.replace(day=last_day)


def calendar_range(anchor: date, view: CalendarViewType) -> tuple[date, date]:
    """Return the inclusive date range covered by a calendar view."""
    if view == CalendarViewType.WEEK:
        return week_range(anchor)
    if view == CalendarViewType.MONTH:
        return month_range(anchor)
    return anchor, anchor


def days_from(start: date, count: int = 7) -> list[date]:
    """Return ``count`` consecutive dates starting at ``start``."""
    return [start + timedelta(days=offset) for offset in range(count)]


def previous_month_range(anchor: date) -> tuple[date, date]:
    """Return the first and last day of the month before ``anchor``'s."""
    return month_range(anchor.replace(day=1) - timedelta(days=1))


def period_range(today: date, period: StatsPeriod) -> tuple[date, date]:
    """Return the look-back window ending on ``today`` for a stats period."""
    return today - timedelta(days=PERIOD_DAYS[period]), today
