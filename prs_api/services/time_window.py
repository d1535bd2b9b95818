from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo

from .errors import Stage, ValidationError

UTC = timezone.utc

DEFAULT_TIME_RANGE = "6 months"

# Named range -> (days, months). Month ranges use calendar arithmetic.
NAMED_RANGES: dict[str, tuple[int, int]] = {
    "1 week": (7, 0),
    "1 month": (0, 1),
    "3 months": (0, 3),
    "6 months": (0, 6),
    "1 year": (0, 12),
}


@dataclass(frozen=True)
class TimeWindow:
    """Half-open ``[start, end)`` bounds on ``updated_at``."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= ensure_utc(moment) < self.end


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def _subtract_months(base: datetime, months: int) -> datetime:
    total_months = base.year * 12 + (base.month - 1) - months
    year = total_months // 12
    month = total_months % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return base.replace(year=year, month=month, day=min(base.day, last_day))


def _parse_date(value: date | datetime | str, tz: tzinfo) -> date:
    if isinstance(value, datetime):
        return (value if value.tzinfo is None else value.astimezone(tz)).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        raw = value.strip()
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {value!r}", stage=Stage.FILTER_COMPILE) from exc
        return _parse_date(parsed, tz)
    raise ValidationError(f"Unsupported date value: {value!r}", stage=Stage.FILTER_COMPILE)


def day_window(day: date | datetime | str, *, tz: tzinfo = UTC) -> TimeWindow:
    """Bounds of one calendar day in ``tz``, expressed in UTC."""
    local_day = _parse_date(day, tz)
    start = datetime.combine(local_day, time.min, tzinfo=tz)
    end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz)
    return TimeWindow(start=start.astimezone(UTC), end=end.astimezone(UTC))


def resolve_time_window(
    time_range: str | None = None,
    specific_date: date | datetime | str | None = None,
    *,
    default_range: str = DEFAULT_TIME_RANGE,
    now: datetime | None = None,
    tz: tzinfo = UTC,
) -> TimeWindow:
    """Resolve a named range or an explicit date into concrete bounds.

    An explicit date wins over a named range and collapses to that single day.
    Without either, ``default_range`` applies. Unknown range names are rejected so
    a typo never silently widens the scan to the default.
    """
    if specific_date not in (None, ""):
        return day_window(specific_date, tz=tz)

    name = (time_range or default_range).strip().lower()
    try:
        days, months = NAMED_RANGES[name]
    except KeyError as exc:
        allowed = ", ".join(NAMED_RANGES)
        raise ValidationError(
            f"Unknown time range {time_range!r}; expected one of: {allowed}", stage=Stage.FILTER_COMPILE
        ) from exc

    end = ensure_utc(now or datetime.now(UTC))
    start = end - timedelta(days=days) if days else _subtract_months(end, months)
    return TimeWindow(start=start, end=end)
