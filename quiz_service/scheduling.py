import logging
import re
from datetime import date, datetime, time, timedelta, timezone

from .errors import ValidationError

logger = logging.getLogger("quiz-service")

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_OF_DAY = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Naive datetimes (SQLite drops tzinfo) are read as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_instant(value: datetime | str | None) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return ensure_utc(value)
    raw = str(value).strip()
    if not raw:
        return None
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(raw))
    except ValueError:
        logger.debug("Ignoring unparseable instant %r", value)
        return None


def normalize_scheduled_date(value: date | datetime | str) -> date:
    """Calendar date of the quiz. A YYYY-MM-DD string is taken as that UTC day."""
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    raw = str(value or "").strip()
    if _DATE_ONLY.match(raw):
        return date.fromisoformat(raw)
    instant = _parse_instant(raw)
    if instant is None:
        raise ValidationError(f"Invalid scheduled date: {value!r}")
    return instant.date()


def parse_time_of_day(value: str | None) -> time:
    m = _TIME_OF_DAY.match((value or "00:00").strip())
    if not m:
        raise ValidationError(f"Invalid time of day: {value!r} (expected HH:MM)")
    return time(int(m.group(1)), int(m.group(2)), tzinfo=timezone.utc)


def compose_window(scheduled_date: date | datetime | str, start_time: str | None,
                   end_time: str | None) -> tuple[datetime, datetime]:
    """
    Combine a calendar date with two HH:MM strings into UTC instants.
    An end that is not after the start belongs to the next day.
    """
    day = normalize_scheduled_date(scheduled_date)
    start = datetime.combine(day, parse_time_of_day(start_time))
    end = datetime.combine(day, parse_time_of_day(end_time))
    if end <= start:
        end += timedelta(hours=24)
    return start, end


def compute_window(
    scheduled_date: date | datetime | str,
    start_time: str | None,
    end_time: str | None,
    scheduled_start: datetime | str | None = None,
    scheduled_end: datetime | str | None = None,
) -> tuple[datetime, datetime]:
    explicit_start = _parse_instant(scheduled_start)
    explicit_end = _parse_instant(scheduled_end)
    if explicit_start is not None and explicit_end is not None:
        if explicit_end <= explicit_start:
            raise ValidationError("scheduled_end must be after scheduled_start")
        return explicit_start, explicit_end
    return compose_window(scheduled_date, start_time, end_time)


def needs_backfill(scheduled_start: datetime | None, scheduled_end: datetime | None) -> bool:
    return scheduled_start is None or scheduled_end is None
