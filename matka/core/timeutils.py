"""
MATKA - Settlement calendar helpers

Timestamps are stored as naive UTC. Settlement dates are calendar dates in
the result timezone (IST), whatever the server locale is.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from matka.core.config import settings
from matka.core.exceptions import InvalidRequestError


def result_tz() -> ZoneInfo:
    return ZoneInfo(settings.RESULT_TIMEZONE)


def utcnow() -> datetime:
    """Current time as naive UTC, the storage convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_date(value, field_name: str = "date") -> date:
    """Parse a YYYY-MM-DD string (or pass a date through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        raise InvalidRequestError(f"'{field_name}' is required in YYYY-MM-DD format")
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise InvalidRequestError(
            f"Invalid '{field_name}' format: {value!r}. Use YYYY-MM-DD."
        ) from None


def ist_day_start_utc(day: date) -> datetime:
    """Naive UTC instant at which an IST calendar day starts."""
    local = datetime.combine(day, time.min, tzinfo=result_tz())
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def ist_date_of(stored: datetime) -> date:
    """IST calendar date of a stored (naive UTC) timestamp."""
    if stored.tzinfo is None:
        stored = stored.replace(tzinfo=timezone.utc)
    return stored.astimezone(result_tz()).date()


@dataclass(frozen=True)
class DateWindow:
    """Half-open naive-UTC interval covering whole IST calendar days."""
    start: datetime
    end: datetime
    first_day: date
    last_day: date

    @classmethod
    def for_dates(cls, first_day, last_day=None) -> "DateWindow":
        first = parse_date(first_day, "start_date")
        last = parse_date(last_day, "end_date") if last_day is not None else first
        if last < first:
            raise InvalidRequestError("'end_date' must not be before 'start_date'")
        return cls(
            start=ist_day_start_utc(first),
            end=ist_day_start_utc(last + timedelta(days=1)),
            first_day=first,
            last_day=last,
        )

    def contains(self, stored: datetime) -> bool:
        return self.start <= stored < self.end

    def bounds(self) -> Tuple[datetime, datetime]:
        return self.start, self.end

    def describe(self) -> str:
        if self.first_day == self.last_day:
            return self.first_day.isoformat()
        return f"{self.first_day.isoformat()}..{self.last_day.isoformat()}"


def optional_window(value) -> Optional[DateWindow]:
    """DateWindow for a single optional date filter."""
    if value is None or value == "":
        return None
    return DateWindow.for_dates(value)
