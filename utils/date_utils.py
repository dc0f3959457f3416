from datetime import datetime, date, timedelta, timezone
from typing import Union, Optional


def utcnow() -> datetime:
    """Naive UTC now, truncated to milliseconds (BSON date precision)."""
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


def parse_iso_timestamp(s: str) -> Optional[datetime]:
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


def coerce_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Accepts a datetime or an ISO-8601 string and returns naive UTC.
    Raises ValueError for anything else.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, str):
        parsed = parse_iso_timestamp(value.strip())
        if parsed is not None:
            return to_naive_utc(parsed)
    raise ValueError(f"Invalid timestamp: {value!r}")


def local_day(now: Optional[datetime] = None, offset_minutes: int = 0) -> date:
    """Calendar day of a naive-UTC instant in a fixed local offset."""
    now = now or utcnow()
    return (now + timedelta(minutes=offset_minutes)).date()


def day_stamp(d: Union[date, datetime]) -> str:
    if isinstance(d, datetime):
        d = d.date()
    return d.strftime("%Y%m%d")


def duration_ms(start: datetime, end: datetime) -> int:
    delta = end - start
    return (delta.days * 86_400_000) + (delta.seconds * 1000) + (delta.microseconds // 1000)


def readable_duration(ms: Optional[int]) -> Optional[str]:
    if ms is None:
        return None
    seconds = int(ms) // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h {minutes % 60}m"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


def parse_start_timestamp(raw_start: str) -> datetime:
    """
    Accepts 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM', or 'YYYY-MM-DD HH:MM:SS'
    """
    if not raw_start:
        raise ValueError("Missing 'start'")

    formats = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d")

    for fmt in formats:
        try:
            return datetime.strptime(raw_start, fmt)
        except ValueError:
            continue

    raise ValueError(f"Invalid date format: {raw_start}")


def parse_end_timestamp(raw_end: str) -> datetime:
    """
    Accepts 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM', or 'YYYY-MM-DD HH:MM:SS'
    If only a date is provided, returns end-of-day (23:59:59.999).
    """
    if not raw_end:
        raise ValueError("Missing 'end'")

    fmts = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d")
    for fmt in fmts:
        try:
            dt = datetime.strptime(raw_end, fmt)
            # If format was only date, push to end-of-day
            if fmt == "%Y-%m-%d":
                return dt.replace(hour=23, minute=59, second=59, microsecond=999000)
            return dt
        except ValueError:
            continue

    raise ValueError(f"Invalid date format: {raw_end}")
