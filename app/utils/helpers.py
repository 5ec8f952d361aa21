"""
Helper utilities
"""
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def calculate_date_range(days: int = 30, today: Optional[date] = None) -> Tuple[str, str]:
    """Trailing date range as (start, end) ISO date strings"""
    end_date = today or utcnow().date()
    start_date = end_date - timedelta(days=days)
    return start_date.isoformat(), end_date.isoformat()


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def to_number(value, default: float = 0.0) -> float:
    """Coerce vendor JSON values ("12.5", None, 3) into a float"""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return default


def minutes_between(earlier: datetime, later: datetime) -> float:
    """Elapsed minutes from earlier to later"""
    return (later - earlier).total_seconds() / 60


def chunk_list(lst: List, chunk_size: int) -> List[List]:
    """Split list into chunks"""
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def parse_date(value) -> Optional[date]:
    """Parse a vendor date ("2026-01-31", "20260131", ISO timestamp) or None"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    for fmt, length in (("%Y-%m-%d", 10), ("%Y%m%d", 8)):
        try:
            return datetime.strptime(text[:length], fmt).date()
        except ValueError:
            continue
    return None
