"""
Date helpers shared by storage, adherence and read views
"""
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from healthtrack.config import settings
from healthtrack.utils.exceptions import ValidationError


def parse_date(value: Optional[str], field: str = "date") -> Optional[date]:
    """Parse ``YYYY-MM-DD``; empty gives None, anything else malformed raises"""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Invalid {field} '{text}', expected YYYY-MM-DD")


def patient_timezone() -> timezone:
    return timezone(timedelta(minutes=settings.TIMEZONE_OFFSET_MINUTES))


def local_now(now_utc: Optional[datetime] = None) -> datetime:
    """Patient wall-clock time; naive inputs are taken as UTC"""
    now_utc = now_utc or datetime.now(timezone.utc)
    if now_utc.tzinfo is None:
        now_utc = now_utc.replace(tzinfo=timezone.utc)
    return now_utc.astimezone(patient_timezone())


def local_today(now_utc: Optional[datetime] = None) -> date:
    return local_now(now_utc).date()
