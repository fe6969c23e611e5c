from datetime import date, datetime, timezone


def now_utc() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def today_utc() -> date:
    return now_utc().date()


def fmt_date(value: datetime | date | None) -> str:
    """Certificate date format: zero-padded day, short month, year."""
    if not value:
        return ""
    if isinstance(value, datetime):
        value = value.date()
    return value.strftime("%d %b %Y")


def parse_date(value) -> date | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None
