# betbot/utils/dates.py
from datetime import datetime, timezone

# Admin-facing commands accept either MM-DD-YYYY (optionally with HH:MM) or ISO 8601
_INPUT_FORMATS = ('%m-%d-%Y %H:%M', '%m-%d-%Y')


def ensure_utc(value: datetime) -> datetime:
    """
    SQLite hands back naive datetimes even for timezone-aware columns.
    Treat any naive value as UTC so comparisons against aware 'now' values work.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_date_input(raw: str) -> datetime:
    """
    Parses a date string supplied by an admin into an aware UTC datetime.
    Raises ValueError when the input matches none of the accepted formats.
    """
    if not raw or not isinstance(raw, str):
        raise ValueError("Date must be a non-empty string.")

    text = raw.strip()
    for fmt in _INPUT_FORMATS:
        try:
            return datetime.strptime(text, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    try:
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        raise ValueError(f"Invalid date '{raw}'. Use MM-DD-YYYY, 'MM-DD-YYYY HH:MM' or ISO 8601.")
    return ensure_utc(parsed)
