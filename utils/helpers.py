import math
from datetime import date, datetime # For date parsing and span calculations.

# Accepted date formats for plan and task dates, tried in order.
DATE_FORMATS = ('%Y-%m-%d', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%dT%H:%M:%S.%fZ', '%Y-%m-%dT%H:%M:%SZ', '%d/%m/%Y')


def parse_date(value):
    """
    Parses a date given as a date, datetime or string.

    Args:
        value (str, date, datetime or None): The value to parse. Empty values yield None.

    Returns:
        date or None: The parsed date.

    Raises:
        ValueError: If a non-empty value matches none of DATE_FORMATS.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Invalid date '{value}'. Please use YYYY-MM-DD.")


def plan_span_days(dates):
    """
    Number of calendar days covered by a set of dates, both ends included.

    A single day (or Monday to the same Monday) spans 1 day. Empty input spans 0.

    Args:
        dates (iterable of date): Dates to measure; None entries are ignored.

    Returns:
        int: max - min in days, rounded up, plus one.
    """
    present = [d for d in dates if d is not None]
    if not present:
        return 0
    delta = max(present) - min(present)
    return math.ceil(delta.total_seconds() / 86400) + 1


def estimated_minutes_from(raw):
    """
    Converts an imported effort value to minutes.

    Small values (under 10) are read as hours, larger ones as minutes already.
    Returns None for missing, zero or non-numeric input.
    """
    if raw is None or raw == '' or isinstance(raw, bool):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or value <= 0:
        return None
    minutes = round(value * 60) if value < 10 else round(value)
    return minutes or None


def first_present(row, *keys):
    """Returns the first truthy value among row[key] for keys, or None."""
    for key in keys:
        value = row.get(key)
        if value:
            return value
    return None
