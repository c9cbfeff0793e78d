from datetime import date, datetime, time


def parse_datetime(value, tz):
    """ISO-8601 instant; values without an offset are read as club-local time."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError("datetime value required")
    value = value.strip()
    # JavaScript toISOString() ends in "Z", which fromisoformat only accepts from 3.11
    if value[-1:] in ("Z", "z"):
        value = value[:-1] + "+00:00"
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


def parse_date(value):
    if not isinstance(value, str) or not value.strip():
        raise ValueError("date value required")
    return date.fromisoformat(value.strip()[:10])


def parse_hhmm(value):
    # Expect "HH:MM" (or "HH:MM:SS")
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError("time must be a string like 08:00")
    try:
        parsed = time.fromisoformat(value.strip())
    except ValueError:
        raise ValueError("time must look like HH:MM") from None
    return parsed.replace(second=0, microsecond=0)


def parse_pagination(args, default_limit=20, max_limit=100):
    page = args.get("page", type=int) or 1
    limit = args.get("limit", type=int) or default_limit
    page = max(1, page)
    limit = max(1, min(limit, max_limit))
    return page, limit, (page - 1) * limit
