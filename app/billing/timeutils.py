from datetime import datetime, timezone


def now_utc():
    return datetime.now(timezone.utc)


def date_stamp(dt: datetime) -> str:
    # UTC YYYY-MM-DD, as used in download filenames; naive values are already UTC
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.date().isoformat()
