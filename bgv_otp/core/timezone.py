from datetime import datetime, timedelta, timezone

IST = timezone(timedelta(hours=5, minutes=30), name="IST")


def get_ist_now() -> datetime:
    """Current IST time as a naive datetime (columns are stored without tzinfo)"""
    return datetime.now(IST).replace(tzinfo=None)
