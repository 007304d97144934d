import datetime
import time
import pandas as pd
from tandrum.config import get_settings


def now_ms():
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def to_local_date(value, tz=None):
    """
    Normalize epoch millis, a datetime, a pandas Timestamp or an ISO string
    to a calendar date in the configured timezone.
    """
    if isinstance(value, datetime.date) and not isinstance(value, datetime.datetime):
        return value
    if isinstance(value, str):
        return pd.to_datetime(value).date()

    tz = tz or get_settings().timezone
    if isinstance(value, (int, float)):
        stamp = pd.Timestamp(int(value), unit="ms", tz="UTC")
    else:
        stamp = pd.Timestamp(value)
        if stamp.tzinfo is None:
            stamp = stamp.tz_localize("UTC")
    return stamp.tz_convert(tz).date()


def iso_week(value, tz=None):
    """(ISO year, ISO week) of the given moment."""
    return tuple(to_local_date(value, tz).isocalendar())[:2]


def iso_week_key(value, tz=None):
    year, week = iso_week(value, tz)
    return f"{year}-W{week:02d}"


def is_same_day(ts1, ts2, tz=None):
    return to_local_date(ts1, tz) == to_local_date(ts2, tz)


def is_same_week(ts1, ts2, tz=None):
    return iso_week(ts1, tz) == iso_week(ts2, tz)


def is_done_for_period(frequency, last_checkin, now, tz=None):
    """
    True when `last_checkin` falls in the same completion period as `now`.
    Daily habits compare calendar days, weekly habits compare ISO weeks.
    A missing (None/0) timestamp is never done.
    """
    if not last_checkin:
        return False
    if frequency == "weekly":
        return is_same_week(last_checkin, now, tz)
    return is_same_day(last_checkin, now, tz)
