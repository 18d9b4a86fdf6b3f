"""
Date and week arithmetic for the football pool
"""

import logging
from datetime import datetime, time, timedelta, timezone

import pytz

logger = logging.getLogger(__name__)

EASTERN_TIMEZONE = "America/New_York"
REGULAR_SEASON_WEEKS = 18

SPREAD_REFRESH_WEEKDAY = 0  # Monday
SPREAD_REFRESH_TIME = time(23, 0)


def get_timezone(name):
    """Resolve a timezone name, falling back to UTC if it is unknown"""
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Timezone {name} unavailable, falling back to UTC")
        return pytz.UTC


def ensure_utc(dt):
    """Treat naive datetimes as UTC and convert aware ones to UTC"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def days_since(now, anchor):
    """Whole days from anchor to now, floored (negative before the anchor)"""
    return (ensure_utc(now) - ensure_utc(anchor)) // timedelta(days=1)


def week_for_days(days_since_week1, max_week=REGULAR_SEASON_WEEKS):
    """
    Map days since the Week 1 date to a week number.

    Negative days are the preseason (week 0); otherwise every 7 days is one
    week, clamped to [1, max_week].
    """
    if days_since_week1 < 0:
        return 0
    week = days_since_week1 // 7 + 1
    return max(1, min(week, max_week))


def current_week(now, week1_date, max_week=REGULAR_SEASON_WEEKS):
    return week_for_days(days_since(now, week1_date), max_week)


def week_date_range(week1_date, week):
    """Start and end of a week's 7-day window, anchored on the Week 1 date"""
    week_start = ensure_utc(week1_date) + timedelta(days=7 * (week - 1))
    return week_start, week_start + timedelta(days=7)


def next_monday_11pm_eastern(now, timezone_name=EASTERN_TIMEZONE):
    """
    Next Monday 23:00 in US Eastern time, strictly after now.

    Monday 22:59 gives the same day at 23:00; Monday 23:00 exactly gives the
    following Monday.
    """
    tz = get_timezone(timezone_name)
    local_now = ensure_utc(now).astimezone(tz)

    days_ahead = (SPREAD_REFRESH_WEEKDAY - local_now.weekday()) % 7
    target_date = local_now.date() + timedelta(days=days_ahead)
    target = tz.localize(datetime.combine(target_date, SPREAD_REFRESH_TIME))

    if target <= local_now:
        target = tz.localize(
            datetime.combine(target_date + timedelta(days=7), SPREAD_REFRESH_TIME)
        )
    return target
