"""
Layer restriction windows.

A restricted layer only yields an on-call holder inside its weekly window,
evaluated in the restriction's own timezone.
"""

from __future__ import annotations

from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from pagerline.domain.models import WEEKDAYS, Restrictions

logger = structlog.get_logger()


def _zone(name: str | None) -> tzinfo:
    if not name:
        return UTC
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("restriction_timezone_unknown", timezone=name)
        return UTC


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


def weekday_code(moment: datetime) -> str:
    """Return SUN..SAT for a datetime (Python's weekday() starts on Monday)."""
    return WEEKDAYS[(moment.weekday() + 1) % 7]


def previous_weekday_code(code: str) -> str:
    return WEEKDAYS[(WEEKDAYS.index(code) + 6) % 7]


def is_layer_active(restrictions: Restrictions | None, now: datetime) -> bool:
    """
    Decide whether a layer is active at ``now``.

    The time window is inclusive at both ends. A window whose end is before
    its start crosses midnight; its post-midnight part belongs to the day the
    window opened, so the day check uses the previous calendar day there.
    """
    if restrictions is None:
        return True

    local = now.astimezone(_zone(restrictions.timezone))
    today = weekday_code(local)
    days = restrictions.days

    if not restrictions.has_window:
        return today in days if days is not None else True

    minute_of_day = local.hour * 60 + local.minute
    start = _minutes(restrictions.start_time)  # type: ignore[arg-type]
    end = _minutes(restrictions.end_time)  # type: ignore[arg-type]

    crosses_midnight = end < start
    if crosses_midnight:
        in_window = minute_of_day >= start or minute_of_day <= end
    else:
        in_window = start <= minute_of_day <= end

    if not in_window:
        return False
    if days is None:
        return True
    if not crosses_midnight or minute_of_day >= start:
        return today in days
    return previous_weekday_code(today) in days
