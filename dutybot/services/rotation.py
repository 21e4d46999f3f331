# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Rotation logic — pure computation, no side effects.

Shared by the cron trigger and the console preview so both always agree on
who is on duty for a given week.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from dutybot.core.config import settings
from dutybot.core.errors import ComputeError, EmptyRosterError
from dutybot.models.domain import AnchorPoint

ONE_WEEK = timedelta(weeks=1)


def deployment_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE)


def to_local(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Attach (naive) or convert (aware) ``dt`` to the deployment time zone."""
    tz = tz or deployment_tz()
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz)
    return dt.astimezone(tz)


def parse_datetime(value: str, tz: Optional[tzinfo] = None) -> datetime:
    """Parse an ISO date or datetime; naive values are read as local time."""
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ComputeError(f"Invalid date '{value}': expected ISO format") from exc
    return to_local(parsed, tz)


def week_start(dt: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Monday 00:00 of the week containing ``dt``; Sunday closes the week."""
    local = to_local(dt, tz)
    monday = local.date() - timedelta(days=local.weekday())
    return datetime.combine(monday, time.min, tzinfo=local.tzinfo)


def week_key(dt: datetime, tz: Optional[tzinfo] = None) -> str:
    return week_start(dt, tz).date().isoformat()


def anchor_datetime(anchor: str | date | datetime, tz: Optional[tzinfo] = None) -> datetime:
    if isinstance(anchor, datetime):
        return to_local(anchor, tz)
    if isinstance(anchor, date):
        return datetime.combine(anchor, time.min, tzinfo=tz or deployment_tz())
    return parse_datetime(anchor, tz)


def weeks_since_anchor(
    evaluation_dt: datetime,
    anchor_dt: datetime,
    skip_weeks: Iterable[str] = (),
) -> int:
    """
    Whole weeks between the anchor and the week of ``evaluation_dt``.

    Floors toward negative infinity, so dates before the anchor give negative
    counts. Skip weeks lying between the two are taken out of the count
    (the rotation is deferred by one week per suspended week).
    """
    tz = anchor_dt.tzinfo or deployment_tz()
    start = week_start(evaluation_dt, tz)
    anchor = to_local(anchor_dt, tz)
    elapsed = start - anchor
    weeks = elapsed // ONE_WEEK

    skipped = 0
    lower, upper = (anchor, start) if elapsed > timedelta(0) else (start, anchor)
    for key in skip_weeks:
        skip_dt = anchor_datetime(key, tz)
        if lower <= skip_dt < upper:
            skipped += 1
    if elapsed > timedelta(0):
        return weeks - skipped
    return weeks + skipped


def rotation_index(anchor_index: int, total_weeks: int, roster_length: int) -> int:
    if roster_length <= 0:
        raise EmptyRosterError("Staff roster is empty; cannot compute duty rotation")
    # Python's % already floors, so the result is in [0, roster_length).
    return (anchor_index + total_weeks) % roster_length


def compute_duty_person(
    evaluation_dt: datetime,
    staff_roster: Sequence[str],
    anchor_dt: datetime,
    anchor_index: int,
    calibration_offset: int = 0,
    skip_weeks: Iterable[str] = (),
) -> str:
    """Return the staff member on duty for the week containing ``evaluation_dt``."""
    if not staff_roster:
        raise EmptyRosterError("Staff roster is empty; cannot compute duty rotation")
    total_weeks = weeks_since_anchor(evaluation_dt, anchor_dt, skip_weeks) + calibration_offset
    return staff_roster[rotation_index(anchor_index, total_weeks, len(staff_roster))]


def deployment_anchor() -> AnchorPoint:
    """Anchor point configured for this deployment."""
    return AnchorPoint(
        anchor=anchor_datetime(settings.ANCHOR_DATE),
        index=settings.ANCHOR_INDEX,
    )
