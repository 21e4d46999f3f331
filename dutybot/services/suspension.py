# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Suspension policy and duty decision — pure computation.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional

from dutybot.models.domain import AnchorPoint, DutyDecision, SuspensionState
from dutybot.services.rotation import compute_duty_person, week_start

SYSTEM_SUSPEND_REASON = "春節連假或排定休假"
MANUAL_SUSPEND_REASON = "特殊事由"


def evaluate_suspension(
    week_start_dt: datetime,
    force_suspend: bool,
    skip_weeks: Iterable[str],
) -> SuspensionState:
    """System skip weeks win over the manual flag and cannot be overridden."""
    if week_start_dt.date().isoformat() in set(skip_weeks):
        return SuspensionState.SYSTEM_SUSPENDED
    if force_suspend:
        return SuspensionState.MANUALLY_SUSPENDED
    return SuspensionState.NOT_SUSPENDED


def decide_duty(
    evaluation_dt: datetime,
    staff_roster: Sequence[str],
    anchor: AnchorPoint,
    calibration_offset: int = 0,
    force_suspend: bool = False,
    skip_weeks: Iterable[str] = (),
    reason: Optional[str] = None,
    person_override: Optional[str] = None,
    defer_on_skip_weeks: bool = False,
) -> DutyDecision:
    """
    Combine suspension and rotation into one decision for the evaluated week.

    ``person_override`` names the duty person explicitly and replaces the
    computed rotation, but never a suspended week.
    """
    skip_weeks = tuple(skip_weeks)
    start = week_start(evaluation_dt, anchor.anchor.tzinfo)
    state = evaluate_suspension(start, force_suspend, skip_weeks)

    if state == SuspensionState.SYSTEM_SUSPENDED:
        return DutyDecision(
            state=state, week_start=start, reason=reason or SYSTEM_SUSPEND_REASON
        )
    if state == SuspensionState.MANUALLY_SUSPENDED:
        return DutyDecision(
            state=state, week_start=start, reason=reason or MANUAL_SUSPEND_REASON
        )

    if person_override:
        person = person_override
    else:
        person = compute_duty_person(
            evaluation_dt,
            staff_roster,
            anchor.anchor,
            anchor.index,
            calibration_offset,
            skip_weeks if defer_on_skip_weeks else (),
        )
    return DutyDecision(state=state, week_start=start, person=person)
