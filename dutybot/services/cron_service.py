# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Cron trigger — auth, config check, duty computation, dispatch.
Stateless per invocation; triggering twice sends twice.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ValidationError

from dutybot.core.config import settings
from dutybot.core.errors import AuthError, ComputeError, ConfigError, DispatchError
from dutybot.core.logging import get_logger
from dutybot.metrics.prometheus import CRON_RUNS
from dutybot.models.domain import (
    AnnouncementPayload,
    AnnouncementTarget,
    AnnouncementType,
    SuspensionState,
)
from dutybot.services.composer import compose_decision, compose_general
from dutybot.services.line_client import LineDispatchClient, describe_failure
from dutybot.services.rotation import deployment_anchor, deployment_tz, parse_datetime
from dutybot.services.suspension import decide_duty

logger = get_logger(__name__)


class CronRequest(BaseModel):
    """Query parameters of one cron invocation, as received."""

    manual: bool = False
    type: AnnouncementType = AnnouncementType.WEEKLY
    date: Optional[str] = None
    reason: Optional[str] = None
    content: Optional[str] = None
    group_id: Optional[str] = None
    shift: Optional[str] = None
    staff_list: Optional[str] = None
    person: Optional[str] = None


class ComposedAnnouncement(BaseModel):
    payload: AnnouncementPayload
    description: str
    evaluation_dt: datetime
    duty: Optional[str] = None
    week_start: Optional[datetime] = None


def split_csv(raw: Optional[str]) -> list[str]:
    return [item.strip() for item in (raw or "").split(",") if item.strip()]


class CronService:
    """The cron entry point's protocol: AuthCheck → ConfigCheck → Compute → Dispatch."""

    def __init__(self, dispatch_client: LineDispatchClient) -> None:
        self._dispatch = dispatch_client

    # ── Steps ──

    def authorize(self, manual: bool, authorization: Optional[str]) -> str:
        """Return the auth mode used. Raises AuthError on a bad bearer token."""
        if manual:
            return "manual"
        if not settings.CRON_SECRET:
            logger.warning("CRON_SECRET is not set; accepting unauthenticated cron call")
            return "open"
        if authorization != f"Bearer {settings.CRON_SECRET}":
            raise AuthError("Unauthorized (Invalid Cron Secret)")
        return "bearer"

    def resolve_targets(self, group_id: Optional[str], manual: bool) -> list[str]:
        targets = split_csv(group_id)
        if not targets and not manual and settings.LINE_GROUP_ID:
            targets.append(settings.LINE_GROUP_ID)
        return targets

    def check_config(self, targets: list[str]) -> None:
        if not settings.CHANNEL_ACCESS_TOKEN or not settings.CHANNEL_SECRET:
            raise ConfigError("錯誤：未設定 CHANNEL_ACCESS_TOKEN 或 CHANNEL_SECRET")
        if not targets:
            raise ConfigError("錯誤：未指定任何目標群組 ID (groupId)")

    def compose(self, request: CronRequest, now: Optional[datetime] = None) -> ComposedAnnouncement:
        """Re-derive the announcement for this request from deployment defaults."""
        if request.date:
            evaluation_dt = parse_datetime(request.date)
        else:
            evaluation_dt = (now or datetime.now(deployment_tz())).astimezone(deployment_tz())

        if request.type == AnnouncementType.GENERAL:
            return ComposedAnnouncement(
                payload=compose_general(request.content or ""),
                description="一般公告",
                evaluation_dt=evaluation_dt,
            )

        staff = split_csv(request.staff_list) or list(settings.DEFAULT_STAFF_LIST)
        shift = self._parse_shift(request.shift)
        decision = decide_duty(
            evaluation_dt,
            staff,
            deployment_anchor(),
            calibration_offset=shift,
            force_suspend=request.type == AnnouncementType.SUSPEND,
            skip_weeks=settings.SKIP_WEEKS,
            reason=(request.reason or "").strip() or None,
            person_override=(request.person or "").strip() or None,
            defer_on_skip_weeks=settings.DEFER_ON_SKIP_WEEKS,
        )

        if decision.state == SuspensionState.SYSTEM_SUSPENDED:
            description = f"暫停公告 (自動轉暫停, 事由: {decision.reason})"
        elif decision.state == SuspensionState.MANUALLY_SUSPENDED:
            description = f"暫停公告 (事由: {decision.reason})"
        elif request.person and request.person.strip():
            description = f"輪值公告 (手動指定: {decision.person})"
        else:
            description = f"輪值公告 (本週: {decision.person}, 偏移: {shift})"

        return ComposedAnnouncement(
            payload=compose_decision(
                decision,
                evaluation_dt,
                deferred=settings.DEFER_ON_SKIP_WEEKS
                and decision.state == SuspensionState.SYSTEM_SUSPENDED,
            ),
            description=description,
            evaluation_dt=evaluation_dt,
            duty=decision.person,
            week_start=decision.week_start,
        )

    def dispatch(self, payload: AnnouncementPayload, targets: list[str]) -> tuple[list[str], list[str]]:
        sent: list[str] = []
        errors: list[str] = []
        for group_id in targets:
            if group_id == "default":
                continue
            try:
                target = AnnouncementTarget(id=group_id, name=group_id, group_id=group_id)
                self._dispatch.send(target, payload)
                sent.append(group_id)
            except ValidationError:
                logger.warning("Skipping malformed group id: %.16s...", group_id)
                errors.append(describe_failure(group_id, "invalid group id"))
            except DispatchError as exc:
                errors.append(exc.message)
        return sent, errors

    # ── Entry ──

    def run(
        self,
        request: CronRequest,
        authorization: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """Run one invocation. Raises DutyBotError subclasses on failure."""
        kind = request.type.value
        try:
            auth_mode = self.authorize(request.manual, authorization)
            targets = self.resolve_targets(request.group_id, request.manual)
            self.check_config(targets)
            composed = self.compose(request, now)
            sent, errors = self.dispatch(composed.payload, targets)
            if not sent:
                detail = f"發送失敗: {', '.join(errors)}" if errors else "未執行任何發送"
                raise DispatchError(detail)
        except (AuthError, ConfigError, ComputeError, DispatchError) as exc:
            CRON_RUNS.labels(type=kind, outcome=type(exc).__name__).inc()
            logger.warning("Cron run failed: type=%s, error=%s", kind, exc.message)
            raise

        CRON_RUNS.labels(type=kind, outcome="success").inc()
        logger.info(
            "Cron run sent: type=%s, auth=%s, duty=%s, groups=%d, errors=%d",
            kind, auth_mode, composed.duty, len(sent), len(errors),
        )
        return {
            "success": True,
            "message": f"{composed.description} 已發送至 {len(sent)} 個群組",
            "duty": composed.duty,
            "timestamp": composed.evaluation_dt.isoformat(),
            "weekStart": composed.week_start.date().isoformat() if composed.week_start else None,
            "type": kind,
            "sentTo": sent,
            "errors": errors or None,
        }

    @staticmethod
    def _parse_shift(raw: Optional[str]) -> int:
        if raw is None or str(raw).strip() == "":
            return 0
        try:
            return int(str(raw).strip())
        except ValueError as exc:
            raise ComputeError(f"Invalid shift '{raw}': expected an integer") from exc
