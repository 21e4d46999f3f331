# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Schedule console — operator-side preview and manual sends.

Holds one explicit ConsoleSettings object, loaded once from the state
repository and saved explicitly on every change. The preview is recomputed
from the shared rotation function on each read, and "send now" calls the
cron endpoint over HTTP with the preview parameters.
"""

import re
from datetime import datetime, timezone
from typing import Any, Literal, Optional

import httpx
from pydantic import BaseModel, Field

from dutybot.core.config import settings
from dutybot.core.errors import ComputeError, DutyBotError
from dutybot.core.logging import get_logger
from dutybot.metrics.prometheus import CONSOLE_SENDS
from dutybot.models.domain import (
    LINE_GROUP_ID_PATTERN,
    PRESET_GROUPS,
    AnnouncementTarget,
    AnnouncementType,
    DutyDecision,
)
from dutybot.repositories.state_repository import (
    CALIBRATION_OFFSET_KEY,
    CONNECTION_MODE_KEY,
    GROUPS_KEY,
    REMOTE_URL_KEY,
    SCHEDULE_CONFIG_KEY,
    STAFF_LIST_KEY,
    StateRepository,
)
from dutybot.services.rotation import deployment_anchor, deployment_tz, to_local
from dutybot.services.suspension import decide_duty

logger = get_logger(__name__)

_GROUP_ID_RE = re.compile(LINE_GROUP_ID_PATTERN)
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

REMEDIATION_HINT = "請確認遠端網址與群組 ID 是否正確，必要時請改由 LINE 官方帳號後台手動發送。"


class ConsoleSettings(BaseModel):
    """Operator configuration persisted between console sessions."""

    schedule_weekday: int = Field(default=0, ge=0, le=6, description="0=Monday")
    schedule_time: str = "09:00"
    staff_list: list[str] = Field(default_factory=lambda: list(settings.DEFAULT_STAFF_LIST))
    calibration_offset: int = 0
    custom_groups: list[AnnouncementTarget] = Field(default_factory=list)
    remote_url: str = Field(default_factory=lambda: settings.REMOTE_API_URL)
    connection_mode: Literal["remote", "local"] = "remote"


class LogEntry(BaseModel):
    time: str
    msg: str
    success: Optional[bool] = None


def load_console_settings(repo: StateRepository) -> ConsoleSettings:
    """Build ConsoleSettings from the store; bad values fall back to defaults."""
    loaded = ConsoleSettings()
    staff = repo.get(STAFF_LIST_KEY)
    if isinstance(staff, list) and all(isinstance(s, str) for s in staff) and staff:
        loaded.staff_list = staff
    offset = repo.get(CALIBRATION_OFFSET_KEY)
    if isinstance(offset, int):
        loaded.calibration_offset = offset
    groups = repo.get(GROUPS_KEY)
    if isinstance(groups, list):
        for raw in groups:
            try:
                loaded.custom_groups.append(AnnouncementTarget.model_validate(raw))
            except ValueError as exc:
                logger.warning("Skipping saved group %r: %s", raw, exc)
    schedule = repo.get(SCHEDULE_CONFIG_KEY)
    if isinstance(schedule, dict):
        weekday = schedule.get("weekday")
        time_str = schedule.get("time")
        if isinstance(weekday, int) and 0 <= weekday <= 6:
            loaded.schedule_weekday = weekday
        if isinstance(time_str, str) and _TIME_RE.match(time_str):
            loaded.schedule_time = time_str
    remote_url = repo.get(REMOTE_URL_KEY)
    if isinstance(remote_url, str) and remote_url:
        loaded.remote_url = remote_url
    if repo.get(CONNECTION_MODE_KEY) in ("remote", "local"):
        loaded.connection_mode = repo.get(CONNECTION_MODE_KEY)
    return loaded


def save_console_settings(repo: StateRepository, console: ConsoleSettings) -> None:
    repo.set(STAFF_LIST_KEY, console.staff_list)
    repo.set(CALIBRATION_OFFSET_KEY, console.calibration_offset)
    repo.set(GROUPS_KEY, [g.model_dump() for g in console.custom_groups])
    repo.set(
        SCHEDULE_CONFIG_KEY,
        {"weekday": console.schedule_weekday, "time": console.schedule_time},
    )
    repo.set(REMOTE_URL_KEY, console.remote_url)
    repo.set(CONNECTION_MODE_KEY, console.connection_mode)


class ConsoleService:
    """One operator session: settings, preview state and the step log."""

    def __init__(self, repo: StateRepository) -> None:
        self._repo = repo
        self.settings = load_console_settings(repo)
        # None follows the wall clock.
        self.preview_at: Optional[datetime] = None
        self.force_suspend = False
        self.custom_reason = ""
        self.announcement_type = AnnouncementType.WEEKLY
        self.general_content = ""
        self.selected_group_ids: list[str] = [PRESET_GROUPS[0].group_id]
        self.logs: list[LogEntry] = []

    def save(self) -> None:
        save_console_settings(self._repo, self.settings)

    # ── Preview ──

    def evaluation_at(self) -> datetime:
        """The pinned preview date, or the current local time."""
        return self.preview_at or datetime.now(deployment_tz())

    def preview(self) -> DutyDecision:
        """Duty decision for the previewed date with the live settings."""
        return decide_duty(
            self.evaluation_at(),
            self.settings.staff_list,
            deployment_anchor(),
            calibration_offset=self.settings.calibration_offset,
            force_suspend=self.force_suspend,
            skip_weeks=settings.SKIP_WEEKS,
            reason=self.custom_reason.strip() or None,
            defer_on_skip_weeks=settings.DEFER_ON_SKIP_WEEKS,
        )

    def update_preview(
        self,
        preview_at: Optional[datetime] = None,
        force_suspend: Optional[bool] = None,
        reason: Optional[str] = None,
        announcement_type: Optional[AnnouncementType] = None,
        general_content: Optional[str] = None,
    ) -> DutyDecision:
        if preview_at is not None:
            self.preview_at = to_local(preview_at)
        if force_suspend is not None:
            self.force_suspend = force_suspend
        if reason is not None:
            self.custom_reason = reason
        if announcement_type is not None:
            self.announcement_type = announcement_type
        if general_content is not None:
            self.general_content = general_content
        return self.preview()

    # ── Roster settings ──

    def adjust_offset(self, step: int) -> int:
        if step not in (-1, 1):
            raise ComputeError("Calibration offset moves one step at a time (+1 or -1)")
        self.settings.calibration_offset += step
        self.save()
        logger.info("Calibration offset set to %d", self.settings.calibration_offset)
        return self.settings.calibration_offset

    def reset_offset(self) -> int:
        self.settings.calibration_offset = 0
        self.save()
        return 0

    def set_staff_list(self, names: list[str]) -> list[str]:
        cleaned = [n.strip() for n in names if n and n.strip()]
        if not cleaned:
            raise ComputeError("Staff list must contain at least one name")
        self.settings.staff_list = cleaned
        self.save()
        logger.info("Staff list updated: %d names", len(cleaned))
        return cleaned

    def reset_staff_list(self) -> list[str]:
        self.settings.staff_list = list(settings.DEFAULT_STAFF_LIST)
        self.save()
        return self.settings.staff_list

    def set_schedule(self, weekday: int, time_str: str) -> ConsoleSettings:
        if not 0 <= weekday <= 6:
            raise ComputeError("weekday must be between 0 (Monday) and 6 (Sunday)")
        if not _TIME_RE.match(time_str):
            raise ComputeError("time must be HH:MM (24h)")
        self.settings.schedule_weekday = weekday
        self.settings.schedule_time = time_str
        self.save()
        return self.settings

    def set_connection(self, mode: str, remote_url: Optional[str] = None) -> ConsoleSettings:
        if mode not in ("remote", "local"):
            raise ComputeError("connection mode must be 'remote' or 'local'")
        if remote_url is not None:
            url = remote_url.strip()
            if not url.startswith(("http://", "https://")):
                raise ComputeError("remote URL must start with http:// or https://")
            self.settings.remote_url = url
        self.settings.connection_mode = mode
        self.save()
        return self.settings

    # ── Groups ──

    def groups(self) -> list[AnnouncementTarget]:
        return [*PRESET_GROUPS, *self.settings.custom_groups]

    def add_group(self, name: str, group_id: str) -> AnnouncementTarget:
        name, group_id = name.strip(), group_id.strip()
        if not name:
            raise ComputeError("Group name must not be empty")
        if not _GROUP_ID_RE.match(group_id):
            raise ComputeError("LINE group ID must be 'C' followed by 32 hex characters")
        if any(g.group_id == group_id for g in self.groups()):
            raise ComputeError(f"Group ID {group_id} is already registered")
        group = AnnouncementTarget(
            id=f"custom_{int(datetime.now(timezone.utc).timestamp() * 1000)}",
            name=name,
            group_id=group_id,
        )
        self.settings.custom_groups.append(group)
        self.save()
        return group

    def remove_group(self, group_key: str) -> None:
        """Remove a custom group by id. Raises KeyError if unknown."""
        if any(g.id == group_key for g in PRESET_GROUPS):
            raise ComputeError("Preset groups cannot be removed")
        remaining = [g for g in self.settings.custom_groups if g.id != group_key]
        if len(remaining) == len(self.settings.custom_groups):
            raise KeyError(f"No custom group '{group_key}'")
        removed = {g.group_id for g in self.settings.custom_groups} - {g.group_id for g in remaining}
        self.settings.custom_groups = remaining
        self.selected_group_ids = [g for g in self.selected_group_ids if g not in removed]
        self.save()

    def select_groups(self, group_ids: list[str]) -> list[str]:
        known = {g.group_id for g in self.groups()}
        unknown = [g for g in group_ids if g not in known]
        if unknown:
            raise ComputeError(f"Unknown group IDs: {', '.join(unknown)}")
        self.selected_group_ids = list(dict.fromkeys(group_ids))
        return self.selected_group_ids

    # ── Sending ──

    def log(self, msg: str, success: Optional[bool] = None) -> LogEntry:
        entry = LogEntry(
            time=datetime.now(deployment_tz()).strftime("%H:%M:%S"), msg=msg, success=success
        )
        self.logs.append(entry)
        if success is False:
            logger.warning("Console: %s", msg)
        else:
            logger.info("Console: %s", msg)
        return entry

    def endpoint_base(self) -> str:
        if self.settings.connection_mode == "local":
            return settings.LOCAL_API_URL.rstrip("/")
        return (self.settings.remote_url or settings.REMOTE_API_URL).rstrip("/")

    def cron_params(self) -> dict[str, str]:
        """Query string that reproduces the current preview on the cron side."""
        params: dict[str, str] = {
            "manual": "true",
            "type": self.announcement_type.value,
            "date": self.evaluation_at().isoformat(),
            "shift": str(self.settings.calibration_offset),
            "staffList": ",".join(self.settings.staff_list),
            "groupId": ",".join(self.selected_group_ids),
        }
        if self.announcement_type == AnnouncementType.WEEKLY and self.force_suspend:
            params["type"] = AnnouncementType.SUSPEND.value
        if self.announcement_type == AnnouncementType.GENERAL:
            params["content"] = self.general_content
        elif self.custom_reason.strip():
            # Also carries the reason for a system skip week.
            params["reason"] = self.custom_reason.strip()
        return params

    def call_cron(self, params: dict[str, str]) -> dict[str, Any]:
        """GET the cron endpoint. Raises httpx.HTTPError or ValueError on failure."""
        url = f"{self.endpoint_base()}/api/cron"
        with httpx.Client(timeout=settings.CONSOLE_HTTP_TIMEOUT) as client:
            resp = client.get(url, params=params)
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected response from {url}")
        data.setdefault("success", resp.status_code < 300)
        return data

    def send_now(self, confirmed: bool) -> dict[str, Any]:
        """Bypass the timer and send the current preview through the cron endpoint."""
        if not confirmed:
            return {"success": False, "message": "已取消發送", "logs": self.logs}

        self.logs = []
        if not self.selected_group_ids:
            self.log("未選擇任何目標群組", success=False)
            CONSOLE_SENDS.labels(outcome="no_target").inc()
            return {"success": False, "message": "未選擇任何目標群組", "logs": self.logs}

        params = self.cron_params()
        self.log("驗證模式：手動觸發 (manual=true，略過 Cron Secret)")
        self.log(f"連線模式：{self.settings.connection_mode}")
        self.log(f"目標網址：{self.endpoint_base()}/api/cron")
        self.log(f"發送群組數：{len(self.selected_group_ids)}")
        self.log("正在呼叫發送端點...")

        try:
            data = self.call_cron(params)
        except (httpx.HTTPError, ValueError) as exc:
            CONSOLE_SENDS.labels(outcome="network_error").inc()
            message = f"網路請求失敗：{exc}"
            self.log(message, success=False)
            self.log(REMEDIATION_HINT, success=False)
            return {"success": False, "message": message, "logs": self.logs}

        if data.get("success"):
            CONSOLE_SENDS.labels(outcome="success").inc()
            message = data.get("message") or "發送成功"
            self.log(f"✅ {message}", success=True)
            for err in data.get("errors") or []:
                self.log(f"⚠️ {err}", success=False)
            return {"success": True, "message": message, "logs": self.logs, "result": data}

        CONSOLE_SENDS.labels(outcome="rejected").inc()
        message = f"發送失敗：{data.get('message') or '未知錯誤'}"
        self.log(message, success=False)
        self.log(REMEDIATION_HINT, success=False)
        return {"success": False, "message": message, "logs": self.logs, "result": data}

    def describe(self) -> dict[str, Any]:
        """Snapshot of the console for the API and the HTML view."""
        preview: dict[str, Any]
        try:
            decision = self.preview()
            preview = decision.model_dump(mode="json")
        except DutyBotError as exc:
            preview = {"error": exc.message}
        return {
            "preview_at": self.evaluation_at().isoformat(),
            "preview_pinned": self.preview_at is not None,
            "announcement_type": self.announcement_type.value,
            "force_suspend": self.force_suspend,
            "custom_reason": self.custom_reason,
            "general_content": self.general_content,
            "selected_group_ids": self.selected_group_ids,
            "settings": self.settings.model_dump(mode="json"),
            "preview": preview,
            "logs": [entry.model_dump() for entry in self.logs],
        }
