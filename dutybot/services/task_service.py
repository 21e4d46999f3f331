# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Scheduled announcement tasks.
Due tasks fire through the cron endpoint; repeating tasks roll forward.
"""

import calendar
import threading
import uuid
from datetime import date, datetime, timedelta
from typing import Any, Literal, Optional

import httpx
from pydantic import BaseModel, Field

from dutybot.core.config import settings
from dutybot.core.errors import ComputeError, DutyBotError
from dutybot.core.logging import get_logger
from dutybot.metrics.prometheus import SCHEDULED_TASKS_FIRED
from dutybot.models.domain import AnnouncementType
from dutybot.repositories.state_repository import TASKS_KEY, StateRepository
from dutybot.services.console_service import ConsoleService
from dutybot.services.rotation import deployment_anchor, deployment_tz, to_local
from dutybot.services.suspension import decide_duty

logger = get_logger(__name__)

RepeatType = Literal["none", "daily", "weekly", "monthly"]


class ScheduledTask(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: AnnouncementType
    target_date: date
    target_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    info: str = ""
    target_group_names: list[str] = Field(default_factory=list)
    target_group_ids: list[str] = Field(default_factory=list)
    created_at: str = Field(default_factory=lambda: datetime.now(deployment_tz()).isoformat())
    repeat_type: RepeatType = "none"
    repeat_days: list[int] = Field(default_factory=list, description="0=Monday")
    repeat_date: Optional[int] = Field(default=None, ge=1, le=31)

    def due_at(self) -> datetime:
        hour, minute = (int(p) for p in self.target_time.split(":"))
        return datetime(
            self.target_date.year, self.target_date.month, self.target_date.day,
            hour, minute, tzinfo=deployment_tz(),
        )


def calculate_next_date(
    current: date,
    repeat_type: str,
    repeat_days: Optional[list[int]] = None,
    repeat_date: Optional[int] = None,
) -> Optional[date]:
    """Next occurrence after ``current``; None for one-shot tasks."""
    if repeat_type == "daily":
        return current + timedelta(days=1)
    if repeat_type == "weekly":
        if repeat_days:
            for offset in range(1, 8):
                candidate = current + timedelta(days=offset)
                if candidate.weekday() in repeat_days:
                    return candidate
        return current + timedelta(days=7)
    if repeat_type == "monthly":
        year = current.year + current.month // 12
        month = current.month % 12 + 1
        day = repeat_date or current.day
        return date(year, month, min(day, calendar.monthrange(year, month)[1]))
    return None


class TaskService:
    """Persisted queue of scheduled announcements."""

    def __init__(self, repo: StateRepository, console: ConsoleService) -> None:
        self._repo = repo
        self._console = console
        # Guards every read-modify-write of the task list.
        self._lock = threading.Lock()

    def list_tasks(self) -> list[ScheduledTask]:
        tasks: list[ScheduledTask] = []
        for raw in self._repo.get(TASKS_KEY, []) or []:
            try:
                tasks.append(ScheduledTask.model_validate(raw))
            except ValueError as exc:
                logger.warning("Dropping unreadable scheduled task: %s", exc)
        return tasks

    def _save(self, tasks: list[ScheduledTask]) -> None:
        self._repo.set(TASKS_KEY, [t.model_dump(mode="json") for t in tasks])

    def add_task(self, task: ScheduledTask) -> ScheduledTask:
        if task.type == AnnouncementType.GENERAL and not task.info.strip():
            raise ComputeError("General announcement content must not be empty")
        if not task.target_group_ids:
            raise ComputeError("A scheduled task needs at least one target group")
        if task.type == AnnouncementType.WEEKLY and not task.info:
            task.info = self.duty_person_for(task.target_date)
        with self._lock:
            tasks = self.list_tasks()
            tasks.append(task)
            self._save(tasks)
        logger.info(
            "Scheduled task added: id=%s, type=%s, at=%s",
            task.id, task.type.value, task.due_at().isoformat(),
        )
        return task

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            tasks = self.list_tasks()
            remaining = [t for t in tasks if t.id != task_id]
            if len(remaining) == len(tasks):
                raise KeyError(f"No scheduled task '{task_id}'")
            self._save(remaining)

    def duty_person_for(self, day: date) -> str:
        """Rotation result for ``day`` with the console's live roster and offset."""
        decision = decide_duty(
            datetime(day.year, day.month, day.day, tzinfo=deployment_tz()),
            self._console.settings.staff_list,
            deployment_anchor(),
            calibration_offset=self._console.settings.calibration_offset,
            skip_weeks=settings.SKIP_WEEKS,
            defer_on_skip_weeks=settings.DEFER_ON_SKIP_WEEKS,
        )
        return decision.person or ""

    def _advance(self, task: ScheduledTask, now: datetime) -> Optional[ScheduledTask]:
        """First occurrence after ``now``; missed occurrences are skipped."""
        nxt = task
        while nxt.due_at() <= now:
            next_date = calculate_next_date(
                nxt.target_date, task.repeat_type, task.repeat_days, task.repeat_date
            )
            if next_date is None:
                return None
            nxt = nxt.model_copy(update={"target_date": next_date})
        if task.type == AnnouncementType.WEEKLY:
            nxt.info = self.duty_person_for(nxt.target_date)
        return nxt

    def _params(self, task: ScheduledTask) -> dict[str, str]:
        params = {
            "manual": "true",
            "type": task.type.value,
            "date": task.target_date.isoformat(),
            "groupId": ",".join(task.target_group_ids),
        }
        if task.type == AnnouncementType.SUSPEND and task.info:
            params["reason"] = task.info
        elif task.type == AnnouncementType.GENERAL:
            params["content"] = task.info
        elif task.type == AnnouncementType.WEEKLY:
            params["shift"] = str(self._console.settings.calibration_offset)
            params["staffList"] = ",".join(self._console.settings.staff_list)
            if task.info:
                params["person"] = task.info
        return params

    def run_due(self, now: Optional[datetime] = None) -> list[dict[str, Any]]:
        """Fire every task whose time has come, rolling repeats forward first."""
        now = to_local(now) if now else datetime.now(deployment_tz())
        with self._lock:
            tasks = self.list_tasks()
            due = [t for t in tasks if t.due_at() <= now]
            if not due:
                return []

            due_ids = {t.id for t in due}
            updated: list[ScheduledTask] = []
            for task in tasks:
                if task.id not in due_ids:
                    updated.append(task)
                    continue
                nxt = self._advance(task, now)
                if nxt is not None:
                    updated.append(nxt)
            # Saved before sending: each task fires at most once per call.
            self._save(updated)

        results: list[dict[str, Any]] = []
        for task in due:
            try:
                data = self._console.call_cron(self._params(task))
            except (httpx.HTTPError, ValueError, DutyBotError) as exc:
                SCHEDULED_TASKS_FIRED.labels(type=task.type.value, outcome="error").inc()
                logger.error("Scheduled task %s request failed: %s", task.id, exc)
                results.append({"id": task.id, "success": False, "message": str(exc)})
                continue
            ok = bool(data.get("success"))
            SCHEDULED_TASKS_FIRED.labels(
                type=task.type.value, outcome="success" if ok else "rejected"
            ).inc()
            if ok:
                logger.info("Scheduled task %s sent", task.id)
            else:
                logger.error("Scheduled task %s rejected: %s", task.id, data.get("message"))
            results.append({"id": task.id, "success": ok, "message": data.get("message")})
        return results
