# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Schedule console and scheduled tasks.
Thin HTTP layer — delegates ALL logic to ConsoleService / TaskService.
"""

import html

from fastapi import APIRouter, Depends, HTTPException
from starlette.responses import HTMLResponse

from dutybot.core.dependencies import get_console_service, get_task_service
from dutybot.core.errors import ComputeError, DutyBotError
from dutybot.models.domain import SuspensionState
from dutybot.schemas.announcements import (
    ConnectionRequest,
    GroupCreateRequest,
    GroupSelectRequest,
    OffsetStepRequest,
    PreviewUpdateRequest,
    ScheduleConfigRequest,
    SendNowRequest,
    StaffListRequest,
    TaskCreateRequest,
)
from dutybot.services.console_service import ConsoleService
from dutybot.services.task_service import ScheduledTask, TaskService

router = APIRouter(prefix="/api/v1", tags=["Console"])
page_router = APIRouter(tags=["Console"])

WEEKDAY_NAMES = ("週一", "週二", "週三", "週四", "週五", "週六", "週日")


# ── Console state ──


@router.get("/console")
def console_snapshot(service: ConsoleService = Depends(get_console_service)):
    """Settings, preview inputs, the computed preview and the last send log."""
    return service.describe()


@router.get("/console/preview")
def get_preview(service: ConsoleService = Depends(get_console_service)):
    try:
        return service.preview().model_dump(mode="json")
    except DutyBotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/console/preview")
def update_preview(
    payload: PreviewUpdateRequest,
    service: ConsoleService = Depends(get_console_service),
):
    """Change any of the preview inputs and return the recomputed decision."""
    try:
        decision = service.update_preview(
            preview_at=payload.preview_at,
            force_suspend=payload.force_suspend,
            reason=payload.reason,
            announcement_type=payload.announcement_type,
            general_content=payload.general_content,
        )
    except DutyBotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return decision.model_dump(mode="json")


@router.post("/console/offset")
def step_offset(
    payload: OffsetStepRequest,
    service: ConsoleService = Depends(get_console_service),
):
    try:
        return {"calibration_offset": service.adjust_offset(payload.step)}
    except ComputeError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.delete("/console/offset")
def reset_offset(service: ConsoleService = Depends(get_console_service)):
    return {"calibration_offset": service.reset_offset()}


@router.put("/console/staff")
def set_staff(
    payload: StaffListRequest,
    service: ConsoleService = Depends(get_console_service),
):
    try:
        return {"staff_list": service.set_staff_list(payload.staff_list)}
    except ComputeError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.delete("/console/staff")
def reset_staff(service: ConsoleService = Depends(get_console_service)):
    """Restore the built-in roster."""
    return {"staff_list": service.reset_staff_list()}


@router.put("/console/schedule")
def set_schedule(
    payload: ScheduleConfigRequest,
    service: ConsoleService = Depends(get_console_service),
):
    try:
        console = service.set_schedule(payload.weekday, payload.time)
    except ComputeError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {"weekday": console.schedule_weekday, "time": console.schedule_time}


@router.put("/console/connection")
def set_connection(
    payload: ConnectionRequest,
    service: ConsoleService = Depends(get_console_service),
):
    try:
        console = service.set_connection(payload.mode, payload.remote_url)
    except ComputeError as e:
        raise HTTPException(status_code=400, detail=e.message)
    return {
        "connection_mode": console.connection_mode,
        "remote_url": console.remote_url,
        "endpoint": service.endpoint_base(),
    }


# ── Groups ──


@router.get("/console/groups")
def list_groups(service: ConsoleService = Depends(get_console_service)):
    return {
        "groups": [g.model_dump() for g in service.groups()],
        "selected_group_ids": service.selected_group_ids,
    }


@router.post("/console/groups", status_code=201)
def add_group(
    payload: GroupCreateRequest,
    service: ConsoleService = Depends(get_console_service),
):
    try:
        return service.add_group(payload.name, payload.group_id).model_dump()
    except ComputeError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.put("/console/groups/selection")
def select_groups(
    payload: GroupSelectRequest,
    service: ConsoleService = Depends(get_console_service),
):
    try:
        return {"selected_group_ids": service.select_groups(payload.group_ids)}
    except ComputeError as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.delete("/console/groups/{group_key}", status_code=204)
def remove_group(
    group_key: str,
    service: ConsoleService = Depends(get_console_service),
):
    """Remove a custom group. Preset groups are fixed."""
    try:
        service.remove_group(group_key)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ComputeError as e:
        raise HTTPException(status_code=400, detail=e.message)


# ── Sending ──


@router.post("/console/send")
def send_now(
    payload: SendNowRequest,
    service: ConsoleService = Depends(get_console_service),
):
    """Send the previewed announcement now, bypassing the timer."""
    result = service.send_now(payload.confirmed)
    result["logs"] = [entry.model_dump() for entry in result["logs"]]
    return result


@router.get("/console/logs")
def send_logs(service: ConsoleService = Depends(get_console_service)):
    return {"logs": [entry.model_dump() for entry in service.logs]}


# ── Scheduled tasks ──


@router.get("/tasks")
def list_tasks(service: TaskService = Depends(get_task_service)):
    tasks = sorted(service.list_tasks(), key=lambda t: t.due_at())
    return [t.model_dump(mode="json") for t in tasks]


@router.post("/tasks", status_code=201)
def create_task(
    payload: TaskCreateRequest,
    service: TaskService = Depends(get_task_service),
):
    try:
        task = service.add_task(ScheduledTask(**payload.model_dump()))
    except DutyBotError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return task.model_dump(mode="json")


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(
    task_id: str,
    service: TaskService = Depends(get_task_service),
):
    try:
        service.delete_task(task_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/tasks/run-due")
def run_due_tasks(service: TaskService = Depends(get_task_service)):
    """Fire every overdue task now. Used by external schedulers."""
    results = service.run_due()
    return {"fired": len(results), "results": results}


# ── HTML view ──


def _render_console(snapshot: dict) -> str:
    console = snapshot["settings"]
    preview = snapshot["preview"]
    if "error" in preview:
        headline = f"⚠️ {html.escape(preview['error'])}"
    elif preview.get("state") != SuspensionState.NOT_SUSPENDED.value:
        headline = f"⛔ 暫停：{html.escape(preview.get('reason') or '')}"
    else:
        headline = f"📢 本週輪值：{html.escape(preview.get('person') or '')}"

    staff = "".join(f"<li>{html.escape(name)}</li>" for name in console["staff_list"])
    logs = "".join(
        '<li class="{cls}">[{time}] {msg}</li>'.format(
            cls="fail" if entry["success"] is False else "ok",
            time=html.escape(entry["time"]),
            msg=html.escape(entry["msg"]),
        )
        for entry in snapshot["logs"]
    ) or "<li>尚無發送紀錄</li>"

    return f"""<!DOCTYPE html>
<html lang="zh-Hant">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>行政科排程控制台</title>
    <style>
        * {{ margin: 0; padding: 0; box-sizing: border-box; }}
        body {{
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            background: #0f172a;
            color: #e2e8f0;
            padding: 2rem;
        }}
        h1 {{ font-size: 1.75rem; margin-bottom: 1rem; color: #3b82f6; }}
        .card {{
            background: #1e293b;
            border: 1px solid #334155;
            border-radius: 0.75rem;
            padding: 1.25rem;
            margin-bottom: 1rem;
            max-width: 720px;
        }}
        .card h2 {{ font-size: 1.1rem; margin-bottom: 0.5rem; color: #94a3b8; }}
        .headline {{ font-size: 1.5rem; font-weight: 600; }}
        ul {{ list-style: none; }}
        li {{ padding: 0.15rem 0; }}
        li.fail {{ color: #f87171; }}
        li.ok {{ color: #e2e8f0; }}
    </style>
</head>
<body>
    <h1>行政科排程控制台</h1>
    <div class="card">
        <h2>預覽 {html.escape(snapshot["preview_at"][:10])}</h2>
        <div class="headline">{headline}</div>
    </div>
    <div class="card">
        <h2>排程設定</h2>
        <p>每{WEEKDAY_NAMES[console["schedule_weekday"]]} {html.escape(console["schedule_time"])} 發送</p>
        <p>校正偏移：{console["calibration_offset"]}</p>
        <p>連線模式：{html.escape(console["connection_mode"])}</p>
    </div>
    <div class="card">
        <h2>輪值名單</h2>
        <ul>{staff}</ul>
    </div>
    <div class="card">
        <h2>發送紀錄</h2>
        <ul>{logs}</ul>
    </div>
</body>
</html>
"""


@page_router.get("/console", response_class=HTMLResponse)
def console_page(service: ConsoleService = Depends(get_console_service)):
    """Read-only HTML view of the console; changes go through /api/v1/console."""
    return _render_console(service.describe())
