# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: Cron trigger endpoint.
Thin HTTP layer — every outcome leaves as JSON with a status code.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse

from dutybot.core.dependencies import get_cron_service
from dutybot.core.errors import ComputeError, DutyBotError
from dutybot.core.logging import get_logger
from dutybot.models.domain import AnnouncementType
from dutybot.schemas.announcements import CronResponse, ErrorResponse
from dutybot.services.cron_service import CronRequest, CronService

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Cron"])


def _announcement_type(raw: Optional[str]) -> AnnouncementType:
    try:
        return AnnouncementType((raw or "weekly").strip().lower())
    except ValueError:
        raise ComputeError(f"Unknown announcement type '{raw}'") from None


@router.get(
    "/cron",
    response_model=CronResponse,
    responses={401: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def run_cron(
    manual: Optional[str] = Query(default=None),
    announcement_type: Optional[str] = Query(default=None, alias="type"),
    date: Optional[str] = Query(default=None),
    reason: Optional[str] = Query(default=None),
    content: Optional[str] = Query(default=None),
    group_id: Optional[str] = Query(default=None, alias="groupId"),
    shift: Optional[str] = Query(default=None),
    staff_list: Optional[str] = Query(default=None, alias="staffList"),
    person: Optional[str] = Query(default=None),
    authorization: Optional[str] = Header(default=None),
    service: CronService = Depends(get_cron_service),
):
    """Compose the requested announcement and push it to the target groups."""
    try:
        request = CronRequest(
            manual=(manual or "").lower() == "true",
            type=_announcement_type(announcement_type),
            date=date,
            reason=reason,
            content=content,
            group_id=group_id,
            shift=shift,
            staff_list=staff_list,
            person=person,
        )
        return service.run(request, authorization)
    except DutyBotError as exc:
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": exc.message, "error": type(exc).__name__},
        )
    except Exception as exc:
        logger.exception("Cron handler error")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": f"伺服器錯誤: {exc}", "error": "ServerError"},
        )
