# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Request / Response schemas — API contract definitions.
These are Pydantic models used ONLY at the controller (HTTP) boundary.
"""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from dutybot.models.domain import LINE_GROUP_ID_PATTERN, AnnouncementType

# ── Cron Schemas ──


class CronResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    duty: Optional[str] = None
    timestamp: Optional[str] = None
    weekStart: Optional[str] = None
    type: Optional[str] = None
    sentTo: Optional[list[str]] = None
    errors: Optional[list[str]] = None


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    error: Optional[str] = None
    request_id: Optional[str] = None


# ── Console Schemas ──


class PreviewUpdateRequest(BaseModel):
    """Any subset of the preview inputs; omitted fields keep their value."""

    preview_at: Optional[datetime] = None
    force_suspend: Optional[bool] = None
    reason: Optional[str] = Field(default=None, max_length=200)
    announcement_type: Optional[AnnouncementType] = None
    general_content: Optional[str] = Field(default=None, max_length=5000)


class OffsetStepRequest(BaseModel):
    step: Literal[-1, 1]


class StaffListRequest(BaseModel):
    staff_list: list[str] = Field(..., min_length=1)


class ScheduleConfigRequest(BaseModel):
    weekday: int = Field(..., ge=0, le=6, description="0=Monday")
    time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")


class ConnectionRequest(BaseModel):
    mode: Literal["remote", "local"]
    remote_url: Optional[str] = None


class GroupCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    group_id: str = Field(..., pattern=LINE_GROUP_ID_PATTERN)


class GroupSelectRequest(BaseModel):
    group_ids: list[str]


class SendNowRequest(BaseModel):
    confirmed: bool = Field(..., description="Operator confirmed the send")


# ── Scheduled Task Schemas ──


class TaskCreateRequest(BaseModel):
    type: AnnouncementType
    target_date: date
    target_time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    info: str = Field(default="", max_length=5000)
    target_group_ids: list[str] = Field(..., min_length=1)
    target_group_names: list[str] = Field(default_factory=list)
    repeat_type: Literal["none", "daily", "weekly", "monthly"] = "none"
    repeat_days: list[int] = Field(default_factory=list)
    repeat_date: Optional[int] = Field(default=None, ge=1, le=31)
