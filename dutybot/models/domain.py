# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Domain models — pure data structures, NO FastAPI dependency.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

LINE_GROUP_ID_PATTERN = "^C[0-9a-f]{32}$"


class SuspensionState(str, Enum):
    NOT_SUSPENDED = "not_suspended"
    SYSTEM_SUSPENDED = "system_suspended"
    MANUALLY_SUSPENDED = "manually_suspended"


class AnnouncementType(str, Enum):
    WEEKLY = "weekly"
    SUSPEND = "suspend"
    GENERAL = "general"


class AnchorPoint(BaseModel):
    """Known (week, rotation index) pair the rotation is phased against."""

    model_config = ConfigDict(frozen=True)

    anchor: datetime
    index: int = Field(..., ge=0)


class DutyDecision(BaseModel):
    """Outcome of rotation + suspension for one evaluated week."""

    model_config = ConfigDict(frozen=True)

    state: SuspensionState
    week_start: datetime
    person: Optional[str] = None
    reason: Optional[str] = None

    @property
    def suspended(self) -> bool:
        return self.state != SuspensionState.NOT_SUSPENDED


class AnnouncementTarget(BaseModel):
    """A LINE group an announcement can be pushed to."""

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    group_id: str = Field(..., min_length=1, max_length=64)
    is_preset: bool = False


class AnnouncementPayload(BaseModel):
    """Composed announcement: notification preview plus flex document."""

    model_config = ConfigDict(frozen=True)

    kind: AnnouncementType
    alt_text: str
    document: dict[str, Any]

    def to_line_message(self) -> dict[str, Any]:
        return {"type": "flex", "altText": self.alt_text, "contents": self.document}


class DispatchAck(BaseModel):
    group_id: str
    status_code: int
    request_id: Optional[str] = None


PRESET_GROUPS: tuple[AnnouncementTarget, ...] = (
    AnnouncementTarget(
        id="preset_admin",
        name="行政科 (AdminHome)",
        group_id="Cb35ecb9f86b1968dd51e476fdc819655",
        is_preset=True,
    ),
    AnnouncementTarget(
        id="preset_test",
        name="測試群 (Test)",
        group_id="C7e04d9539515b89958d12658b938acce",
        is_preset=True,
    ),
)
