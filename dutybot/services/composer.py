# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Announcement composer — builds LINE flex bubbles.
Pure functions: no network, no storage, same input gives the same payload.
"""

from datetime import datetime
from typing import Any, Optional

from dutybot.core.errors import ComputeError
from dutybot.models.domain import (
    AnnouncementPayload,
    AnnouncementType,
    DutyDecision,
)
from dutybot.services.rotation import to_local

DEFAULT_SUSPEND_REASON = "國定假日或特殊事由"
DEFERRED_NOTE = "本週輪值順序遞延 (順延一週)"
ADVANCING_NOTE = "本週暫停一次，輪值照常推進"

_SLATE_HEADER = "#1e293b"
_RED_HEADER = "#b91c1c"
_INDIGO_HEADER = "#4338ca"
_MUTED = "#64748b"
_STRONG = "#334155"
_RULE = "#cbd5e1"
_FAINT = "#94a3b8"


def _text(text: str, **style: Any) -> dict[str, Any]:
    return {"type": "text", "text": text, **style}


def _header(title: str, color: str) -> dict[str, Any]:
    return {
        "type": "box",
        "layout": "vertical",
        "backgroundColor": color,
        "paddingAll": "lg",
        "contents": [_text(title, color="#ffffff", weight="bold", size="lg")],
    }


def _footer(lines: list[dict[str, Any]], sign_off: str) -> dict[str, Any]:
    return {
        "type": "box",
        "layout": "vertical",
        "spacing": "sm",
        "contents": [
            *lines,
            _text(sign_off, margin="xl", size="xs", color=_FAINT, align="center"),
        ],
    }


def _bubble(header: dict, body: list[dict], footer: dict) -> dict[str, Any]:
    return {
        "type": "bubble",
        "size": "giga",
        "header": header,
        "body": {"type": "box", "layout": "vertical", "spacing": "md", "contents": body},
        "footer": footer,
    }


def _date_label(evaluation_dt: Optional[datetime]) -> str:
    if evaluation_dt is None:
        return "本週"
    local = to_local(evaluation_dt)
    return f"{local.month}/{local.day} 當週"


def compose_roster(person: str, evaluation_dt: Optional[datetime] = None) -> AnnouncementPayload:
    """Weekly duty notice with the duty person emphasised."""
    if not person or not person.strip():
        raise ComputeError("Duty person must not be empty")
    person = person.strip()
    document = _bubble(
        _header("📢 行政科週知", _SLATE_HEADER),
        [
            _text("報告同仁早安 ☀️", color=_MUTED, size="sm"),
            _text("本週科務會議輪值人員：", color=_STRONG, size="md", weight="bold"),
            {"type": "separator", "color": _RULE},
            _text(person, size="3xl", weight="bold", color="#ef4444", align="center", margin="lg"),
            {"type": "separator", "color": _RULE, "margin": "lg"},
        ],
        _footer(
            [
                _text("煩請各位於 週二下班前", color=_STRONG, weight="bold", size="sm"),
                _text("完成工作日誌 📝", color=_MUTED, size="sm", margin="none"),
                _text("俾利輪值同仁於 週三", color=_STRONG, weight="bold", size="sm", margin="md"),
                _text("彙整陳核用印 📑", color=_MUTED, size="sm", margin="none"),
            ],
            "辛苦了，祝本週工作順心！💪✨",
        ),
    )
    return AnnouncementPayload(
        kind=AnnouncementType.WEEKLY,
        alt_text=f"📢 行政科週知：{_date_label(evaluation_dt)}輪值 {person}",
        document=document,
    )


def compose_suspension(reason: Optional[str] = None, deferred: bool = False) -> AnnouncementPayload:
    """Meeting suspension notice with the reason emphasised.

    ``deferred`` means the rotation holds still for this week.
    """
    display_reason = (reason or "").strip() or DEFAULT_SUSPEND_REASON
    document = _bubble(
        _header("⛔ 會議暫停公告", _RED_HEADER),
        [
            _text("報告同仁早安 ☀️", color=_MUTED, size="sm"),
            _text("因適逢下列事由，本週暫停：", color=_STRONG, size="md", weight="bold"),
            {"type": "separator", "color": _RULE},
            _text(
                display_reason, size="xl", weight="bold", color=_RED_HEADER,
                align="center", margin="lg", wrap=True,
            ),
            {"type": "separator", "color": _RULE, "margin": "lg"},
        ],
        _footer(
            [
                _text("⚠️ 注意事項", color=_STRONG, weight="bold", size="sm"),
                _text(
                    DEFERRED_NOTE if deferred else ADVANCING_NOTE,
                    color=_MUTED, size="sm", margin="none",
                ),
                _text("請各位同仁留意行程安排", color=_MUTED, size="sm", margin="none"),
            ],
            "祝各位假期愉快，平安順心！✨",
        ),
    )
    return AnnouncementPayload(
        kind=AnnouncementType.SUSPEND,
        alt_text=f"⛔ 會議暫停公告：{display_reason}",
        document=document,
    )


def compose_general(content: str) -> AnnouncementPayload:
    """Free-form announcement; the first line doubles as the preview."""
    if not content or not content.strip():
        raise ComputeError("General announcement content must not be empty")
    content = content.strip()
    preview = content.splitlines()[0]
    if len(preview) > 40:
        preview = preview[:39] + "…"
    document = _bubble(
        _header("📝 一般公告", _INDIGO_HEADER),
        [
            _text("報告同仁 ☀️", color=_MUTED, size="sm"),
            {"type": "separator", "color": _RULE},
            _text(content, color=_STRONG, size="md", wrap=True, margin="lg"),
        ],
        _footer([], "敬請 查照，謝謝！"),
    )
    return AnnouncementPayload(
        kind=AnnouncementType.GENERAL,
        alt_text=f"📝 一般公告：{preview}",
        document=document,
    )


def compose_decision(
    decision: DutyDecision,
    evaluation_dt: Optional[datetime] = None,
    deferred: bool = False,
) -> AnnouncementPayload:
    if decision.suspended:
        return compose_suspension(decision.reason, deferred)
    return compose_roster(decision.person, evaluation_dt)
