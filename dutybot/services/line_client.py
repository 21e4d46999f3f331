# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: LINE Messaging API client — push, reply and signature checks.
One outbound HTTP call per push; failures are raised, never retried here.
"""

import base64
import hashlib
import hmac
from typing import Any

import httpx

from dutybot.core.config import settings
from dutybot.core.errors import ConfigError, DispatchError
from dutybot.core.logging import get_logger
from dutybot.metrics.prometheus import DISPATCHES_TOTAL
from dutybot.models.domain import AnnouncementPayload, AnnouncementTarget, DispatchAck

logger = get_logger(__name__)


def validate_signature(body: bytes, channel_secret: str, signature: str | None) -> bool:
    """Check X-Line-Signature: base64(HMAC-SHA256(channel_secret, raw body))."""
    if not signature or not channel_secret:
        return False
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected, signature)


def _short(group_id: str) -> str:
    return f"[{group_id[:6]}...]"


def describe_failure(group_id: str, detail: str) -> str:
    """Turn a LINE error message into a short operator-facing diagnostic."""
    if "not a member" in detail:
        return f"{_short(group_id)} 機器人未入群"
    if "invalid" in detail.lower():
        return f"{_short(group_id)} ID無效"
    if detail:
        return f"{_short(group_id)} {detail}"
    return f"{_short(group_id)} 發送失敗"


class LineDispatchClient:
    """Deliver composed announcements to LINE groups."""

    def _headers(self) -> dict[str, str]:
        if not settings.CHANNEL_ACCESS_TOKEN or not settings.CHANNEL_SECRET:
            raise ConfigError("錯誤：未設定 CHANNEL_ACCESS_TOKEN 或 CHANNEL_SECRET")
        return {
            "Authorization": f"Bearer {settings.CHANNEL_ACCESS_TOKEN}",
            "Content-Type": "application/json",
        }

    def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        headers = self._headers()
        with httpx.Client(timeout=settings.LINE_TIMEOUT) as client:
            return client.post(
                f"{settings.LINE_API_BASE_URL.rstrip('/')}{path}",
                json=body,
                headers=headers,
            )

    def send(self, target: AnnouncementTarget, payload: AnnouncementPayload) -> DispatchAck:
        """Push ``payload`` to ``target``. Raises ConfigError or DispatchError."""
        group_id = (target.group_id or "").strip()
        if not group_id:
            raise ConfigError(f"錯誤：群組 '{target.name}' 未設定 LINE 群組 ID")
        self._headers()

        kind = payload.kind.value
        try:
            resp = self._post(
                "/v2/bot/message/push",
                {"to": group_id, "messages": [payload.to_line_message()]},
            )
        except httpx.HTTPError as exc:
            DISPATCHES_TOTAL.labels(kind=kind, status="failed").inc()
            logger.error("LINE push failed: group=%s, error=%s", group_id, exc)
            raise DispatchError(describe_failure(group_id, str(exc)), group_id) from exc

        if resp.status_code >= 300:
            DISPATCHES_TOTAL.labels(kind=kind, status="failed").inc()
            try:
                detail = resp.json().get("message", "")
            except ValueError:
                detail = resp.text
            logger.warning(
                "LINE push rejected: group=%s, status=%d, detail=%s",
                group_id, resp.status_code, detail,
            )
            raise DispatchError(describe_failure(group_id, detail), group_id)

        DISPATCHES_TOTAL.labels(kind=kind, status="sent").inc()
        logger.info(
            "LINE push sent: group=%s, kind=%s, status=%d",
            group_id, kind, resp.status_code,
        )
        return DispatchAck(
            group_id=group_id,
            status_code=resp.status_code,
            request_id=resp.headers.get("x-line-request-id"),
        )

    def reply_text(self, reply_token: str, text: str) -> None:
        """Reply to a webhook event. Raises ConfigError or DispatchError."""
        try:
            resp = self._post(
                "/v2/bot/message/reply",
                {"replyToken": reply_token, "messages": [{"type": "text", "text": text}]},
            )
        except httpx.HTTPError as exc:
            raise DispatchError(f"LINE reply failed: {exc}") from exc
        if resp.status_code >= 300:
            raise DispatchError(f"LINE reply rejected with status {resp.status_code}")
