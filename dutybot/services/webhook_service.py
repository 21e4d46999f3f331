# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: LINE webhook — verify, relay text to Gemini, reply.
"""

import json
from typing import Any

from dutybot.core.config import settings
from dutybot.core.errors import AuthError, ComputeError, DutyBotError
from dutybot.core.logging import get_logger
from dutybot.metrics.prometheus import LLM_FAILURES, WEBHOOK_EVENTS
from dutybot.services.line_client import LineDispatchClient, validate_signature
from dutybot.services.llm_client import GeminiClient

logger = get_logger(__name__)

FALLBACK_REPLY = "報告，阿標目前連線異常，請稍後再試。"


class WebhookService:
    """Handle one signed webhook delivery from the LINE platform."""

    def __init__(self, line_client: LineDispatchClient, llm_client: GeminiClient) -> None:
        self._line = line_client
        self._llm = llm_client

    def handle(self, raw_body: bytes, signature: str | None) -> dict[str, Any]:
        if not validate_signature(raw_body, settings.CHANNEL_SECRET, signature):
            WEBHOOK_EVENTS.labels(outcome="bad_signature").inc()
            logger.warning("Webhook signature validation failed")
            raise AuthError("Invalid Signature")

        try:
            body = json.loads(raw_body.decode("utf-8") or "{}")
        except (UnicodeDecodeError, ValueError) as exc:
            raise ComputeError(f"Invalid webhook body: {exc}") from exc

        if not isinstance(body, dict):
            raise ComputeError("Invalid webhook body: expected a JSON object")
        events = body.get("events") or []
        if not isinstance(events, list):
            raise ComputeError("Invalid webhook body: events must be a list")
        if not events:
            # LINE sends an empty event list when verifying the endpoint.
            WEBHOOK_EVENTS.labels(outcome="empty").inc()
            return {"status": "ok", "handled": 0}

        handled = 0
        for event in events:
            if self._handle_event(event):
                handled += 1
        return {"status": "ok", "handled": handled}

    def _handle_event(self, event: Any) -> bool:
        message = event.get("message") if isinstance(event, dict) else None
        if (
            not isinstance(message, dict)
            or event.get("type") != "message"
            or message.get("type") != "text"
        ):
            WEBHOOK_EVENTS.labels(outcome="ignored").inc()
            return False

        reply_token = event.get("replyToken")
        answer = self.answer(message.get("text", ""))
        try:
            self._line.reply_text(reply_token, answer)
        except DutyBotError as exc:
            WEBHOOK_EVENTS.labels(outcome="reply_failed").inc()
            logger.error("LINE reply failed: %s", exc.message)
            return False
        WEBHOOK_EVENTS.labels(outcome="replied").inc()
        return True

    def answer(self, text: str) -> str:
        """Gemini answer, or the scripted apology on any failure."""
        try:
            return self._llm.generate(text)
        except Exception as exc:
            LLM_FAILURES.inc()
            logger.exception("Gemini processing error: %s", exc)
            return FALLBACK_REPLY
