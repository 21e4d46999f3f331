# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Core configuration — all env-driven.
Single source of truth for every tunable parameter of the duty bot.
"""

import os

DEFAULT_STAFF = (
    "林唯農,宋憲昌,江開承,吳怡慧,胡蔚杰,"
    "陳頤恩,陳怡妗,陳薏雯,游智諺,陳美杏"
)


def _csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    """Application settings loaded from environment variables."""

    SERVICE_NAME: str = os.getenv("SERVICE_NAME", "admin-duty-bot")
    SERVICE_VERSION: str = os.getenv("SERVICE_VERSION", "1.0.0")
    SERVICE_PORT: int = int(os.getenv("SERVICE_PORT", "8000"))

    CORS_ORIGINS: list[str] = os.getenv("CORS_ORIGINS", "*").split(",")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Taipei")

    # ── Cron trigger ──
    CRON_SECRET: str = os.getenv("CRON_SECRET", "")

    # ── LINE Messaging API ──
    CHANNEL_ACCESS_TOKEN: str = os.getenv("CHANNEL_ACCESS_TOKEN", "")
    CHANNEL_SECRET: str = os.getenv("CHANNEL_SECRET", "")
    LINE_GROUP_ID: str = os.getenv(
        "LINE_GROUP_ID_AdminHome", os.getenv("LINE_GROUP_ID", "")
    )
    LINE_API_BASE_URL: str = os.getenv("LINE_API_BASE_URL", "https://api.line.me")
    LINE_TIMEOUT: float = float(os.getenv("LINE_TIMEOUT", "8.0"))

    # ── Gemini ──
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", os.getenv("API_KEY", ""))
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    GEMINI_TEMPERATURE: float = float(os.getenv("GEMINI_TEMPERATURE", "0.3"))
    GEMINI_TIMEOUT: float = float(os.getenv("GEMINI_TIMEOUT", "20.0"))
    GEMINI_API_BASE_URL: str = os.getenv(
        "GEMINI_API_BASE_URL", "https://generativelanguage.googleapis.com/v1beta"
    )

    # ── Rotation ──
    ANCHOR_DATE: str = os.getenv("ANCHOR_DATE", "2025-12-08")
    ANCHOR_INDEX: int = int(os.getenv("ANCHOR_INDEX", "6"))
    DEFAULT_STAFF_LIST: list[str] = _csv(os.getenv("DEFAULT_STAFF_LIST", DEFAULT_STAFF))
    # Monday date keys of weeks that never rotate (Lunar New Year holidays).
    SKIP_WEEKS: list[str] = _csv(os.getenv("SKIP_WEEKS", "2025-01-27,2026-02-16"))
    DEFER_ON_SKIP_WEEKS: bool = (
        os.getenv("DEFER_ON_SKIP_WEEKS", "false").lower() == "true"
    )

    # ── Console ──
    CONSOLE_STATE_PATH: str = os.getenv("CONSOLE_STATE_PATH", ".dutybot/console_state.json")
    REMOTE_API_URL: str = os.getenv("REMOTE_API_URL", "https://ah-biao-bot0.vercel.app")
    LOCAL_API_URL: str = os.getenv("LOCAL_API_URL", "http://127.0.0.1:8000")
    CONSOLE_HTTP_TIMEOUT: float = float(os.getenv("CONSOLE_HTTP_TIMEOUT", "15.0"))
    TASK_POLL_SECONDS: int = int(os.getenv("TASK_POLL_SECONDS", "0"))


settings = Settings()
