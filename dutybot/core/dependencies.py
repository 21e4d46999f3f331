# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
FastAPI dependency injection — wire repositories, clients and services.
"""

from dutybot.core.config import settings
from dutybot.repositories.state_repository import StateRepository
from dutybot.services.console_service import ConsoleService
from dutybot.services.cron_service import CronService
from dutybot.services.line_client import LineDispatchClient
from dutybot.services.llm_client import GeminiClient
from dutybot.services.task_service import TaskService
from dutybot.services.webhook_service import WebhookService

# ── Singleton instances ──
_state_repo = StateRepository(settings.CONSOLE_STATE_PATH)
_line_client = LineDispatchClient()
_llm_client = GeminiClient()

_cron_service = CronService(dispatch_client=_line_client)
_webhook_service = WebhookService(line_client=_line_client, llm_client=_llm_client)
_console_service = ConsoleService(repo=_state_repo)
_task_service = TaskService(repo=_state_repo, console=_console_service)


# ── FastAPI dependency functions ──
def get_state_repo() -> StateRepository:
    return _state_repo


def get_cron_service() -> CronService:
    return _cron_service


def get_webhook_service() -> WebhookService:
    return _webhook_service


def get_console_service() -> ConsoleService:
    return _console_service


def get_task_service() -> TaskService:
    return _task_service
