# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Controller: LINE webhook endpoint.
The raw body is needed for signature validation, so it is read before parsing.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from dutybot.core.dependencies import get_webhook_service
from dutybot.core.errors import AuthError, DutyBotError
from dutybot.core.logging import get_logger
from dutybot.services.webhook_service import WebhookService

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Webhook"])


@router.post("/webhook")
async def line_webhook(
    request: Request,
    service: WebhookService = Depends(get_webhook_service),
):
    """Verify the LINE signature, then answer each text message."""
    body = await request.body()
    signature = request.headers.get("x-line-signature")
    try:
        return await run_in_threadpool(service.handle, body, signature)
    except AuthError as exc:
        return JSONResponse(status_code=401, content={"error": exc.message})
    except DutyBotError as exc:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
    except Exception as exc:
        logger.exception("Webhook handler error")
        return JSONResponse(status_code=500, content={"error": str(exc)})
