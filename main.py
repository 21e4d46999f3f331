# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Admin Duty Bot
==============
Weekly duty-roster announcements for the administration section, pushed to
LINE groups as flex messages, plus a Gemini-backed chat assistant that
answers group messages through the LINE webhook.

Port: 8000
"""

from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dutybot.controllers import console_controller, cron_controller, system_controller, webhook_controller
from dutybot.core.config import settings
from dutybot.core.dependencies import get_task_service
from dutybot.core.errors import DutyBotError
from dutybot.core.logging import get_logger
from dutybot.middleware import MetricsMiddleware, RequestIDMiddleware

logger = get_logger("main")


def fire_due_tasks() -> None:
    """Scheduler job: send every scheduled task that has come due."""
    try:
        results = get_task_service().run_due()
    except Exception:
        logger.exception("Scheduled task run failed")
        return
    if results:
        logger.info("Scheduled task run fired %d task(s)", len(results))


def build_scheduler(interval: int) -> BackgroundScheduler:
    scheduler = BackgroundScheduler(timezone=settings.TIMEZONE)
    scheduler.add_job(
        fire_due_tasks,
        trigger="interval",
        seconds=interval,
        id="fire_due_tasks",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


# ── Lifespan ──
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Start the task scheduler when enabled; stop it on shutdown."""
    scheduler = None
    if settings.TASK_POLL_SECONDS > 0:
        scheduler = build_scheduler(settings.TASK_POLL_SECONDS)
        scheduler.start()
        logger.info("Scheduled task runner started (every %ds)", settings.TASK_POLL_SECONDS)
    application.state.scheduler = scheduler
    if not (settings.CHANNEL_ACCESS_TOKEN and settings.CHANNEL_SECRET):
        logger.warning("LINE credentials are not configured; announcements will fail")
    logger.info("%s v%s starting", settings.SERVICE_NAME, settings.SERVICE_VERSION)
    yield
    if scheduler is not None:
        scheduler.shutdown(wait=False)
    logger.info("%s shutting down", settings.SERVICE_NAME)


# ── FastAPI App ──
app = FastAPI(
    title="Admin Duty Bot",
    description="Weekly duty-roster announcements and LINE chat assistant for the administration section.",
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)


# ── Global exception handlers ──
@app.exception_handler(DutyBotError)
async def dutybot_error_handler(request: Request, exc: DutyBotError):
    req_id = getattr(request.state, "request_id", None)
    logger.warning("%s: %s", type(exc).__name__, exc.message, extra={"request_id": req_id})
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "error": type(exc).__name__, "request_id": req_id},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    req_id = getattr(request.state, "request_id", None)
    logger.exception("Unhandled exception", extra={"request_id": req_id})
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": str(exc), "error": "internal_server_error", "request_id": req_id},
    )


app.include_router(system_controller.router)
app.include_router(cron_controller.router)
app.include_router(webhook_controller.router)
app.include_router(console_controller.router)
app.include_router(console_controller.page_router)


# ── Entrypoint ──
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.SERVICE_PORT, log_level=settings.LOG_LEVEL.lower())
