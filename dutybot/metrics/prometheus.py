# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Prometheus metrics — single source of truth for all metric objects.
Imported by services and middleware. Never instantiated in controllers.
"""

from prometheus_client import Counter, Histogram

# ── HTTP Metrics (used by middleware) ──
REQUEST_COUNT = Counter(
    "dutybot_requests_total",
    "Total HTTP requests to the duty bot",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "dutybot_request_duration_seconds",
    "Request latency in seconds",
    ["method", "endpoint"],
)
HTTP_ERRORS = Counter(
    "dutybot_http_errors_total",
    "Total HTTP error responses",
    ["method", "endpoint", "status"],
)

# ── Business Metrics (updated by service layer only) ──
DISPATCHES_TOTAL = Counter(
    "dutybot_dispatches_total",
    "LINE push calls by announcement kind and outcome",
    ["kind", "status"],
)
CRON_RUNS = Counter(
    "dutybot_cron_runs_total",
    "Cron trigger invocations by type and outcome",
    ["type", "outcome"],
)
WEBHOOK_EVENTS = Counter(
    "dutybot_webhook_events_total",
    "LINE webhook events by handling outcome",
    ["outcome"],
)
LLM_FAILURES = Counter(
    "dutybot_llm_failures_total",
    "Gemini calls that fell back to the scripted reply",
)
LLM_LATENCY = Histogram(
    "dutybot_llm_duration_seconds",
    "Gemini generateContent latency in seconds",
)
CONSOLE_SENDS = Counter(
    "dutybot_console_sends_total",
    "Manual sends triggered from the schedule console",
    ["outcome"],
)
SCHEDULED_TASKS_FIRED = Counter(
    "dutybot_scheduled_tasks_fired_total",
    "Scheduled announcement tasks fired",
    ["type", "outcome"],
)
