# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""Shared test setup: keep console state in memory and never touch disk."""

import os

os.environ["CONSOLE_STATE_PATH"] = ""
os.environ.setdefault("TASK_POLL_SECONDS", "0")
