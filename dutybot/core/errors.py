# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Error taxonomy shared by the cron trigger, the webhook and the console.
Each error carries the HTTP status it is reported with.
"""


class DutyBotError(Exception):
    """Base class for every error the bot reports to a caller."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthError(DutyBotError):
    """Bad or missing signature / bearer token."""

    status_code = 401


class ConfigError(DutyBotError):
    """Missing credentials or target; the deployment must be fixed."""

    status_code = 500


class DispatchError(DutyBotError):
    """The messaging API rejected the push or the network call failed."""

    status_code = 500

    def __init__(self, message: str, group_id: str | None = None) -> None:
        super().__init__(message)
        self.group_id = group_id


class ComputeError(DutyBotError):
    """Degenerate input to the duty computation or the composer."""

    status_code = 400


class EmptyRosterError(ComputeError, ConfigError):
    """Staff roster has no entries, so no rotation index exists."""

    status_code = 500
