from __future__ import annotations

from .enums import ErrorKind


class MedReminderError(Exception):
    kind: ErrorKind


class StoreUnavailable(MedReminderError):
    """The schedule store could not be reached or timed out."""

    kind = ErrorKind.STORE_UNAVAILABLE


class InvalidReportType(MedReminderError):
    kind = ErrorKind.INVALID_REPORT_TYPE

    def __init__(self, report_type: str) -> None:
        super().__init__(f"Invalid report type: {report_type}")
        self.report_type = report_type


class UserNotFound(MedReminderError):
    kind = ErrorKind.USER_NOT_FOUND

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id
