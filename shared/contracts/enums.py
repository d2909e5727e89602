from enum import Enum


class DoseStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    MISSED = "missed"


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"


class NotificationType(str, Enum):
    MEDICATION_REMINDER = "medication_reminder"
    MISSED_MEDICATION = "missed_medication"
    MEDICATION_REPORT = "medication_report"
    GENERAL = "general"


class ReportType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class DispatchStatus(str, Enum):
    DELIVERED = "delivered"
    DRY_RUN = "dry_run"
    FAILED = "failed"


class ErrorKind(str, Enum):
    STORE_UNAVAILABLE = "store_unavailable"
    MEDICINE_NOT_FOUND = "medicine_not_found"
    USER_NOT_FOUND = "user_not_found"
    RECIPIENT_NOT_CONFIGURED = "recipient_not_configured"
    INVALID_REPORT_TYPE = "invalid_report_type"
    DELIVERY_FAILED = "delivery_failed"
    ARTIFACT_PERSIST_FAILED = "artifact_persist_failed"
