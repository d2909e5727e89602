from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from .enums import DispatchStatus, ErrorKind, NotificationType


class NotificationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    recipient_id: str = Field(min_length=1)
    message: str
    notification_type: NotificationType = NotificationType.GENERAL
    medicine_id: int | None = None
    log_id: int | None = None


class PassError(BaseModel):
    kind: ErrorKind
    entity_id: int | None = None
    detail: str = ""


class RunResult(BaseModel):
    """Outcome of one reminder or missed-dose pass."""

    pass_name: str
    started_at: datetime
    matched: int = 0
    logs_created: int = 0
    logs_skipped: int = 0
    logs_missed: int = 0
    notifications: list[NotificationRequest] = Field(default_factory=list)
    errors: list[PassError] = Field(default_factory=list)

    @computed_field
    @property
    def notifications_emitted(self) -> int:
        return len(self.notifications)

    @computed_field
    @property
    def error_count(self) -> int:
        return len(self.errors)


class DispatchResult(BaseModel):
    status: DispatchStatus
    http_status: int | None = None
    body: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != DispatchStatus.FAILED


class TickResult(BaseModel):
    reminders: RunResult
    missed: RunResult
    delivered: int = 0
    dry_run: int = 0
    failed: int = 0
    delivery_errors: list[PassError] = Field(default_factory=list)


class ReportRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: int
    report_type: str = Field(min_length=1)
    start_date: date | None = None
    end_date: date | None = None
    send_notification: bool = False

    @model_validator(mode="after")
    def validate_range(self) -> "ReportRequest":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class MedicineReport(BaseModel):
    medicine_id: int
    medicine_name: str
    scheduled_count: int = 0
    taken_count: int = 0
    missed_count: int = 0
    adherence_rate: float = 0.0
    missed_times: list[str] = Field(default_factory=list)


class ReportSummary(BaseModel):
    total_scheduled: int = 0
    total_taken: int = 0
    total_missed: int = 0
    adherence_rate: float = 0.0
    most_missed_time: str | None = None
    best_adherence_medicine: str | None = None
    worst_adherence_medicine: str | None = None


class MedicationReport(BaseModel):
    user_id: int
    report_type: str
    period: str
    summary: ReportSummary
    medicines: list[MedicineReport] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    generated_at: datetime
