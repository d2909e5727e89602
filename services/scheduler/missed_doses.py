from __future__ import annotations

import logging
from datetime import datetime, timedelta

from app.db.models import MedicationLog
from app.db.store import ScheduleStore
from shared.contracts.enums import DoseStatus, NotificationType
from shared.contracts.models import NotificationRequest, PassError, RunResult

from .context import TickContext, resolve_recipient

logger = logging.getLogger(__name__)

GRACE_MINUTES = 30
TOLERANCE_MINUTES = 5

MISSED_MESSAGE = (
    "⚠️ Did you forget your medicine?\n\n"
    "💊 {name}\n"
    "⏰ {time}\n\n"
    'If there is still time, reply "Taken".'
)


class MissedDoseDetector:
    def __init__(
        self,
        store: ScheduleStore,
        grace_minutes: int = GRACE_MINUTES,
        tolerance_minutes: int = TOLERANCE_MINUTES,
    ) -> None:
        if grace_minutes <= 0:
            raise ValueError("grace_minutes must be >= 1")
        if tolerance_minutes < 0:
            raise ValueError("tolerance_minutes must be >= 0")
        self.store = store
        self.grace = timedelta(minutes=grace_minutes)
        self.tolerance = timedelta(minutes=tolerance_minutes)

    def detection_window(self, now: datetime) -> tuple[datetime, datetime]:
        center = now - self.grace
        return center - self.tolerance, center + self.tolerance

    def run_missed_dose_pass(self, ctx: TickContext) -> RunResult:
        result = RunResult(pass_name="missed_dose", started_at=ctx.now)
        start, end = self.detection_window(ctx.now)

        logs = self.store.list_pending_logs(start, end)
        result.matched = len(logs)
        logger.info("Checking %d pending logs scheduled between %s and %s", len(logs), start.isoformat(), end.isoformat())

        for log in logs:
            outcome = self.process_missed_log(log, ctx)
            if isinstance(outcome, PassError):
                logger.error("Failed to process missed medication for log %s: %s", log.id, outcome.detail)
                result.errors.append(outcome)
            elif outcome is None:
                result.logs_skipped += 1
            else:
                result.logs_missed += 1
                result.notifications.append(outcome)

        logger.info(
            "Missed-dose pass completed: matched=%d missed=%d skipped=%d errors=%d",
            result.matched,
            result.logs_missed,
            result.logs_skipped,
            result.error_count,
        )
        return result

    def process_missed_log(self, log: MedicationLog, ctx: TickContext) -> NotificationRequest | PassError | None:
        if not self.store.update_log_status(log.id, DoseStatus.MISSED, expected=DoseStatus.PENDING):
            logger.debug("Log %s left pending before it could be marked missed", log.id)
            return None

        resolved = resolve_recipient(self.store, log.medicine_id)
        if isinstance(resolved, PassError):
            return resolved

        local_time = log.scheduled_time.astimezone(ctx.tz)
        notification = NotificationRequest(
            recipient_id=resolved.recipient_id,
            message=MISSED_MESSAGE.format(name=resolved.medicine.name, time=local_time.strftime("%H:%M")),
            notification_type=NotificationType.MISSED_MEDICATION,
            medicine_id=resolved.medicine.id,
            log_id=log.id,
        )
        logger.info(
            "Queued missed medication reminder for user %s - medicine: %s",
            resolved.recipient_id,
            resolved.medicine.name,
        )
        return notification
