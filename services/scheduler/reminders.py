from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from app.db.models import MedicationLog, MedicationSchedule, Medicine
from app.db.store import ScheduleStore
from shared.contracts.enums import DoseStatus, ErrorKind, NotificationType
from shared.contracts.models import NotificationRequest, PassError, RunResult

from .context import TickContext, resolve_recipient

logger = logging.getLogger(__name__)

REMINDER_MESSAGE = (
    "🔔 Time to take your medicine!\n\n"
    "💊 {name}{dosage}\n"
    "⏰ {time}\n\n"
    'Reply "Taken" to record it.'
)


def format_dosage(medicine: Medicine) -> str:
    if medicine.dosage and medicine.unit:
        return f" ({medicine.dosage}{medicine.unit})"
    if medicine.dosage:
        return f" ({medicine.dosage})"
    return ""


def create_reminder_message(medicine: Medicine, schedule: MedicationSchedule) -> str:
    return REMINDER_MESSAGE.format(
        name=medicine.name,
        dosage=format_dosage(medicine),
        time=schedule.scheduled_time.strftime("%H:%M"),
    )


@dataclass(frozen=True)
class ReminderCreated:
    log: MedicationLog
    notification: NotificationRequest


class ReminderScheduler:
    """Turns schedules due at the current minute into pending dose logs and reminders."""

    def __init__(self, store: ScheduleStore) -> None:
        self.store = store

    def run_reminder_pass(self, ctx: TickContext) -> RunResult:
        result = RunResult(pass_name="reminder", started_at=ctx.now)
        logger.info(
            "Starting reminder pass for %s (weekday %s)",
            ctx.time_of_day.strftime("%H:%M"),
            ctx.weekday,
        )

        schedules = self.store.list_due_schedules(ctx.time_of_day, ctx.weekday)
        result.matched = len(schedules)
        logger.info("Found %d schedules to process", len(schedules))

        for schedule in schedules:
            outcome = self.process_schedule(schedule, ctx)
            if isinstance(outcome, PassError):
                logger.error("Failed to process schedule %s: %s", schedule.id, outcome.detail)
                result.errors.append(outcome)
            elif outcome is None:
                result.logs_skipped += 1
            else:
                result.logs_created += 1
                result.notifications.append(outcome.notification)

        logger.info(
            "Reminder pass completed: matched=%d created=%d skipped=%d errors=%d",
            result.matched,
            result.logs_created,
            result.logs_skipped,
            result.error_count,
        )
        return result

    def process_schedule(
        self, schedule: MedicationSchedule, ctx: TickContext
    ) -> ReminderCreated | PassError | None:
        """Returns None when the slot was already handled by an earlier pass."""
        resolved = resolve_recipient(self.store, schedule.medicine_id)
        if isinstance(resolved, PassError):
            return resolved
        medicine = resolved.medicine

        scheduled_instant = ctx.combine(schedule.scheduled_time)
        if self.store.find_log(medicine.id, scheduled_instant) is not None:
            logger.debug("Log already exists for medicine %s at %s", medicine.name, scheduled_instant.isoformat())
            return None

        try:
            log = self.store.insert_log(
                MedicationLog(
                    medicine_id=medicine.id,
                    scheduled_time=scheduled_instant,
                    taken_time=None,
                    status=DoseStatus.PENDING,
                    notes=None,
                )
            )
        except IntegrityError as exc:
            return PassError(
                kind=ErrorKind.MEDICINE_NOT_FOUND,
                entity_id=medicine.id,
                detail=f"Dose log rejected for medicine {medicine.id}: {exc.orig}",
            )
        if log is None:
            # A concurrent pass won the unique (medicine_id, scheduled_time) slot.
            return None

        notification = NotificationRequest(
            recipient_id=resolved.recipient_id,
            message=create_reminder_message(medicine, schedule),
            notification_type=NotificationType.MEDICATION_REMINDER,
            medicine_id=medicine.id,
            log_id=log.id,
        )
        logger.info("Queued reminder for user %s - medicine: %s", resolved.recipient_id, medicine.name)
        return ReminderCreated(log=log, notification=notification)
