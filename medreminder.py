from __future__ import annotations

import logging
from typing import List, Optional

from app.config import Settings
from app.db.session import build_engine, build_session_factory
from app.db.store import ScheduleStore, SqlScheduleStore
from services.chat_gateway.outbound import NotificationDispatcher
from services.reports.artifacts import ReportArtifactWriter
from services.reports.engine import AdherenceReportEngine
from services.scheduler.context import TickContext
from services.scheduler.missed_doses import GRACE_MINUTES, TOLERANCE_MINUTES, MissedDoseDetector
from services.scheduler.reminders import ReminderScheduler
from shared.contracts.enums import DispatchStatus, ErrorKind
from shared.contracts.errors import StoreUnavailable
from shared.contracts.models import (
    MedicationReport,
    NotificationRequest,
    PassError,
    ReportRequest,
    RunResult,
    TickResult,
)

logger = logging.getLogger(__name__)


class MedReminderFlow:
    def __init__(
        self,
        store: ScheduleStore,
        dispatcher: NotificationDispatcher,
        grace_minutes: int = GRACE_MINUTES,
        tolerance_minutes: int = TOLERANCE_MINUTES,
        artifact_writer: Optional[ReportArtifactWriter] = None,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.scheduler = ReminderScheduler(store)
        self.detector = MissedDoseDetector(store, grace_minutes=grace_minutes, tolerance_minutes=tolerance_minutes)
        self.report_engine = AdherenceReportEngine(
            store,
            artifact_writer=artifact_writer,
            notify=dispatcher.dispatch,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "MedReminderFlow":
        store = SqlScheduleStore(build_session_factory(build_engine(settings)))
        return cls(
            store=store,
            dispatcher=NotificationDispatcher.from_settings(settings),
            grace_minutes=settings.GRACE_MINUTES,
            tolerance_minutes=settings.TOLERANCE_MINUTES,
            artifact_writer=ReportArtifactWriter(settings.REPORTS_DIR),
        )

    def run_tick(self, ctx: TickContext) -> TickResult:
        """Reminder pass and its delivery, then missed-dose pass and its delivery.

        Reminders are dispatched before the missed-dose pass touches the store.
        """
        reminders = self.scheduler.run_reminder_pass(ctx)
        result = TickResult(reminders=reminders, missed=RunResult(pass_name="missed_dose", started_at=ctx.now))
        self._deliver(reminders.notifications, result)

        try:
            result.missed = self.detector.run_missed_dose_pass(ctx)
        except StoreUnavailable:
            logger.error("Missed-dose pass aborted after %d reminders were dispatched", reminders.notifications_emitted)
            raise
        self._deliver(result.missed.notifications, result)
        return result

    def generate_report(self, request: ReportRequest, ctx: TickContext) -> MedicationReport:
        return self.report_engine.generate_report(request, ctx)

    def _deliver(self, notifications: List[NotificationRequest], result: TickResult) -> None:
        for notification in notifications:
            dispatched = self.dispatcher.dispatch(notification)
            if dispatched.status == DispatchStatus.DELIVERED:
                result.delivered += 1
            elif dispatched.status == DispatchStatus.DRY_RUN:
                result.dry_run += 1
            else:
                result.failed += 1
                result.delivery_errors.append(
                    PassError(
                        kind=ErrorKind.DELIVERY_FAILED,
                        entity_id=notification.log_id,
                        detail=f"{dispatched.http_status}: {dispatched.body}",
                    )
                )
