"""
Adherence report engine.

Aggregates a user's dose logs over a period into per-medicine and overall
adherence figures, picks out the time of day doses are most often missed,
and turns the numbers into recommendation text.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional, Sequence

from app.db.models import MedicationLog, Medicine
from app.db.store import ScheduleStore
from services.scheduler.context import TickContext
from shared.contracts.enums import DoseStatus, ErrorKind, NotificationType, ReportType
from shared.contracts.errors import InvalidReportType, UserNotFound
from shared.contracts.models import (
    DispatchResult,
    MedicationReport,
    MedicineReport,
    NotificationRequest,
    ReportRequest,
    ReportSummary,
)

from .artifacts import ReportArtifactWriter

logger = logging.getLogger(__name__)

PERIOD_DAYS = {
    ReportType.DAILY: 0,
    ReportType.WEEKLY: 6,
    ReportType.MONTHLY: 29,
}

LOW_ADHERENCE_RATE = 60.0
LOW_ADHERENCE_MIN_SCHEDULED = 3

TIER_MESSAGES = [
    (90.0, "🎉", "🎉 Excellent adherence! Keep up the great work."),
    (70.0, "👍", "👍 Good medication habits. There is still a little room for improvement."),
    (
        50.0,
        "⚠️",
        "⚠️ Your adherence needs improvement. Consider setting alarms or using a medication management app.",
    ),
    (0.0, "🚨", "🚨 Your adherence is low. We recommend consulting your doctor or pharmacist."),
]

DEFAULT_RECOMMENDATION = "Keep recording your doses to enable more detailed analysis."
GENERAL_MISSED_RECOMMENDATION = (
    "📱 Try a medication management app, keeping your medicine somewhere visible, "
    "or asking family members for reminders."
)


def resolve_period(request: ReportRequest, today: date) -> tuple[date, date]:
    if request.start_date is not None and request.end_date is not None:
        return request.start_date, request.end_date

    try:
        days = PERIOD_DAYS[ReportType(request.report_type)]
    except ValueError:
        raise InvalidReportType(request.report_type) from None
    return today - timedelta(days=days), today


def adherence_rate(taken: int, scheduled: int) -> float:
    if scheduled <= 0:
        return 0.0
    return taken * 100 / scheduled


def time_bucket(hour: int) -> str:
    if 6 <= hour <= 11:
        return "morning (6-11h)"
    if 12 <= hour <= 17:
        return "afternoon (12-17h)"
    if 18 <= hour <= 23:
        return "evening (18-23h)"
    return "late night (0-5h)"


def most_missed_time(logs: Sequence[MedicationLog], tz) -> Optional[str]:
    """Bucket with the most misses; equal counts resolve to the first bucket seen."""
    counts: Counter[str] = Counter()
    for log in logs:
        if log.status == DoseStatus.MISSED:
            counts[time_bucket(log.scheduled_time.astimezone(tz).hour)] += 1
    if not counts:
        return None
    return max(counts, key=counts.__getitem__)


def adherence_tier(rate: float) -> tuple[str, str]:
    for threshold, emoji, message in TIER_MESSAGES:
        if rate >= threshold:
            return emoji, message
    return TIER_MESSAGES[-1][1], TIER_MESSAGES[-1][2]


def generate_recommendations(summary: ReportSummary, medicine_reports: Sequence[MedicineReport]) -> list[str]:
    recommendations = [adherence_tier(summary.adherence_rate)[1]]

    if summary.most_missed_time:
        recommendations.append(
            f"⏰ Doses are often missed in the {summary.most_missed_time}. "
            "Consider strengthening alarms for this time of day."
        )

    for medicine in medicine_reports:
        if medicine.adherence_rate < LOW_ADHERENCE_RATE and medicine.scheduled_count >= LOW_ADHERENCE_MIN_SCHEDULED:
            recommendations.append(
                f'💊 Adherence for "{medicine.medicine_name}" is dropping. '
                "Consider reviewing when you take it."
            )

    if summary.total_missed > summary.total_taken / 2:
        recommendations.append(GENERAL_MISSED_RECOMMENDATION)

    if not recommendations:
        recommendations.append(DEFAULT_RECOMMENDATION)
    return recommendations


def create_report_summary_message(report: MedicationReport) -> str:
    summary = report.summary
    emoji = adherence_tier(summary.adherence_rate)[0]
    message = (
        f"{emoji} Medication report ({report.report_type})\n\n"
        f"📊 Period: {report.period}\n\n"
        "📈 Status:\n"
        f"• Scheduled: {summary.total_scheduled}\n"
        f"• Taken: {summary.total_taken}\n"
        f"• Missed: {summary.total_missed}\n"
        f"• Adherence: {summary.adherence_rate:.1f}%\n"
    )
    if report.recommendations:
        message += f"\n💡 {report.recommendations[0]}\n"
    if summary.best_adherence_medicine:
        message += f"\n⭐ Best: {summary.best_adherence_medicine}"
    if summary.worst_adherence_medicine:
        message += f"\n🔸 Needs attention: {summary.worst_adherence_medicine}"
    message += "\n\nSee the web app for details."
    return message


def build_medicine_report(medicine: Medicine, logs: Sequence[MedicationLog], tz) -> MedicineReport:
    scheduled = len(logs)
    taken = sum(1 for log in logs if log.status == DoseStatus.COMPLETED)
    missed_logs = [log for log in logs if log.status == DoseStatus.MISSED]
    return MedicineReport(
        medicine_id=medicine.id,
        medicine_name=medicine.name,
        scheduled_count=scheduled,
        taken_count=taken,
        missed_count=len(missed_logs),
        adherence_rate=adherence_rate(taken, scheduled),
        missed_times=[log.scheduled_time.astimezone(tz).strftime("%H:%M") for log in missed_logs],
    )


class AdherenceReportEngine:
    def __init__(
        self,
        store: ScheduleStore,
        artifact_writer: Optional[ReportArtifactWriter] = None,
        notify: Optional[Callable[[NotificationRequest], DispatchResult]] = None,
    ) -> None:
        self.store = store
        self.artifact_writer = artifact_writer
        self.notify = notify

    def generate_report(self, request: ReportRequest, ctx: TickContext) -> MedicationReport:
        logger.info("Generating %s report for user %s", request.report_type, request.user_id)
        if self.store.find_user(request.user_id) is None:
            raise UserNotFound(request.user_id)
        start, end = resolve_period(request, ctx.today)
        report = self.build_report(request.user_id, request.report_type, start, end, ctx)

        if self.artifact_writer is not None:
            try:
                self.artifact_writer.write(report)
            except OSError as exc:
                logger.error("Failed to save report (%s): %s", ErrorKind.ARTIFACT_PERSIST_FAILED.value, exc)

        if request.send_notification:
            self.send_report_notification(report)

        logger.info("Report generation completed for user %s", request.user_id)
        return report

    def build_report(
        self, user_id: int, report_type: str, start: date, end: date, ctx: TickContext
    ) -> MedicationReport:
        medicines = self.store.list_active_medicines(user_id)
        start_at = datetime.combine(start, time(0, 0, 0), tzinfo=ctx.tz)
        end_at = datetime.combine(end, time(23, 59, 59), tzinfo=ctx.tz)
        logs = self.store.list_logs([m.id for m in medicines], start_at, end_at)

        medicine_reports = [
            build_medicine_report(medicine, [log for log in logs if log.medicine_id == medicine.id], ctx.tz)
            for medicine in medicines
        ]

        total_scheduled = sum(m.scheduled_count for m in medicine_reports)
        total_taken = sum(m.taken_count for m in medicine_reports)
        total_missed = sum(m.missed_count for m in medicine_reports)

        # First maximum / first minimum in medicine order wins on equal rates.
        ranked = [m for m in medicine_reports if m.scheduled_count > 0]
        best = max(ranked, key=lambda m: m.adherence_rate) if ranked else None
        worst = min(ranked, key=lambda m: m.adherence_rate) if ranked else None

        summary = ReportSummary(
            total_scheduled=total_scheduled,
            total_taken=total_taken,
            total_missed=total_missed,
            adherence_rate=adherence_rate(total_taken, total_scheduled),
            most_missed_time=most_missed_time(logs, ctx.tz),
            best_adherence_medicine=best.medicine_name if best else None,
            worst_adherence_medicine=worst.medicine_name if worst else None,
        )

        return MedicationReport(
            user_id=user_id,
            report_type=report_type,
            period=f"{start.strftime('%Y/%m/%d')} - {end.strftime('%Y/%m/%d')}",
            summary=summary,
            medicines=medicine_reports,
            recommendations=generate_recommendations(summary, medicine_reports),
            generated_at=ctx.local_now,
        )

    def send_report_notification(self, report: MedicationReport) -> Optional[DispatchResult]:
        user = self.store.find_user(report.user_id)
        if user is None:
            logger.error("Failed to send report notification: user %s not found", report.user_id)
            return None
        if not user.line_user_id:
            logger.error("Failed to send report notification: user %s has no chat recipient id", user.id)
            return None

        notification = NotificationRequest(
            recipient_id=user.line_user_id,
            message=create_report_summary_message(report),
            notification_type=NotificationType.MEDICATION_REPORT,
        )
        if self.notify is None:
            logger.warning("No dispatcher configured; report notification for user %s dropped", user.id)
            return None

        result = self.notify(notification)
        logger.info("Queued report notification for user %s (%s)", user.line_user_id, result.status.value)
        return result
