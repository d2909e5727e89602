"""Repository boundary between the reminder passes and the relational store.

Every instant handed to or returned from the store is timezone-aware UTC.
Transport, pool and timeout failures surface as ``StoreUnavailable``; the
``(medicine_id, scheduled_time)`` unique constraint on ``medication_logs`` is
the only guard against two passes inserting the same dose log.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, time, timezone
from typing import Iterator, Protocol, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shared.contracts.enums import DoseStatus, Frequency
from shared.contracts.errors import StoreUnavailable

from .models import MedicationLog, MedicationSchedule, Medicine, User

logger = logging.getLogger(__name__)


class ScheduleStore(Protocol):
    def list_active_medicines(self, user_id: int) -> list[Medicine]: ...

    def find_medicine(self, medicine_id: int) -> Medicine | None: ...

    def find_user(self, user_id: int) -> User | None: ...

    def list_due_schedules(self, time_of_day: time, weekday: int) -> list[MedicationSchedule]: ...

    def find_log(self, medicine_id: int, scheduled_time: datetime) -> MedicationLog | None: ...

    def insert_log(self, log: MedicationLog) -> MedicationLog | None: ...

    def update_log_status(
        self, log_id: int, status: DoseStatus, expected: DoseStatus = DoseStatus.PENDING
    ) -> bool: ...

    def list_pending_logs(self, start: datetime, end: datetime) -> list[MedicationLog]: ...

    def list_logs(self, medicine_ids: Sequence[int], start: datetime, end: datetime) -> list[MedicationLog]: ...


def to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def schedule_matches_weekday(schedule: MedicationSchedule, weekday: int) -> bool:
    """Weekly schedules without a weekday set run every day."""
    if schedule.frequency == Frequency.DAILY:
        return True
    if schedule.frequency != Frequency.WEEKLY:
        return False
    return not schedule.days_of_week or weekday in schedule.days_of_week


def _slot_query(medicine_id: int, scheduled_time: datetime):
    return select(MedicationLog).where(
        MedicationLog.medicine_id == medicine_id,
        MedicationLog.scheduled_time == to_utc(scheduled_time),
    )


def _normalize_log(log: MedicationLog) -> MedicationLog:
    log.scheduled_time = to_utc(log.scheduled_time)
    if log.taken_time is not None:
        log.taken_time = to_utc(log.taken_time)
    return log


class SqlScheduleStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
        except IntegrityError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Schedule store call failed: %s", exc)
            raise StoreUnavailable(str(exc)) from exc
        finally:
            session.close()

    def list_active_medicines(self, user_id: int) -> list[Medicine]:
        with self._session() as session:
            stmt = (
                select(Medicine)
                .where(Medicine.user_id == user_id, Medicine.active.is_(True))
                .order_by(Medicine.id)
            )
            return list(session.scalars(stmt))

    def find_medicine(self, medicine_id: int) -> Medicine | None:
        with self._session() as session:
            return session.get(Medicine, medicine_id)

    def find_user(self, user_id: int) -> User | None:
        with self._session() as session:
            return session.get(User, user_id)

    def list_due_schedules(self, time_of_day: time, weekday: int) -> list[MedicationSchedule]:
        with self._session() as session:
            stmt = (
                select(MedicationSchedule)
                .where(
                    MedicationSchedule.active.is_(True),
                    MedicationSchedule.scheduled_time.between(
                        time_of_day, time_of_day.replace(second=59, microsecond=999999)
                    ),
                    MedicationSchedule.frequency.in_([Frequency.DAILY, Frequency.WEEKLY]),
                )
                .order_by(MedicationSchedule.id)
            )
            schedules = list(session.scalars(stmt))
        return [s for s in schedules if schedule_matches_weekday(s, weekday)]

    def find_log(self, medicine_id: int, scheduled_time: datetime) -> MedicationLog | None:
        with self._session() as session:
            log = session.scalars(_slot_query(medicine_id, scheduled_time)).first()
        return _normalize_log(log) if log is not None else None

    def insert_log(self, log: MedicationLog) -> MedicationLog | None:
        """Insert a dose log; returns None when the slot already has one.

        Any other integrity violation (for example the medicine row being
        deleted underneath the insert) is re-raised.
        """
        medicine_id = log.medicine_id
        scheduled_time = to_utc(log.scheduled_time)
        log.scheduled_time = scheduled_time
        try:
            with self._session() as session:
                session.add(log)
                session.commit()
                session.refresh(log)
        except IntegrityError as exc:
            with self._session() as session:
                slot_taken = session.scalars(_slot_query(medicine_id, scheduled_time)).first() is not None
            if not slot_taken:
                logger.error("Dose log for medicine %s rejected by the store: %s", medicine_id, exc.orig)
                raise
            logger.debug(
                "Dose log for medicine %s at %s already exists: %s",
                medicine_id,
                scheduled_time.isoformat(),
                exc.orig,
            )
            return None
        return _normalize_log(log)

    def update_log_status(
        self, log_id: int, status: DoseStatus, expected: DoseStatus = DoseStatus.PENDING
    ) -> bool:
        """Compare-and-swap on status; False when the log left ``expected`` first."""
        with self._session() as session:
            result = session.execute(
                update(MedicationLog)
                .where(MedicationLog.id == log_id, MedicationLog.status == expected)
                .values(status=status)
            )
            session.commit()
            return result.rowcount == 1

    def list_pending_logs(self, start: datetime, end: datetime) -> list[MedicationLog]:
        with self._session() as session:
            stmt = (
                select(MedicationLog)
                .where(
                    MedicationLog.status == DoseStatus.PENDING,
                    MedicationLog.scheduled_time.between(to_utc(start), to_utc(end)),
                )
                .order_by(MedicationLog.scheduled_time, MedicationLog.id)
            )
            logs = list(session.scalars(stmt))
        return [_normalize_log(log) for log in logs]

    def list_logs(self, medicine_ids: Sequence[int], start: datetime, end: datetime) -> list[MedicationLog]:
        if not medicine_ids:
            return []
        with self._session() as session:
            stmt = (
                select(MedicationLog)
                .where(
                    MedicationLog.medicine_id.in_(list(medicine_ids)),
                    MedicationLog.scheduled_time.between(to_utc(start), to_utc(end)),
                )
                .order_by(MedicationLog.scheduled_time, MedicationLog.id)
            )
            logs = list(session.scalars(stmt))
        return [_normalize_log(log) for log in logs]
