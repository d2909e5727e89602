from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone, tzinfo

from app.db.models import Medicine
from app.db.store import ScheduleStore
from shared.contracts.enums import ErrorKind
from shared.contracts.models import PassError


@dataclass(frozen=True)
class TickContext:
    """Explicit clock for one trigger tick: the instant plus the reminder zone."""

    now: datetime
    tz: tzinfo

    def __post_init__(self) -> None:
        if self.now.tzinfo is None:
            object.__setattr__(self, "now", self.now.replace(tzinfo=timezone.utc))

    @property
    def local_now(self) -> datetime:
        return self.now.astimezone(self.tz)

    @property
    def time_of_day(self) -> time:
        local = self.local_now
        return time(local.hour, local.minute)

    @property
    def weekday(self) -> int:
        return self.local_now.isoweekday()

    @property
    def today(self) -> date:
        return self.local_now.date()

    def combine(self, time_of_day: time) -> datetime:
        return datetime.combine(self.today, time_of_day.replace(second=0, microsecond=0), tzinfo=self.tz)


@dataclass(frozen=True)
class Recipient:
    medicine: Medicine
    recipient_id: str


def resolve_recipient(store: ScheduleStore, medicine_id: int) -> Recipient | PassError:
    """Look up the medicine, its owner and the owner's chat id."""
    medicine = store.find_medicine(medicine_id)
    if medicine is None:
        return PassError(
            kind=ErrorKind.MEDICINE_NOT_FOUND,
            entity_id=medicine_id,
            detail=f"medicine {medicine_id} not found",
        )

    user = store.find_user(medicine.user_id)
    if user is None:
        return PassError(
            kind=ErrorKind.USER_NOT_FOUND,
            entity_id=medicine.user_id,
            detail=f"user {medicine.user_id} owning medicine {medicine_id} not found",
        )

    if not user.line_user_id:
        return PassError(
            kind=ErrorKind.RECIPIENT_NOT_CONFIGURED,
            entity_id=user.id,
            detail=f"user {user.id} has no chat recipient id",
        )

    return Recipient(medicine=medicine, recipient_id=user.line_user_id)
