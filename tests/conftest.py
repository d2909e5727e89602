from datetime import datetime, time
from itertools import count
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import select

from app.config import Settings
from app.db.models import Base, MedicationLog, MedicationSchedule, Medicine, User
from app.db.session import build_engine, build_session_factory
from app.db.store import SqlScheduleStore, to_utc
from services.scheduler.context import TickContext
from shared.contracts.enums import DoseStatus, Frequency

TOKYO = ZoneInfo("Asia/Tokyo")


def tick_at(*args) -> TickContext:
    return TickContext(now=datetime(*args, tzinfo=TOKYO), tz=TOKYO)


class Seeder:
    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory
        self._emails = count(1)

    def add(self, obj):
        with self.session_factory() as session:
            session.add(obj)
            session.commit()
            session.refresh(obj)
        return obj

    def user(self, line_user_id: str | None = "U-line-1", **kwargs) -> User:
        email = kwargs.pop("email", f"user{next(self._emails)}@example.com")
        return self.add(User(email=email, line_user_id=line_user_id, **kwargs))

    def medicine(self, user: User, name: str = "Aspirin", **kwargs) -> Medicine:
        return self.add(Medicine(user_id=user.id, name=name, **kwargs))

    def schedule(
        self,
        medicine: Medicine,
        at: time = time(8, 0),
        frequency: Frequency = Frequency.DAILY,
        days_of_week: list[int] | None = None,
        active: bool = True,
    ) -> MedicationSchedule:
        return self.add(
            MedicationSchedule(
                medicine_id=medicine.id,
                scheduled_time=at,
                frequency=frequency,
                days_of_week=days_of_week,
                active=active,
            )
        )

    def log(self, medicine: Medicine, scheduled_time: datetime, status: DoseStatus = DoseStatus.PENDING) -> MedicationLog:
        return self.add(
            MedicationLog(medicine_id=medicine.id, scheduled_time=to_utc(scheduled_time), status=status)
        )

    def logs(self) -> list[MedicationLog]:
        with self.session_factory() as session:
            logs = list(session.scalars(select(MedicationLog).order_by(MedicationLog.id)))
        for log in logs:
            log.scheduled_time = to_utc(log.scheduled_time)
        return logs

    def status_of(self, log_id: int) -> DoseStatus:
        with self.session_factory() as session:
            return session.get(MedicationLog, log_id).status


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        REMINDER_TIMEZONE="Asia/Tokyo",
        LINE_CHANNEL_ACCESS_TOKEN=None,
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def store(session_factory) -> SqlScheduleStore:
    return SqlScheduleStore(session_factory)


@pytest.fixture
def seeder(session_factory) -> Seeder:
    return Seeder(session_factory)
