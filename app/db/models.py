from __future__ import annotations

from datetime import datetime, time

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from shared.contracts.enums import DoseStatus, Frequency


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    """Declarative base for application models."""


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(255))
    line_user_id: Mapped[str | None] = mapped_column(String(64), index=True)
    timezone: Mapped[str | None] = mapped_column(String(64))
    notification_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    medicines: Mapped[list[Medicine]] = relationship(back_populates="user")


class Medicine(TimestampMixin, Base):
    __tablename__ = "medicines"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    dosage: Mapped[str | None] = mapped_column(String(64))
    unit: Mapped[str | None] = mapped_column(String(32))
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    user: Mapped[User] = relationship(back_populates="medicines")
    schedules: Mapped[list[MedicationSchedule]] = relationship(back_populates="medicine")
    logs: Mapped[list[MedicationLog]] = relationship(back_populates="medicine")


class MedicationSchedule(TimestampMixin, Base):
    __tablename__ = "medication_schedules"
    __table_args__ = (
        Index("ix_medication_schedules_active_time", "active", "scheduled_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    medicine_id: Mapped[int] = mapped_column(ForeignKey("medicines.id", ondelete="CASCADE"), nullable=False)
    scheduled_time: Mapped[time] = mapped_column(Time, nullable=False)
    frequency: Mapped[Frequency] = mapped_column(
        Enum(Frequency, name="schedule_frequency", values_callable=_enum_values),
        nullable=False,
        default=Frequency.DAILY,
    )
    # ISO weekday numbers, 1=Monday..7=Sunday; only consulted for weekly schedules.
    days_of_week: Mapped[list[int] | None] = mapped_column(JSON)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    medicine: Mapped[Medicine] = relationship(back_populates="schedules")


class MedicationLog(TimestampMixin, Base):
    __tablename__ = "medication_logs"
    __table_args__ = (
        UniqueConstraint("medicine_id", "scheduled_time", name="uq_medication_logs_medicine_scheduled"),
        Index("ix_medication_logs_status_scheduled_time", "status", "scheduled_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    medicine_id: Mapped[int] = mapped_column(ForeignKey("medicines.id", ondelete="CASCADE"), nullable=False)
    scheduled_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    taken_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[DoseStatus] = mapped_column(
        Enum(DoseStatus, name="dose_status", values_callable=_enum_values),
        nullable=False,
        default=DoseStatus.PENDING,
    )
    notes: Mapped[str | None] = mapped_column(Text)

    medicine: Mapped[Medicine] = relationship(back_populates="logs")
