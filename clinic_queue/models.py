from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class ReservationStatus(str, Enum):
    """Booking status of a reservation"""

    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class ExaminationStatus(str, Enum):
    """Clinical visit sub-state, independent from the booking status"""

    NOT_STARTED = "Not Started"
    WAITING = "Waiting"
    IN_PROGRESS = "In Progress"
    WAITING_FOR_PAYMENT = "Waiting for Payment"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class EventType(str, Enum):
    BOOKED = "booked"
    WALK_IN = "walk_in"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    EXAMINATION_UPDATED = "examination_updated"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    NO_SHOW = "no_show"
    PRIORITY_SET = "priority_set"
    PRIORITY_CLEARED = "priority_cleared"
    CAPACITY_OVERRIDE = "capacity_override"


def _enum_column(enum_cls):
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=30,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )


class Account(Base):
    """Local mirror of the patient/auth directory, read-only for this service"""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(30), nullable=False, default="Patient")  # Patient, Doctor, Nurse, ...
    is_active = Column(Boolean, default=True, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class PracticeSession(Base):
    """A named time window shared across doctors, e.g. "Pagi" 08:00-12:00"""

    __tablename__ = "practice_sessions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)

    slots = relationship("ScheduleSlot", back_populates="session")


class ScheduleSlot(Base):
    """Recurring weekly availability: doctor + session + day of week -> capacity"""

    __tablename__ = "schedule_slots"
    __table_args__ = (
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_day_of_week"),
        CheckConstraint("max_patients > 0", name="check_max_patients"),
        # The triple is unique among slots that have not been soft-deleted
        Index(
            "uq_schedule_slot_live",
            "doctor_id",
            "session_id",
            "day_of_week",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("idx_schedule_slot_doctor_day", "doctor_id", "day_of_week"),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, nullable=False, index=True)
    session_id = Column(Integer, ForeignKey("practice_sessions.id"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday ... 6 = Saturday
    max_patients = Column(Integer, nullable=False, default=30)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)

    session = relationship("PracticeSession", back_populates="slots")
    daily_capacities = relationship("DailyCapacity", back_populates="slot")


class DailyCapacity(Base):
    """One ScheduleSlot materialized for one calendar date, with its live booking counter"""

    __tablename__ = "daily_capacities"
    __table_args__ = (
        UniqueConstraint("schedule_slot_id", "date", name="uq_daily_capacity_slot_date"),
        CheckConstraint("current_reservations >= 0", name="check_current_reservations"),
    )

    id = Column(Integer, primary_key=True, index=True)
    schedule_slot_id = Column(Integer, ForeignKey("schedule_slots.id"), nullable=False)
    date = Column(Date, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    current_reservations = Column(Integer, default=0, nullable=False)
    notes = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    slot = relationship("ScheduleSlot", back_populates="daily_capacities")


class QueueCounter(Base):
    """Last queue number handed out for a doctor on a calendar date"""

    __tablename__ = "queue_counters"
    __table_args__ = (
        UniqueConstraint("doctor_id", "service_date", name="uq_queue_counter_doctor_date"),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, nullable=False)
    service_date = Column(Date, nullable=False)
    last_number = Column(Integer, default=0, nullable=False)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Reservation(Base):
    """One patient visit attempt"""

    __tablename__ = "reservations"
    __table_args__ = (
        # Numbers are never reused, so cancelled rows can share the constraint
        UniqueConstraint(
            "doctor_id", "service_date", "queue_number", name="uq_reservation_queue_number"
        ),
        Index("idx_reservation_doctor_date", "doctor_id", "service_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, nullable=False, index=True)
    doctor_id = Column(Integer, nullable=False)
    schedule_slot_id = Column(Integer, ForeignKey("schedule_slots.id"), nullable=False)

    reservation_date = Column(DateTime, nullable=False, index=True)
    service_date = Column(Date, nullable=False)  # calendar date of reservation_date
    queue_number = Column(Integer, nullable=True)

    status = Column(_enum_column(ReservationStatus), nullable=False, index=True)
    examination_status = Column(
        _enum_column(ExaminationStatus), nullable=True, default=ExaminationStatus.NOT_STARTED
    )

    complaint = Column(Text, nullable=True)
    is_priority = Column(Boolean, default=False, nullable=False)
    priority_reason = Column(String(255), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)

    # Emergency walk-ins allowed past max_patients
    capacity_override = Column(Boolean, default=False, nullable=False)
    override_reason = Column(String(255), nullable=True)

    rescheduled_from_id = Column(Integer, ForeignKey("reservations.id"), nullable=True)

    # Lifecycle timestamps
    checked_in_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    version_id = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
    deleted_at = Column(DateTime, nullable=True)  # data retention only, never lifecycle

    slot = relationship("ScheduleSlot")
    events = relationship(
        "ReservationEvent", back_populates="reservation", order_by="ReservationEvent.id"
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def exam_status(self) -> ExaminationStatus:
        """Examination status with legacy NULL read as Not Started"""
        return self.examination_status or ExaminationStatus.NOT_STARTED


class ReservationEvent(Base):
    """Append-only audit trail for reservation state changes"""

    __tablename__ = "reservation_events"

    id = Column(Integer, primary_key=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, index=True)
    event_type = Column(_enum_column(EventType), nullable=False)
    from_status = Column(String(30), nullable=True)
    to_status = Column(String(30), nullable=True)
    from_examination_status = Column(String(30), nullable=True)
    to_examination_status = Column(String(30), nullable=True)
    detail = Column(String(255), nullable=True)
    at = Column(DateTime, default=datetime.now, nullable=False)

    reservation = relationship("Reservation", back_populates="events")


class ClinicSettings(Base):
    """Single-row clinic policy consumed by check-in, booking and the no-show sweep"""

    __tablename__ = "clinic_settings"

    id = Column(Integer, primary_key=True)
    clinic_name = Column(String(150), nullable=False)
    booking_horizon_days = Column(Integer, nullable=False, default=30)
    enable_strict_check_in = Column(Boolean, nullable=False, default=False)
    check_in_early_minutes = Column(Integer, nullable=False, default=120)
    check_in_late_minutes = Column(Integer, nullable=False, default=60)
    enable_auto_cancel = Column(Boolean, nullable=False, default=False)
    auto_cancel_grace_minutes = Column(Integer, nullable=False, default=30)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
