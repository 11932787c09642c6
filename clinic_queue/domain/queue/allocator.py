"""
QueueAllocator - queue numbers per (doctor, date).

Numbers come from a counter row per (doctor, date) incremented in SQL under a
row lock, so two committed reservations can never share a number. The counter
is seeded from every existing reservation including cancelled ones, which keeps
numbers freed by cancellation out of circulation.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import NamedTuple, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import CapacityExceeded, ConcurrentAllocationRetry, SlotInactive, ValidationError
from ...models import DailyCapacity, QueueCounter, Reservation, ScheduleSlot
from ..capacity.tracker import DailyCapacityTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacityOverride:
    """Explicit permission to allocate past max_patients; the reason is audited"""

    reason: str

    def __post_init__(self):
        if not isinstance(self.reason, str) or not self.reason.strip():
            raise ValidationError("A capacity override needs a reason")
        object.__setattr__(self, "reason", self.reason.strip())


class Allocation(NamedTuple):
    queue_number: int
    capacity: DailyCapacity
    over_capacity: bool


class QueueAllocator:
    """Hands out queue numbers against a slot's daily capacity"""

    def __init__(self, db: Session, tracker: Optional[DailyCapacityTracker] = None):
        self.db = db
        self.tracker = tracker or DailyCapacityTracker(db)

    def _counter(self, doctor_id: int, service_date: date) -> QueueCounter:
        counter = (
            self.db.query(QueueCounter)
            .filter(QueueCounter.doctor_id == doctor_id, QueueCounter.service_date == service_date)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if counter is not None:
            return counter

        highest = (
            self.db.query(func.max(Reservation.queue_number))
            .filter(Reservation.doctor_id == doctor_id, Reservation.service_date == service_date)
            .scalar()
        )
        counter = QueueCounter(doctor_id=doctor_id, service_date=service_date, last_number=highest or 0)
        self.db.add(counter)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise ConcurrentAllocationRetry(
                "Queue counter was created concurrently", doctor_id=doctor_id, date=service_date
            ) from exc
        return counter

    def next_number(self, doctor_id: int, service_date: date) -> int:
        """Reserve the next queue number for the doctor's day; the first one is 1"""
        counter = self._counter(doctor_id, service_date)
        self.db.query(QueueCounter).filter(QueueCounter.id == counter.id).update(
            {QueueCounter.last_number: QueueCounter.last_number + 1},
            synchronize_session=False,
        )
        self.db.refresh(counter)
        return counter.last_number

    def allocate(
        self,
        slot: ScheduleSlot,
        service_date: date,
        override: Optional[CapacityOverride] = None,
    ) -> Allocation:
        """
        Take one place on the slot's date and assign a queue number.

        Must run inside the caller's transaction. The daily row is locked
        before anything is read from it and before the counter row is touched.

        Raises:
            SlotInactive: the daily row is closed
            CapacityExceeded: the slot is full and no override was given
            ConcurrentAllocationRetry: a racing transaction created a row first
        """
        capacity = self.tracker.get_or_create(slot.id, service_date, lock=True)

        if not capacity.is_active:
            raise SlotInactive(
                "This session is closed for the selected date", slot_id=slot.id, date=service_date
            )

        if capacity.current_reservations >= slot.max_patients and override is None:
            logger.warning(
                f"⚠️ Slot {slot.id} full on {service_date}: "
                f"{capacity.current_reservations}/{slot.max_patients}"
            )
            raise CapacityExceeded(
                "No capacity left for this session",
                slot_id=slot.id,
                date=service_date,
                max_patients=slot.max_patients,
                current_reservations=capacity.current_reservations,
            )

        ceiling = None if override else slot.max_patients
        capacity = self.tracker.increment(slot.id, service_date, ceiling=ceiling)
        queue_number = self.next_number(slot.doctor_id, service_date)
        over_capacity = capacity.current_reservations > slot.max_patients

        if over_capacity:
            logger.warning(
                f"🚨 Capacity override on slot {slot.id} {service_date}: "
                f"{capacity.current_reservations}/{slot.max_patients} ({override.reason})"
            )
        logger.info(
            f"🎫 Queue #{queue_number} allocated: doctor {slot.doctor_id}, slot {slot.id}, {service_date}"
        )
        return Allocation(queue_number, capacity, over_capacity)
