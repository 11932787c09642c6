"""
DailyCapacityTracker - per-date materialization of schedule slots.

Rows are created lazily on the first booking against a date and never deleted.
The counter only moves through the conditional UPDATE statements below, so the
database enforces the ceiling even if a caller's earlier read was stale.
None of these methods commit; callers own the transaction (see run_atomic).
"""

import logging
from datetime import date
from typing import NamedTuple, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import CapacityExceeded, ConcurrentAllocationRetry, NotFound, SlotInactive
from ...models import DailyCapacity, ScheduleSlot
from ...transactions import run_atomic

logger = logging.getLogger(__name__)


class CapacitySnapshot(NamedTuple):
    max_patients: int
    current_reservations: int
    is_active: bool

    @property
    def remaining(self) -> int:
        return max(self.max_patients - self.current_reservations, 0)

    @property
    def has_capacity(self) -> bool:
        return self.is_active and self.current_reservations < self.max_patients


class DailyCapacityTracker:
    """Live booking counter for one (slot, date) pair"""

    def __init__(self, db: Session):
        self.db = db

    def _slot(self, slot_id: int) -> ScheduleSlot:
        slot = self.db.get(ScheduleSlot, slot_id)
        if slot is None or slot.deleted_at is not None:
            raise NotFound("Schedule slot not found", slot_id=slot_id)
        return slot

    def find(self, slot_id: int, service_date: date, lock: bool = False) -> Optional[DailyCapacity]:
        query = self.db.query(DailyCapacity).filter(
            DailyCapacity.schedule_slot_id == slot_id, DailyCapacity.date == service_date
        )
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def get_or_create(self, slot_id: int, service_date: date, lock: bool = False) -> DailyCapacity:
        """
        Return the daily row, creating it with a zero counter on first use.

        Args:
            slot_id: Schedule slot id
            service_date: Calendar date
            lock: Read the row FOR UPDATE (allocation path)

        Raises:
            NotFound: the slot does not exist
            ConcurrentAllocationRetry: another transaction created the row first
        """
        capacity = self.find(slot_id, service_date, lock=lock)
        if capacity is not None:
            return capacity

        slot = self._slot(slot_id)
        capacity = DailyCapacity(
            schedule_slot_id=slot_id,
            date=service_date,
            # Copied once; later slot changes do not reach materialized dates
            is_active=slot.is_active,
            current_reservations=0,
        )
        self.db.add(capacity)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise ConcurrentAllocationRetry(
                "Daily capacity row was created concurrently", slot_id=slot_id, date=service_date
            ) from exc

        logger.info(f"📅 Daily capacity materialized: slot {slot_id} on {service_date}")
        return capacity

    def snapshot(self, slot_id: int, service_date: date) -> CapacitySnapshot:
        """Current counter without materializing a row"""
        slot = self._slot(slot_id)
        capacity = self.find(slot_id, service_date)
        if capacity is None:
            return CapacitySnapshot(slot.max_patients, 0, slot.is_active)
        return CapacitySnapshot(
            slot.max_patients, capacity.current_reservations, capacity.is_active
        )

    def has_capacity(self, slot_id: int, service_date: date) -> bool:
        return self.snapshot(slot_id, service_date).has_capacity

    def increment(
        self, slot_id: int, service_date: date, ceiling: Optional[int] = None
    ) -> DailyCapacity:
        """
        Add one reservation to the counter.

        With a ceiling the update only applies while the row is active and below
        it; otherwise CapacityExceeded / SlotInactive is raised and nothing changes.
        """
        capacity = self.get_or_create(slot_id, service_date)

        query = self.db.query(DailyCapacity).filter(DailyCapacity.id == capacity.id)
        if ceiling is not None:
            query = query.filter(
                DailyCapacity.current_reservations < ceiling,
                DailyCapacity.is_active.is_(True),
            )
        updated = query.update(
            {DailyCapacity.current_reservations: DailyCapacity.current_reservations + 1},
            synchronize_session=False,
        )
        self.db.refresh(capacity)

        if not updated:
            if not capacity.is_active:
                raise SlotInactive(
                    "This session is closed for the selected date",
                    slot_id=slot_id,
                    date=service_date,
                )
            raise CapacityExceeded(
                "No capacity left for this session",
                slot_id=slot_id,
                date=service_date,
                max_patients=ceiling,
                current_reservations=capacity.current_reservations,
            )
        return capacity

    def decrement(self, slot_id: int, service_date: date) -> Optional[DailyCapacity]:
        """Remove one reservation from the counter, flooring at zero"""
        capacity = self.find(slot_id, service_date)
        if capacity is None:
            logger.warning(
                f"⚠️ No daily capacity row for slot {slot_id} on {service_date}, nothing to release"
            )
            return None

        updated = (
            self.db.query(DailyCapacity)
            .filter(DailyCapacity.id == capacity.id, DailyCapacity.current_reservations > 0)
            .update(
                {DailyCapacity.current_reservations: DailyCapacity.current_reservations - 1},
                synchronize_session=False,
            )
        )
        self.db.refresh(capacity)

        if not updated:
            logger.warning(f"⚠️ Daily capacity for slot {slot_id} on {service_date} already at zero")
        return capacity

    def set_daily_status(
        self, slot_id: int, service_date: date, is_active: bool, notes: Optional[str] = None
    ) -> DailyCapacity:
        """Open or close one materialized date, e.g. when the doctor calls in sick"""

        def work() -> DailyCapacity:
            capacity = self.get_or_create(slot_id, service_date, lock=True)
            capacity.is_active = is_active
            if notes is not None:
                capacity.notes = notes
            self.db.flush()
            return capacity

        capacity = run_atomic(self.db, work, label=f"daily status slot {slot_id} {service_date}")
        self.db.refresh(capacity)
        state = "opened" if is_active else "closed"
        logger.info(f"✅ Slot {slot_id} {state} for {service_date}")
        return capacity
