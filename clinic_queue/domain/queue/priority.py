"""
PriorityReorderer - emergency flag and display ordering.

Priority changes where a patient shows up in the queue display and worklists;
it never touches queue numbers, which stay as allocated.
"""

import logging
from datetime import datetime
from typing import Callable, Iterable, Iterator, Optional

from sqlalchemy.orm import Session

from ...errors import InvalidState, NotFound
from ...models import EventType, Reservation, ReservationStatus
from ...transactions import run_atomic
from ..reservations.repository import ReservationRepository

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_REASON = "Emergency case"


def display_key(reservation: Reservation) -> tuple:
    """Priority patients first, then queue number; unnumbered rows go last"""
    return (
        not reservation.is_priority,
        reservation.queue_number is None,
        reservation.queue_number or 0,
        reservation.id or 0,
    )


class QueueOrder:
    """
    Lazy, restartable display ordering over a set of reservations.

    Nothing is read until iteration starts and every iteration sorts the
    source again, so a query source reflects the latest committed state.
    """

    def __init__(self, reservations: Iterable[Reservation]):
        # One-shot iterators are materialized so the order can be replayed
        if isinstance(reservations, Iterator):
            reservations = list(reservations)
        self._source = reservations

    def __iter__(self) -> Iterator[Reservation]:
        return iter(sorted(self._source, key=display_key))


def order_for_display(reservations: Iterable[Reservation]) -> QueueOrder:
    return QueueOrder(reservations)


class PriorityReorderer:
    """Owns writes to is_priority / priority_reason"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.repo = ReservationRepository()
        self.clock = clock

    def _get_mutable(self, reservation_id: int) -> Reservation:
        reservation = self.repo.get(self.db, reservation_id)
        if not reservation:
            raise NotFound("Reservation not found", reservation_id=reservation_id)
        if reservation.status in (ReservationStatus.COMPLETED, ReservationStatus.CANCELLED):
            raise InvalidState(
                f"Priority cannot change on a {reservation.status.value.lower()} reservation",
                reservation_id=reservation_id,
                status=reservation.status.value,
            )
        return reservation

    def mark(self, reservation: Reservation, reason: Optional[str] = None) -> Reservation:
        """Flag inside the caller's transaction (no commit)"""
        reason = (reason or "").strip() or DEFAULT_PRIORITY_REASON
        reservation.is_priority = True
        reservation.priority_reason = reason
        self.db.flush()
        self.repo.record_event(
            self.db, reservation, EventType.PRIORITY_SET, at=self.clock(), detail=reason
        )
        return reservation

    def set_priority(self, reservation_id: int, reason: Optional[str] = None) -> Reservation:
        """Flag a reservation as an emergency case"""
        reservation = run_atomic(
            self.db,
            lambda: self.mark(self._get_mutable(reservation_id), reason),
            label=f"set priority {reservation_id}",
            attempts=1,
        )
        logger.info(f"🚑 Reservation {reservation_id} marked priority: {reservation.priority_reason}")
        return reservation

    def clear_priority(self, reservation_id: int) -> Reservation:
        def work() -> Reservation:
            reservation = self._get_mutable(reservation_id)
            reservation.is_priority = False
            reservation.priority_reason = None
            self.db.flush()
            self.repo.record_event(
                self.db, reservation, EventType.PRIORITY_CLEARED, at=self.clock()
            )
            return reservation

        reservation = run_atomic(self.db, work, label=f"clear priority {reservation_id}", attempts=1)
        logger.info(f"✅ Reservation {reservation_id} priority cleared")
        return reservation
