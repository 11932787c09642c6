import threading
from datetime import datetime

from clinic_queue.domain.capacity.tracker import DailyCapacityTracker
from clinic_queue.domain.reservations.service import ReservationLifecycle
from clinic_queue.errors import CapacityExceeded
from clinic_queue.models import Reservation, ReservationStatus

from tests.helpers import FixedClock, add_slot

WORKERS = 8
CAPACITY = 3


def test_parallel_bookings_never_exceed_capacity(db, session_factory, clinic):
    slot_id = add_slot(db, clinic.other_doctor_id, clinic.evening_session_id, 1, max_patients=CAPACITY)
    db.close()

    barrier = threading.Barrier(WORKERS)
    results = []
    lock = threading.Lock()

    def book(patient_id):
        session = session_factory()
        lifecycle = ReservationLifecycle(session, clock=FixedClock(datetime(2025, 6, 2, 9, 0)))
        barrier.wait()
        try:
            reservation = lifecycle.book(patient_id, clinic.other_doctor_id, slot_id, clinic.date)
            outcome = ("ok", reservation.queue_number)
        except CapacityExceeded:
            outcome = ("full", None)
        except Exception as exc:  # surfaced through the assertions below
            outcome = ("error", repr(exc))
        finally:
            session.close()
        with lock:
            results.append(outcome)

    threads = [
        threading.Thread(target=book, args=(patient_id,))
        for patient_id in clinic.patients[:WORKERS]
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    errors = [detail for kind, detail in results if kind == "error"]
    assert errors == []
    numbers = sorted(number for kind, number in results if kind == "ok")
    assert numbers == [1, 2, 3]
    assert sum(1 for kind, _ in results if kind == "full") == WORKERS - CAPACITY

    check = session_factory()
    try:
        snapshot = DailyCapacityTracker(check).snapshot(slot_id, clinic.date)
        assert snapshot.current_reservations == CAPACITY
        booked = (
            check.query(Reservation)
            .filter(
                Reservation.schedule_slot_id == slot_id,
                Reservation.status == ReservationStatus.PENDING,
            )
            .count()
        )
        assert booked == CAPACITY
    finally:
        check.close()


def test_parallel_cancel_and_book_keep_counter_consistent(db, session_factory, clinic):
    lifecycle = ReservationLifecycle(db, clock=FixedClock(datetime(2025, 6, 2, 9, 0)))
    existing = [
        lifecycle.book(patient_id, clinic.doctor_id, clinic.slot_id, clinic.date).id
        for patient_id in clinic.patients[:5]
    ]
    db.close()

    barrier = threading.Barrier(4)
    failures = []

    def run(action):
        session = session_factory()
        worker = ReservationLifecycle(session, clock=FixedClock(datetime(2025, 6, 2, 9, 0)))
        barrier.wait()
        try:
            action(worker)
        except CapacityExceeded:
            pass
        except Exception as exc:  # surfaced through the assertions below
            failures.append(repr(exc))
        finally:
            session.close()

    actions = [
        lambda w: w.cancel(existing[0]),
        lambda w: w.cancel(existing[1]),
        lambda w: w.book(clinic.patients[10], clinic.doctor_id, clinic.slot_id, clinic.date),
        lambda w: w.book(clinic.patients[11], clinic.doctor_id, clinic.slot_id, clinic.date),
    ]
    threads = [threading.Thread(target=run, args=(action,)) for action in actions]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert failures == []
    check = session_factory()
    try:
        active = (
            check.query(Reservation)
            .filter(
                Reservation.schedule_slot_id == clinic.slot_id,
                Reservation.status != ReservationStatus.CANCELLED,
            )
            .count()
        )
        snapshot = DailyCapacityTracker(check).snapshot(clinic.slot_id, clinic.date)
        assert snapshot.current_reservations == active
        assert active <= 5
        numbers = [r.queue_number for r in check.query(Reservation)]
        assert len(numbers) == len(set(numbers))
    finally:
        check.close()
