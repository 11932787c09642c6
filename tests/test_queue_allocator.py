from datetime import datetime

import pytest

from clinic_queue.domain.queue.allocator import CapacityOverride, QueueAllocator
from clinic_queue.domain.reservations.service import ReservationLifecycle
from clinic_queue.errors import CapacityExceeded, SlotInactive, ValidationError
from clinic_queue.models import (
    ExaminationStatus,
    Reservation,
    ReservationStatus,
    ScheduleSlot,
)


@pytest.fixture
def allocator(db):
    return QueueAllocator(db)


def test_next_number_starts_at_one_per_doctor_and_day(allocator, clinic):
    assert allocator.next_number(clinic.doctor_id, clinic.date) == 1
    assert allocator.next_number(clinic.doctor_id, clinic.date) == 2
    assert allocator.next_number(clinic.other_doctor_id, clinic.date) == 1
    assert allocator.next_number(clinic.doctor_id, clinic.date.replace(day=9)) == 1


def test_next_number_continues_after_existing_reservations(allocator, clinic, db):
    db.add(
        Reservation(
            patient_id=clinic.patients[0],
            doctor_id=clinic.doctor_id,
            schedule_slot_id=clinic.slot_id,
            reservation_date=datetime(2025, 6, 2, 16, 0),
            service_date=clinic.date,
            queue_number=5,
            status=ReservationStatus.CANCELLED,
            examination_status=ExaminationStatus.CANCELLED,
        )
    )
    db.flush()

    assert allocator.next_number(clinic.doctor_id, clinic.date) == 6


def test_allocate_rejects_full_slot_without_override(allocator, clinic, db):
    slot = db.get(ScheduleSlot, clinic.small_slot_id)
    first = allocator.allocate(slot, clinic.date)

    with pytest.raises(CapacityExceeded) as exc:
        allocator.allocate(slot, clinic.date)

    assert first.queue_number == 1
    assert first.over_capacity is False
    assert exc.value.context["max_patients"] == 1
    assert first.capacity.current_reservations == 1


def test_allocate_with_override_goes_over_capacity(allocator, clinic, db):
    slot = db.get(ScheduleSlot, clinic.small_slot_id)
    allocator.allocate(slot, clinic.date)

    allocation = allocator.allocate(slot, clinic.date, CapacityOverride("Chest pain"))

    assert allocation.queue_number == 2
    assert allocation.over_capacity is True
    assert allocation.capacity.current_reservations == 2


def test_allocate_rejects_closed_date_even_with_override(allocator, clinic, db):
    slot = db.get(ScheduleSlot, clinic.slot_id)
    row = allocator.tracker.get_or_create(slot.id, clinic.date)
    row.is_active = False
    db.flush()

    with pytest.raises(SlotInactive):
        allocator.allocate(slot, clinic.date, CapacityOverride("Trauma"))


@pytest.mark.parametrize("reason", ["", "   ", None])
def test_capacity_override_requires_reason(reason):
    with pytest.raises(ValidationError):
        CapacityOverride(reason)


def test_capacity_override_strips_reason():
    assert CapacityOverride("  Asthma attack ").reason == "Asthma attack"


def test_cancelled_numbers_are_never_reused(clinic, db, clock):
    lifecycle = ReservationLifecycle(db, clock=clock)
    first = lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.slot_id, clinic.date)
    second = lifecycle.book(clinic.patients[1], clinic.doctor_id, clinic.slot_id, clinic.date)
    lifecycle.cancel(second.id, "Patient request")

    third = lifecycle.book(clinic.patients[2], clinic.doctor_id, clinic.slot_id, clinic.date)

    assert (first.queue_number, second.queue_number, third.queue_number) == (1, 2, 3)


def test_numbers_are_shared_across_a_doctors_sessions(clinic, db, clock):
    lifecycle = ReservationLifecycle(db, clock=clock)
    morning = lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.small_slot_id, clinic.date)
    evening = lifecycle.book(clinic.patients[1], clinic.doctor_id, clinic.slot_id, clinic.date)

    assert (morning.queue_number, evening.queue_number) == (1, 2)
