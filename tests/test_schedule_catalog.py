from datetime import time

import pytest

from clinic_queue.domain.capacity.availability import available_sessions
from clinic_queue.domain.capacity.tracker import DailyCapacityTracker
from clinic_queue.domain.reservations.service import ReservationLifecycle
from clinic_queue.domain.schedules.service import ScheduleCatalog
from clinic_queue.errors import (
    DuplicateSlot,
    InvalidCapacity,
    InvalidDayOfWeek,
    NotFound,
    SlotInactive,
    ValidationError,
)
from clinic_queue.models import ScheduleSlot


@pytest.fixture
def catalog(db, clock):
    return ScheduleCatalog(db, clock=clock)


def test_create_slot_persists_active_slot(catalog, clinic):
    slot = catalog.create_slot(clinic.doctor_id, clinic.morning_session_id, 3, 12)

    assert slot.id is not None
    assert slot.is_active is True
    assert slot.max_patients == 12
    assert slot.day_of_week == 3


def test_create_slot_rejects_duplicate_triple(catalog, clinic):
    with pytest.raises(DuplicateSlot) as exc:
        catalog.create_slot(clinic.doctor_id, clinic.morning_session_id, 1, 10)

    assert exc.value.context["slot_id"] == clinic.small_slot_id


def test_deactivated_slot_still_holds_its_triple(catalog, clinic):
    catalog.deactivate_slot(clinic.small_slot_id)

    with pytest.raises(DuplicateSlot):
        catalog.create_slot(clinic.doctor_id, clinic.morning_session_id, 1, 10)


def test_deleted_slot_frees_triple(catalog, clinic, db):
    catalog.delete_slot(clinic.small_slot_id)

    replacement = catalog.create_slot(clinic.doctor_id, clinic.morning_session_id, 1, 10)

    assert replacement.id != clinic.small_slot_id
    deleted = db.get(ScheduleSlot, clinic.small_slot_id)
    assert deleted.deleted_at is not None
    assert deleted.is_active is False


@pytest.mark.parametrize("day", [-1, 7, 10])
def test_create_slot_rejects_bad_day_of_week(catalog, clinic, day):
    with pytest.raises(InvalidDayOfWeek) as exc:
        catalog.create_slot(clinic.doctor_id, clinic.morning_session_id, day, 10)

    assert isinstance(exc.value, ValidationError)


@pytest.mark.parametrize("max_patients", [0, -3])
def test_create_slot_rejects_non_positive_capacity(catalog, clinic, max_patients):
    with pytest.raises(InvalidCapacity) as exc:
        catalog.create_slot(clinic.doctor_id, clinic.morning_session_id, 4, max_patients)

    assert isinstance(exc.value, ValidationError)


def test_create_slot_requires_known_session(catalog, clinic):
    with pytest.raises(NotFound):
        catalog.create_slot(clinic.doctor_id, 9999, 2, 10)


def test_create_slot_requires_known_doctor(catalog, clinic):
    with pytest.raises(NotFound) as exc:
        catalog.create_slot(clinic.patients[0], clinic.morning_session_id, 2, 10)

    assert exc.value.context == {"doctor_id": clinic.patients[0]}


def test_update_capacity_validates_and_saves(catalog, clinic):
    with pytest.raises(InvalidCapacity):
        catalog.update_capacity(clinic.slot_id, 0)

    slot = catalog.update_capacity(clinic.slot_id, 9)
    assert slot.max_patients == 9


def test_create_session_rejects_empty_window(catalog, clinic):
    with pytest.raises(ValidationError):
        catalog.create_session("Kosong", time(9, 0), time(9, 0))
    with pytest.raises(ValidationError):
        catalog.create_session("  ", time(12, 0), time(15, 0))

    session = catalog.create_session("Siang", time(12, 0), time(15, 0))
    assert session.name == "Siang"
    assert [s.name for s in catalog.list_sessions()] == ["Pagi", "Siang", "Sore"]


def test_create_session_accepts_window_past_midnight(catalog, clinic):
    night = catalog.create_session("Malam", time(22, 0), time(2, 0))
    slot = catalog.create_slot(clinic.doctor_id, night.id, 1, 3)

    sessions = available_sessions(catalog.db, clinic.doctor_id, clinic.date)
    overnight = next(s for s in sessions if s.slot_id == slot.id)
    assert overnight.times == ["22:00", "23:00", "00:00", "01:00"]
    assert [s.name for s in catalog.list_sessions()] == ["Pagi", "Sore", "Malam"]


def test_update_session_merges_fields(catalog, clinic):
    updated = catalog.update_session(clinic.morning_session_id, end_time=time(11, 0), description="Short")

    assert updated.name == "Pagi"
    assert updated.start_time == time(8, 0)
    assert updated.end_time == time(11, 0)
    assert updated.description == "Short"

    renamed = catalog.update_session(clinic.morning_session_id, name=" Pagi Awal ")
    assert renamed.name == "Pagi Awal"
    assert renamed.end_time == time(11, 0)


def test_update_session_validates_merged_window(catalog, clinic):
    with pytest.raises(ValidationError):
        catalog.update_session(clinic.morning_session_id, end_time=time(8, 0))
    with pytest.raises(ValidationError):
        catalog.update_session(clinic.morning_session_id, name="")
    with pytest.raises(NotFound):
        catalog.update_session(9999, name="Ghost")


def test_delete_session_hides_it_and_its_slots(catalog, clinic, clock):
    deleted = catalog.delete_session(clinic.evening_session_id)

    assert deleted.deleted_at == clock.now
    assert [s.name for s in catalog.list_sessions()] == ["Pagi"]
    assert clinic.slot_id not in [s.id for s in catalog.list_slots_for_doctor(clinic.doctor_id)]
    with pytest.raises(NotFound):
        catalog.get_session(clinic.evening_session_id)
    with pytest.raises(NotFound):
        catalog.create_slot(clinic.doctor_id, clinic.evening_session_id, 2, 5)


def test_list_slots_for_doctor_orders_by_day_then_session_start(catalog, clinic):
    sunday_evening = catalog.create_slot(clinic.doctor_id, clinic.evening_session_id, 0, 4)
    sunday_morning = catalog.create_slot(clinic.doctor_id, clinic.morning_session_id, 0, 4)

    slots = catalog.list_slots_for_doctor(clinic.doctor_id)

    assert [s.id for s in slots] == [
        sunday_morning.id,
        sunday_evening.id,
        clinic.small_slot_id,
        clinic.slot_id,
    ]


def test_list_slots_for_doctor_is_restartable_and_skips_inactive(catalog, clinic):
    slots = catalog.list_slots_for_doctor(clinic.doctor_id)
    first = [s.id for s in slots]

    catalog.deactivate_slot(clinic.small_slot_id)
    second = [s.id for s in slots]

    assert first == [clinic.small_slot_id, clinic.slot_id]
    assert second == [clinic.slot_id]


def test_deactivate_leaves_materialized_dates_open(catalog, clinic, db, clock):
    lifecycle = ReservationLifecycle(db, clock=clock)
    lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.slot_id, clinic.date)

    catalog.deactivate_slot(clinic.slot_id)

    tracker = DailyCapacityTracker(db)
    assert tracker.find(clinic.slot_id, clinic.date).is_active is True
    # A date materialized after deactivation is closed
    next_monday = clinic.date.replace(day=9)
    with pytest.raises(SlotInactive):
        lifecycle.book(clinic.patients[1], clinic.doctor_id, clinic.slot_id, next_monday)
