from datetime import date
from types import SimpleNamespace

import pytest

from clinic_queue.domain.queue.priority import (
    DEFAULT_PRIORITY_REASON,
    PriorityReorderer,
    order_for_display,
)
from clinic_queue.domain.queue.views import QueueViews
from clinic_queue.domain.reservations.service import ReservationLifecycle
from clinic_queue.errors import InvalidState, NotFound
from clinic_queue.models import EventType


def visit(id, queue_number, is_priority=False):
    return SimpleNamespace(id=id, queue_number=queue_number, is_priority=is_priority)


def ids(order):
    return [r.id for r in order]


def test_priority_first_then_queue_number():
    rows = [visit(1, 3), visit(2, 1), visit(3, 5, is_priority=True), visit(4, 2, is_priority=True)]

    assert ids(order_for_display(rows)) == [4, 3, 2, 1]


def test_unnumbered_rows_go_last():
    rows = [visit(1, None), visit(2, 2), visit(3, None, is_priority=True), visit(4, 1)]

    assert ids(order_for_display(rows)) == [3, 4, 2, 1]


def test_order_is_restartable_for_generators():
    order = order_for_display(visit(i, 10 - i) for i in range(1, 4))

    assert ids(order) == [3, 2, 1]
    assert ids(order) == [3, 2, 1]


def test_order_reflects_changes_between_iterations():
    rows = [visit(1, 1), visit(2, 2)]
    order = order_for_display(rows)
    assert ids(order) == [1, 2]

    rows[1].is_priority = True

    assert ids(order) == [2, 1]


@pytest.fixture
def lifecycle(db, clock):
    return ReservationLifecycle(db, clock=clock)


@pytest.fixture
def reorderer(db, clock):
    return PriorityReorderer(db, clock)


def test_set_priority_keeps_queue_numbers(lifecycle, reorderer, clinic, db):
    first = lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.slot_id, clinic.date)
    second = lifecycle.book(clinic.patients[1], clinic.doctor_id, clinic.slot_id, clinic.date)
    third = lifecycle.book(clinic.patients[2], clinic.doctor_id, clinic.slot_id, clinic.date)

    flagged = reorderer.set_priority(third.id, "  Chest pain ")

    assert flagged.is_priority is True
    assert flagged.priority_reason == "Chest pain"
    assert flagged.queue_number == 3

    queue = QueueViews(db).current_queue(clinic.doctor_id, clinic.date)
    assert ids(queue) == [third.id, first.id, second.id]
    assert [r.queue_number for r in queue] == [3, 1, 2]

    events = [e.event_type for e in lifecycle.history(third.id)]
    assert events[-1] == EventType.PRIORITY_SET


def test_set_priority_default_reason(lifecycle, reorderer, clinic):
    reservation = lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.slot_id, clinic.date)

    assert reorderer.set_priority(reservation.id).priority_reason == DEFAULT_PRIORITY_REASON


def test_clear_priority_restores_number_order(lifecycle, reorderer, clinic, db):
    first = lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.slot_id, clinic.date)
    second = lifecycle.book(clinic.patients[1], clinic.doctor_id, clinic.slot_id, clinic.date)
    reorderer.set_priority(second.id)

    cleared = reorderer.clear_priority(second.id)

    assert cleared.is_priority is False
    assert cleared.priority_reason is None
    assert ids(QueueViews(db).current_queue(clinic.doctor_id, clinic.date)) == [first.id, second.id]


def test_priority_cannot_change_on_finished_reservations(lifecycle, reorderer, clinic):
    reservation = lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.slot_id, clinic.date)
    lifecycle.cancel(reservation.id)

    with pytest.raises(InvalidState):
        reorderer.set_priority(reservation.id)
    with pytest.raises(InvalidState):
        reorderer.clear_priority(reservation.id)
    with pytest.raises(NotFound):
        reorderer.set_priority(4242)


def test_current_queue_leaves_out_finished_and_paying(lifecycle, clinic, db):
    waiting = lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.slot_id, clinic.date)
    cancelled = lifecycle.book(clinic.patients[1], clinic.doctor_id, clinic.slot_id, clinic.date)
    paying = lifecycle.book(clinic.patients[2], clinic.doctor_id, clinic.slot_id, clinic.date)
    lifecycle.check_in(waiting.id)
    lifecycle.cancel(cancelled.id)
    lifecycle.check_in(paying.id)
    lifecycle.update_examination_status(paying.id, "In Progress")
    lifecycle.update_examination_status(paying.id, "Waiting for Payment")

    views = QueueViews(db)

    assert ids(views.current_queue(clinic.doctor_id, clinic.date)) == [waiting.id]
    assert ids(views.current_queue(clinic.doctor_id, clinic.date, active_only=False)) == [
        waiting.id,
        cancelled.id,
        paying.id,
    ]


def test_current_queue_query_runs_again_on_each_iteration(lifecycle, clinic, db):
    queue = QueueViews(db).current_queue(clinic.doctor_id, clinic.date)
    assert ids(queue) == []

    booked = lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.slot_id, clinic.date)

    assert ids(queue) == [booked.id]


def test_display_board_groups_by_doctor_and_session(lifecycle, clinic, db):
    morning = lifecycle.register_walk_in(clinic.patients[0], clinic.doctor_id, clinic.small_slot_id)
    evening = lifecycle.book(clinic.patients[1], clinic.doctor_id, clinic.slot_id, clinic.date)
    lifecycle.check_in(evening.id)
    other = lifecycle.register_walk_in(clinic.patients[2], clinic.other_doctor_id, clinic.other_slot_id)
    lifecycle.update_examination_status(other.id, "In Progress")
    paying = lifecycle.register_walk_in(clinic.patients[3], clinic.other_doctor_id, clinic.other_slot_id)
    lifecycle.update_examination_status(paying.id, "In Progress")
    lifecycle.update_examination_status(paying.id, "Waiting for Payment")
    lifecycle.book(clinic.patients[4], clinic.doctor_id, clinic.slot_id, clinic.date)  # not checked in

    board = QueueViews(db).display_board(clinic.date)

    groups = [(g["doctor_name"], g["session_name"], ids(g["queues"])) for g in board["doctor_queues"]]
    assert groups == [
        ("dr. Budi", "Pagi", [other.id]),
        ("dr. Sari", "Pagi", [morning.id]),
        ("dr. Sari", "Sore", [evening.id]),
    ]
    assert [(p["reservation"].id, p["doctor_name"]) for p in board["payment_queue"]] == [
        (paying.id, "dr. Budi")
    ]


def test_priority_cases_lists_active_emergencies(lifecycle, clinic, db):
    lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.small_slot_id, clinic.date)
    emergency = lifecycle.register_walk_in(
        clinic.patients[1],
        clinic.doctor_id,
        clinic.small_slot_id,
        emergency_override=True,
        override_reason="Unconscious",
    )

    assert ids(QueueViews(db).priority_cases(clinic.date)) == [emergency.id]


def test_day_queue_lists_every_booked_visit_per_doctor(lifecycle, clinic, db):
    booked = lifecycle.book(clinic.patients[0], clinic.doctor_id, clinic.slot_id, clinic.date)
    walk_in = lifecycle.register_walk_in(clinic.patients[1], clinic.doctor_id, clinic.small_slot_id)
    other = lifecycle.book(clinic.patients[2], clinic.other_doctor_id, clinic.other_slot_id, clinic.date)
    urgent = lifecycle.book(clinic.patients[3], clinic.other_doctor_id, clinic.other_slot_id, clinic.date)
    PriorityReorderer(db).set_priority(urgent.id, "Bleeding")
    cancelled = lifecycle.book(clinic.patients[4], clinic.doctor_id, clinic.slot_id, clinic.date)
    lifecycle.cancel(cancelled.id)
    lifecycle.book(clinic.patients[5], clinic.doctor_id, clinic.slot_id, date(2025, 6, 9))

    groups = QueueViews(db).day_queue(clinic.date)

    assert [(g["doctor_name"], ids(g["queues"])) for g in groups] == [
        ("dr. Budi", [urgent.id, other.id]),
        ("dr. Sari", [booked.id, walk_in.id]),
    ]


def test_day_queue_of_an_empty_day(clinic, db):
    assert QueueViews(db).day_queue(clinic.date) == []
