"""
Transition tables for the two reservation axes.

status:       Pending -> Confirmed -> Completed, Pending|Confirmed -> Cancelled
examination:  Not Started -> Waiting -> In Progress -> {Completed | Waiting for Payment}
              Waiting for Payment -> Completed, any non-terminal -> Cancelled
"""

from typing import Union

from ...errors import InvalidTransition, ValidationError
from ...models import ExaminationStatus, ReservationStatus

S = ReservationStatus
E = ExaminationStatus

STATUS_TRANSITIONS: dict[ReservationStatus, frozenset] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

EXAMINATION_TRANSITIONS: dict[ExaminationStatus, frozenset] = {
    E.NOT_STARTED: frozenset({E.WAITING, E.CANCELLED}),
    E.WAITING: frozenset({E.IN_PROGRESS, E.CANCELLED}),
    E.IN_PROGRESS: frozenset({E.COMPLETED, E.WAITING_FOR_PAYMENT, E.CANCELLED}),
    E.WAITING_FOR_PAYMENT: frozenset({E.COMPLETED, E.CANCELLED}),
    E.COMPLETED: frozenset(),
    E.CANCELLED: frozenset(),
}

# Edges staff may request directly; Not Started -> Waiting is check-in only
STAFF_EXAMINATION_TRANSITIONS: dict[ExaminationStatus, frozenset] = {
    **EXAMINATION_TRANSITIONS,
    E.NOT_STARTED: frozenset({E.CANCELLED}),
}

ACTIVE_STATUSES = frozenset({S.PENDING, S.CONFIRMED})
TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED})
TERMINAL_EXAMINATION_STATUSES = frozenset({E.COMPLETED, E.CANCELLED})

# A visit already underway or finished cannot move to another slot
RESCHEDULE_BLOCKED = frozenset({E.IN_PROGRESS, E.WAITING_FOR_PAYMENT, E.COMPLETED})


def parse_examination_status(value: Union[str, ExaminationStatus]) -> ExaminationStatus:
    if isinstance(value, ExaminationStatus):
        return value
    try:
        return ExaminationStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ExaminationStatus)
        raise ValidationError(
            f"Unknown examination status '{value}'. Expected one of: {allowed}"
        ) from None


def ensure_status_transition(current: ReservationStatus, target: ReservationStatus) -> None:
    if target not in STATUS_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Reservation cannot move from {current.value} to {target.value}",
            from_status=current.value,
            to_status=target.value,
        )


def ensure_examination_transition(
    current: ExaminationStatus, target: ExaminationStatus, staff: bool = True
) -> None:
    """Raise InvalidTransition unless current -> target is a legal edge"""
    table = STAFF_EXAMINATION_TRANSITIONS if staff else EXAMINATION_TRANSITIONS
    if target not in table[current]:
        hint = ""
        if current == E.WAITING and target in (E.COMPLETED, E.WAITING_FOR_PAYMENT):
            hint = "; the examination must be started (In Progress) first"
        elif current == E.NOT_STARTED and target == E.WAITING:
            hint = "; use check-in to put a patient in the waiting queue"
        raise InvalidTransition(
            f"Examination status cannot move from {current.value} to {target.value}{hint}",
            from_examination_status=current.value,
            to_examination_status=target.value,
        )
