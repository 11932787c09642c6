"""Read-only queue views consumed by the display board and staff worklists"""

import logging
from datetime import date

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Account, ExaminationStatus, Reservation, ReservationStatus
from ..reservations.repository import ReservationRepository
from ..reservations.transitions import ACTIVE_STATUSES
from .priority import QueueOrder, order_for_display

logger = logging.getLogger(__name__)

ON_BOARD = (ExaminationStatus.WAITING, ExaminationStatus.IN_PROGRESS)


class QueueViews:
    def __init__(self, db: Session):
        self.db = db
        self.repo = ReservationRepository()

    def _doctor_names(self, doctor_ids: set) -> dict:
        if not doctor_ids:
            return {}
        return {
            account.id: account.full_name
            for account in self.db.query(Account).filter(Account.id.in_(list(doctor_ids)))
        }

    def day_queue(self, service_date: date) -> list[dict]:
        """
        Reception view of a day: every Pending/Confirmed visit grouped per doctor.

        Unlike the display board this includes patients who have not checked in
        yet. Groups are sorted by doctor name, visits inside a group in display
        order.
        """
        visits = self.repo.for_day(self.db, service_date, statuses=ACTIVE_STATUSES).all()
        names = self._doctor_names({r.doctor_id for r in visits})

        groups: dict[int, dict] = {}
        for reservation in order_for_display(visits):
            group = groups.setdefault(
                reservation.doctor_id,
                {
                    "doctor_id": reservation.doctor_id,
                    "doctor_name": names.get(reservation.doctor_id) or "Doctor",
                    "queues": [],
                },
            )
            group["queues"].append(reservation)

        return sorted(groups.values(), key=lambda g: (g["doctor_name"], g["doctor_id"]))

    def current_queue(self, doctor_id: int, service_date: date, active_only: bool = True) -> QueueOrder:
        """
        A doctor's queue for one day in display order.

        Args:
            doctor_id: Doctor account id
            service_date: Calendar date of the visits
            active_only: Leave out cancelled and finished visits

        Returns:
            Restartable ordering; each iteration re-reads the reservations
        """
        query = self.repo.for_doctor_day(self.db, doctor_id, service_date)
        if active_only:
            query = query.filter(
                Reservation.status.in_(list(ACTIVE_STATUSES)),
                or_(
                    Reservation.examination_status != ExaminationStatus.WAITING_FOR_PAYMENT,
                    Reservation.examination_status.is_(None),
                ),
            )
        return order_for_display(query)

    def display_board(self, service_date: date) -> dict:
        """Waiting / In Progress patients grouped per doctor and session, plus the payment queue"""
        on_board = self.repo.for_day(
            self.db,
            service_date,
            statuses=ACTIVE_STATUSES,
            examination_statuses=ON_BOARD,
        ).all()

        doctor_ids = {r.doctor_id for r in on_board}
        paying = self.awaiting_payment(service_date)
        doctor_ids.update(r.doctor_id for r in paying)
        names = self._doctor_names(doctor_ids)

        groups: dict[tuple, dict] = {}
        for reservation in order_for_display(on_board):
            session = reservation.slot.session
            key = (reservation.doctor_id, session.id)
            group = groups.setdefault(
                key,
                {
                    "doctor_id": reservation.doctor_id,
                    "doctor_name": names.get(reservation.doctor_id) or "Doctor",
                    "session_id": session.id,
                    "session_name": session.name,
                    "session_start": session.start_time,
                    "queues": [],
                },
            )
            group["queues"].append(reservation)

        doctor_queues = sorted(
            groups.values(), key=lambda g: (g["doctor_name"], g["session_start"], g["session_id"])
        )
        return {
            "doctor_queues": doctor_queues,
            "payment_queue": [
                {"reservation": r, "doctor_name": names.get(r.doctor_id) or "Doctor"} for r in paying
            ],
        }

    def awaiting_payment(self, service_date: date) -> list[Reservation]:
        return list(
            order_for_display(
                self.repo.for_day(
                    self.db,
                    service_date,
                    statuses=[ReservationStatus.CONFIRMED],
                    examination_statuses=[ExaminationStatus.WAITING_FOR_PAYMENT],
                )
            )
        )

    def priority_cases(self, service_date: date) -> list[Reservation]:
        """Emergency cases of the day that are still being handled"""
        return (
            self.repo.for_day(self.db, service_date, statuses=ACTIVE_STATUSES)
            .filter(Reservation.is_priority.is_(True))
            .order_by(Reservation.updated_at.desc(), Reservation.id.desc())
            .all()
        )
