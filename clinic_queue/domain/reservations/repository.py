"""Reservation repository - Database operations for reservations and their audit trail"""

from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Query, Session, joinedload

from ...models import (
    EventType,
    ExaminationStatus,
    PracticeSession,
    Reservation,
    ReservationEvent,
    ReservationStatus,
    ScheduleSlot,
)


def _value(status) -> Optional[str]:
    return status.value if status is not None else None


class ReservationRepository:
    """Repository for reservation database operations"""

    @staticmethod
    def get(db: Session, reservation_id: int) -> Optional[Reservation]:
        """Get a live reservation with its slot and session loaded"""
        return (
            db.query(Reservation)
            .options(joinedload(Reservation.slot).joinedload(ScheduleSlot.session))
            .filter(Reservation.id == reservation_id, Reservation.deleted_at.is_(None))
            .first()
        )

    @staticmethod
    def add(db: Session, reservation: Reservation) -> Reservation:
        db.add(reservation)
        db.flush()
        return reservation

    @staticmethod
    def record_event(
        db: Session,
        reservation: Reservation,
        event_type: EventType,
        at: datetime,
        from_status: Optional[ReservationStatus] = None,
        from_examination_status: Optional[ExaminationStatus] = None,
        detail: Optional[str] = None,
    ) -> ReservationEvent:
        """Append an audit event describing the reservation's current state"""
        event = ReservationEvent(
            reservation_id=reservation.id,
            event_type=event_type,
            from_status=_value(from_status),
            to_status=_value(reservation.status),
            from_examination_status=_value(from_examination_status),
            to_examination_status=_value(reservation.examination_status),
            detail=detail[:255] if detail else None,
            at=at,
        )
        db.add(event)
        return event

    @staticmethod
    def events(db: Session, reservation_id: int) -> list[ReservationEvent]:
        return (
            db.query(ReservationEvent)
            .filter(ReservationEvent.reservation_id == reservation_id)
            .order_by(ReservationEvent.id.asc())
            .all()
        )

    @staticmethod
    def for_doctor_day(db: Session, doctor_id: int, service_date: date) -> Query:
        return db.query(Reservation).filter(
            Reservation.doctor_id == doctor_id,
            Reservation.service_date == service_date,
            Reservation.deleted_at.is_(None),
        )

    @staticmethod
    def for_day(
        db: Session,
        service_date: date,
        statuses: Optional[Iterable[ReservationStatus]] = None,
        examination_statuses: Optional[Iterable[ExaminationStatus]] = None,
    ) -> Query:
        query = (
            db.query(Reservation)
            .options(joinedload(Reservation.slot).joinedload(ScheduleSlot.session))
            .filter(Reservation.service_date == service_date, Reservation.deleted_at.is_(None))
        )
        if statuses is not None:
            query = query.filter(Reservation.status.in_(list(statuses)))
        if examination_statuses is not None:
            query = query.filter(Reservation.examination_status.in_(list(examination_statuses)))
        return query

    @staticmethod
    def no_show_candidates(db: Session, now: datetime) -> list[tuple[Reservation, PracticeSession]]:
        """Booked, not-yet-checked-in reservations whose appointment time has arrived"""
        return (
            db.query(Reservation, PracticeSession)
            .join(ScheduleSlot, Reservation.schedule_slot_id == ScheduleSlot.id)
            .join(PracticeSession, ScheduleSlot.session_id == PracticeSession.id)
            .filter(
                Reservation.status.in_([ReservationStatus.PENDING, ReservationStatus.CONFIRMED]),
                (Reservation.examination_status == ExaminationStatus.NOT_STARTED)
                | Reservation.examination_status.is_(None),
                Reservation.reservation_date <= now,
                Reservation.deleted_at.is_(None),
            )
            .order_by(Reservation.reservation_date.asc())
            .all()
        )

    @staticmethod
    def for_patient(db: Session, patient_id: int) -> list[Reservation]:
        """A patient's reservations, most recent appointment first"""
        return (
            db.query(Reservation)
            .options(joinedload(Reservation.slot).joinedload(ScheduleSlot.session))
            .filter(Reservation.patient_id == patient_id, Reservation.deleted_at.is_(None))
            .order_by(Reservation.reservation_date.desc(), Reservation.id.desc())
            .all()
        )

    @staticmethod
    def for_patient_on_day(db: Session, patient_id: int, service_date: date) -> Optional[Reservation]:
        """Earliest reservation a patient still holds on a date"""
        return (
            db.query(Reservation)
            .options(joinedload(Reservation.slot).joinedload(ScheduleSlot.session))
            .filter(
                Reservation.patient_id == patient_id,
                Reservation.service_date == service_date,
                Reservation.status != ReservationStatus.CANCELLED,
                Reservation.deleted_at.is_(None),
            )
            .order_by(Reservation.reservation_date.asc(), Reservation.id.asc())
            .first()
        )
