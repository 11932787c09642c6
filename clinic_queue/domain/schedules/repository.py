"""Schedule repository - Database operations for practice sessions and slots"""

from datetime import time
from typing import Optional

from sqlalchemy.orm import Query, Session, contains_eager, joinedload

from ...models import PracticeSession, ScheduleSlot


class ScheduleRepository:
    """Repository for schedule database operations"""

    @staticmethod
    def get_session(db: Session, session_id: int) -> Optional[PracticeSession]:
        return (
            db.query(PracticeSession)
            .filter(PracticeSession.id == session_id, PracticeSession.deleted_at.is_(None))
            .first()
        )

    @staticmethod
    def list_sessions(db: Session) -> list[PracticeSession]:
        return (
            db.query(PracticeSession)
            .filter(PracticeSession.deleted_at.is_(None))
            .order_by(PracticeSession.start_time.asc())
            .all()
        )

    @staticmethod
    def create_session(
        db: Session, name: str, start_time: time, end_time: time, description: Optional[str]
    ) -> PracticeSession:
        session = PracticeSession(
            name=name, start_time=start_time, end_time=end_time, description=description
        )
        db.add(session)
        db.commit()
        db.refresh(session)
        return session

    @staticmethod
    def update_session(db: Session, session: PracticeSession, **updates) -> PracticeSession:
        for key, value in updates.items():
            if hasattr(session, key):
                setattr(session, key, value)

        db.commit()
        db.refresh(session)
        return session

    @staticmethod
    def get_slot(db: Session, slot_id: int, include_deleted: bool = False) -> Optional[ScheduleSlot]:
        """Get a slot by ID with its session loaded"""
        query = (
            db.query(ScheduleSlot)
            .options(joinedload(ScheduleSlot.session))
            .filter(ScheduleSlot.id == slot_id)
        )
        if not include_deleted:
            query = query.filter(ScheduleSlot.deleted_at.is_(None))
        return query.first()

    @staticmethod
    def find_live_slot(
        db: Session, doctor_id: int, session_id: int, day_of_week: int
    ) -> Optional[ScheduleSlot]:
        """Find a non-deleted slot occupying the (doctor, session, day) triple"""
        return (
            db.query(ScheduleSlot)
            .filter(
                ScheduleSlot.doctor_id == doctor_id,
                ScheduleSlot.session_id == session_id,
                ScheduleSlot.day_of_week == day_of_week,
                ScheduleSlot.deleted_at.is_(None),
            )
            .first()
        )

    @staticmethod
    def create_slot(db: Session, **slot_data) -> ScheduleSlot:
        slot = ScheduleSlot(**slot_data)
        db.add(slot)
        db.commit()
        db.refresh(slot)
        return slot

    @staticmethod
    def update_slot(db: Session, slot: ScheduleSlot, **updates) -> ScheduleSlot:
        for key, value in updates.items():
            if hasattr(slot, key):
                setattr(slot, key, value)

        db.commit()
        db.refresh(slot)
        return slot

    @staticmethod
    def live_slots_query(
        db: Session, doctor_id: Optional[int] = None, active_only: bool = True
    ) -> Query:
        """Non-deleted slots ordered by day of week then session start time"""
        query = (
            db.query(ScheduleSlot)
            .join(PracticeSession, ScheduleSlot.session_id == PracticeSession.id)
            .options(contains_eager(ScheduleSlot.session))
            .filter(ScheduleSlot.deleted_at.is_(None), PracticeSession.deleted_at.is_(None))
        )
        if active_only:
            query = query.filter(ScheduleSlot.is_active.is_(True))
        if doctor_id is not None:
            query = query.filter(ScheduleSlot.doctor_id == doctor_id)
        return query.order_by(
            ScheduleSlot.day_of_week.asc(),
            PracticeSession.start_time.asc(),
            ScheduleSlot.id.asc(),
        )
