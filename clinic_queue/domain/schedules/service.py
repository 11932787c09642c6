"""Schedule service - ScheduleCatalog business logic"""

import logging
from datetime import datetime, time
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from ...directory import AccountDirectory
from ...errors import DuplicateSlot, InvalidCapacity, InvalidDayOfWeek, NotFound, ValidationError
from ...models import PracticeSession, ScheduleSlot
from .repository import ScheduleRepository

logger = logging.getLogger(__name__)


def _validate_capacity(max_patients) -> None:
    if isinstance(max_patients, bool) or not isinstance(max_patients, int) or max_patients <= 0:
        raise InvalidCapacity(
            "Maximum patients must be a positive whole number", max_patients=max_patients
        )


def _validate_day_of_week(day_of_week) -> None:
    if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) or not 0 <= day_of_week <= 6:
        raise InvalidDayOfWeek(
            "Day of week must be between 0 (Sunday) and 6 (Saturday)", day_of_week=day_of_week
        )


def _validate_window(start_time: time, end_time: time) -> None:
    # end before start is a session running past midnight
    if end_time == start_time:
        raise ValidationError(
            "Session must not start and end at the same time",
            start_time=start_time,
            end_time=end_time,
        )


class ScheduleCatalog:
    """Recurring weekly doctor availability"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = datetime.now):
        self.db = db
        self.repo = ScheduleRepository()
        self.directory = AccountDirectory(db)
        self.clock = clock

    # ------------------------------------------------------------------
    # Practice sessions
    # ------------------------------------------------------------------

    def create_session(
        self, name: str, start_time: time, end_time: time, description: Optional[str] = None
    ) -> PracticeSession:
        """Register a named time window, e.g. "Pagi" 08:00-12:00 or "Malam" 22:00-02:00"""
        if not name or not name.strip():
            raise ValidationError("Session name is required")
        _validate_window(start_time, end_time)

        session = self.repo.create_session(self.db, name.strip(), start_time, end_time, description)
        logger.info(f"✅ Practice session created: {session.name} ({start_time}-{end_time})")
        return session

    def get_session(self, session_id: int) -> PracticeSession:
        session = self.repo.get_session(self.db, session_id)
        if not session:
            raise NotFound("Practice session not found", session_id=session_id)
        return session

    def update_session(
        self,
        session_id: int,
        name: Optional[str] = None,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        description: Optional[str] = None,
    ) -> PracticeSession:
        """Change a session; fields left as None keep their current value"""
        session = self.get_session(session_id)
        if name is not None and not name.strip():
            raise ValidationError("Session name is required", session_id=session_id)
        _validate_window(
            start_time if start_time is not None else session.start_time,
            end_time if end_time is not None else session.end_time,
        )

        updates = {
            "name": name.strip() if name is not None else None,
            "start_time": start_time,
            "end_time": end_time,
            "description": description,
        }
        session = self.repo.update_session(
            self.db, session, **{key: value for key, value in updates.items() if value is not None}
        )
        logger.info(f"✅ Practice session {session_id} updated: {session.name}")
        return session

    def delete_session(self, session_id: int) -> PracticeSession:
        """Soft delete; slots on the session drop out of every listing"""
        session = self.get_session(session_id)
        session = self.repo.update_session(self.db, session, deleted_at=self.clock())
        logger.info(f"🗑️ Practice session {session_id} soft-deleted")
        return session

    def list_sessions(self) -> list[PracticeSession]:
        return self.repo.list_sessions(self.db)

    # ------------------------------------------------------------------
    # Slots
    # ------------------------------------------------------------------

    def get_slot(self, slot_id: int) -> ScheduleSlot:
        slot = self.repo.get_slot(self.db, slot_id)
        if not slot:
            raise NotFound("Schedule slot not found", slot_id=slot_id)
        return slot

    def create_slot(
        self, doctor_id: int, session_id: int, day_of_week: int, max_patients: int
    ) -> ScheduleSlot:
        """
        Create a weekly slot.

        Raises:
            InvalidDayOfWeek: day_of_week outside 0..6
            InvalidCapacity: max_patients not positive
            NotFound: unknown doctor or practice session
            DuplicateSlot: the (doctor, session, day) triple is already taken
        """
        _validate_day_of_week(day_of_week)
        _validate_capacity(max_patients)

        self.directory.ensure_doctor(doctor_id)
        if not self.repo.get_session(self.db, session_id):
            raise NotFound("Practice session not found", session_id=session_id)

        existing = self.repo.find_live_slot(self.db, doctor_id, session_id, day_of_week)
        if existing:
            raise DuplicateSlot(
                "Doctor already has a schedule for this session on that day",
                slot_id=existing.id,
                doctor_id=doctor_id,
                session_id=session_id,
                day_of_week=day_of_week,
            )

        try:
            slot = self.repo.create_slot(
                self.db,
                doctor_id=doctor_id,
                session_id=session_id,
                day_of_week=day_of_week,
                max_patients=max_patients,
                is_active=True,
            )
        except IntegrityError as exc:
            # Lost a race against another admin creating the same triple
            self.db.rollback()
            raise DuplicateSlot(
                "Doctor already has a schedule for this session on that day",
                doctor_id=doctor_id,
                session_id=session_id,
                day_of_week=day_of_week,
            ) from exc

        logger.info(
            f"✅ Slot {slot.id} created: doctor {doctor_id}, session {session_id}, "
            f"day {day_of_week}, max {max_patients}"
        )
        return slot

    def deactivate_slot(self, slot_id: int) -> ScheduleSlot:
        """Stop offering the slot; existing reservations and daily rows are untouched"""
        slot = self.get_slot(slot_id)
        slot = self.repo.update_slot(self.db, slot, is_active=False)
        logger.info(f"⏸️ Slot {slot_id} deactivated")
        return slot

    def reactivate_slot(self, slot_id: int) -> ScheduleSlot:
        slot = self.get_slot(slot_id)
        slot = self.repo.update_slot(self.db, slot, is_active=True)
        logger.info(f"▶️ Slot {slot_id} reactivated")
        return slot

    def update_capacity(self, slot_id: int, max_patients: int) -> ScheduleSlot:
        """Change the ceiling; rows already over the new ceiling simply stop accepting bookings"""
        _validate_capacity(max_patients)
        slot = self.get_slot(slot_id)
        slot = self.repo.update_slot(self.db, slot, max_patients=max_patients)
        logger.info(f"✅ Slot {slot_id} capacity set to {max_patients}")
        return slot

    def delete_slot(self, slot_id: int) -> ScheduleSlot:
        """Soft delete; the triple becomes free for a new slot"""
        slot = self.get_slot(slot_id)
        slot = self.repo.update_slot(self.db, slot, is_active=False, deleted_at=self.clock())
        logger.info(f"🗑️ Slot {slot_id} soft-deleted")
        return slot

    def list_slots_for_doctor(self, doctor_id: int) -> Query:
        """
        Active slots of a doctor ordered by day of week, then session start time.

        The query is returned un-executed: iterating it runs it, and iterating
        again runs it afresh.
        """
        return self.repo.live_slots_query(self.db, doctor_id)

    def list_slots(self) -> Query:
        return self.repo.live_slots_query(self.db)
