"""Available sessions for a doctor on a date (ScheduleCatalog x DailyCapacityTracker)"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...directory import DOCTOR_ROLE
from ...models import Account, DailyCapacity, ScheduleSlot
from ...shared.dates import day_of_week, hourly_times
from ..schedules.repository import ScheduleRepository


@dataclass
class SessionAvailability:
    slot_id: int
    session_id: int
    session_name: str
    start_time: time
    end_time: time
    max_patients: int
    current_reservations: int
    is_active: bool
    times: list[str] = field(default_factory=list)

    @property
    def remaining(self) -> int:
        return max(self.max_patients - self.current_reservations, 0)

    @property
    def has_capacity(self) -> bool:
        return self.is_active and self.current_reservations < self.max_patients


@dataclass
class DoctorOnDuty:
    doctor_id: int
    doctor_name: str
    service_date: date
    session: SessionAvailability


def _daily_rows(db: Session, slots: Iterable[ScheduleSlot], service_date: date) -> dict:
    slot_ids = [slot.id for slot in slots]
    if not slot_ids:
        return {}
    return {
        row.schedule_slot_id: row
        for row in db.query(DailyCapacity).filter(
            DailyCapacity.schedule_slot_id.in_(slot_ids),
            DailyCapacity.date == service_date,
        )
    }


def _availability(slot: ScheduleSlot, daily: Optional[DailyCapacity]) -> SessionAvailability:
    return SessionAvailability(
        slot_id=slot.id,
        session_id=slot.session_id,
        session_name=slot.session.name,
        start_time=slot.session.start_time,
        end_time=slot.session.end_time,
        max_patients=slot.max_patients,
        current_reservations=daily.current_reservations if daily else 0,
        # A materialized date keeps its own flag after the slot is toggled
        is_active=daily.is_active if daily else slot.is_active,
        times=list(hourly_times(slot.session.start_time, slot.session.end_time)),
    )


def available_sessions(
    db: Session, doctor_id: int, service_date: date, include_full: bool = False
) -> list[SessionAvailability]:
    """
    Sessions a doctor offers on ``service_date`` with their remaining room.

    Deactivated slots are still considered: a date materialized before the
    deactivation stays bookable. Dates without a daily row count as empty and
    take the slot's active flag. Full or closed sessions are left out unless
    include_full is set.
    """
    slots: list[ScheduleSlot] = (
        ScheduleRepository.live_slots_query(db, doctor_id, active_only=False)
        .filter(ScheduleSlot.day_of_week == day_of_week(service_date))
        .all()
    )
    daily_rows = _daily_rows(db, slots, service_date)

    results = []
    for slot in slots:
        availability = _availability(slot, daily_rows.get(slot.id))
        if include_full or availability.has_capacity:
            results.append(availability)
    return results


def _running_on(slot: ScheduleSlot, now: datetime) -> Optional[date]:
    """Service date of the slot's session if it is running at ``now``, else None"""
    start, end = slot.session.start_time, slot.session.end_time
    current = now.time()
    today = now.date()
    yesterday = today - timedelta(days=1)

    if start < end:
        if slot.day_of_week == day_of_week(today) and start <= current <= end:
            return today
        return None

    # Session runs past midnight
    if slot.day_of_week == day_of_week(today) and current >= start:
        return today
    if slot.day_of_week == day_of_week(yesterday) and current <= end:
        return yesterday
    return None


def doctors_available_now(db: Session, now: datetime) -> list[DoctorOnDuty]:
    """Doctors whose session is running at ``now`` and who still have room in it"""
    weekdays = [day_of_week(now), day_of_week(now - timedelta(days=1))]
    slots = (
        ScheduleRepository.live_slots_query(db, active_only=False)
        .filter(ScheduleSlot.day_of_week.in_(weekdays))
        .all()
    )

    running = []
    for slot in slots:
        service_date = _running_on(slot, now)
        if service_date:
            running.append((slot, service_date))
    if not running:
        return []

    doctors = {
        account.id: account
        for account in db.query(Account).filter(
            Account.id.in_(sorted({slot.doctor_id for slot, _ in running})),
            Account.role == DOCTOR_ROLE,
            Account.is_active.is_(True),
        )
    }

    results = []
    for service_date in sorted({d for _, d in running}):
        on_date = [slot for slot, d in running if d == service_date]
        daily_rows = _daily_rows(db, on_date, service_date)
        for slot in on_date:
            doctor = doctors.get(slot.doctor_id)
            if doctor is None:
                continue
            availability = _availability(slot, daily_rows.get(slot.id))
            if availability.has_capacity:
                results.append(
                    DoctorOnDuty(
                        doctor_id=doctor.id,
                        doctor_name=doctor.full_name or "Doctor",
                        service_date=service_date,
                        session=availability,
                    )
                )
    return sorted(results, key=lambda d: (d.doctor_name, d.session.start_time, d.session.slot_id))
