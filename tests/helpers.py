from datetime import datetime, timedelta

from clinic_queue.models import ScheduleSlot


class FixedClock:
    """Callable clock the services read "now" from"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def add_slot(db, doctor_id, session_id, day_of_week, max_patients, is_active=True) -> int:
    slot = ScheduleSlot(
        doctor_id=doctor_id,
        session_id=session_id,
        day_of_week=day_of_week,
        max_patients=max_patients,
        is_active=is_active,
    )
    db.add(slot)
    db.flush()
    slot_id = slot.id
    db.commit()
    return slot_id
