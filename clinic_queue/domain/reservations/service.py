"""
Reservation service - ReservationLifecycle.

Every write runs as one unit through run_atomic: reads, capacity changes,
queue allocation, the reservation rows and their audit events commit together.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, NamedTuple, Optional, Union

from sqlalchemy.orm import Session

from ...directory import AccountDirectory
from ...errors import (
    AlreadyCheckedIn,
    CheckInWindowClosed,
    InvalidDate,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from ...models import (
    EventType,
    ExaminationStatus,
    Reservation,
    ReservationEvent,
    ReservationStatus,
    ScheduleSlot,
)
from ...shared.dates import day_of_week
from ...transactions import run_atomic
from ..capacity.tracker import DailyCapacityTracker
from ..queue.allocator import CapacityOverride, QueueAllocator
from ..queue.priority import PriorityReorderer
from ..queue.views import QueueViews
from ..schedules.repository import ScheduleRepository
from ..settings.policy import QueuePolicy, check_in_window
from ..settings.service import ClinicSettingsService
from .repository import ReservationRepository
from .transitions import (
    ACTIVE_STATUSES,
    RESCHEDULE_BLOCKED,
    TERMINAL_STATUSES,
    ensure_examination_transition,
    ensure_status_transition,
    parse_examination_status,
)

logger = logging.getLogger(__name__)

RESCHEDULED_REASON = "Rescheduled"
NO_SHOW_REASON = "NO_SHOW"
STAFF_CANCEL_REASON = "Cancelled by staff"


class RescheduleResult(NamedTuple):
    superseded: Reservation
    reservation: Reservation


class ReservationLifecycle:
    """Booking, walk-in, reschedule, check-in and examination status transitions"""

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = datetime.now,
        directory: Optional[AccountDirectory] = None,
    ):
        self.db = db
        self.clock = clock
        self.repo = ReservationRepository()
        self.directory = directory or AccountDirectory(db)
        self.settings = ClinicSettingsService(db)
        self.tracker = DailyCapacityTracker(db)
        self.allocator = QueueAllocator(db, self.tracker)
        self.priority = PriorityReorderer(db, clock)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reservation(self, reservation_id: int) -> Reservation:
        reservation = self.repo.get(self.db, reservation_id)
        if not reservation:
            raise NotFound("Reservation not found", reservation_id=reservation_id)
        return reservation

    def _slot(self, slot_id: int) -> ScheduleSlot:
        slot = ScheduleRepository.get_slot(self.db, slot_id)
        if not slot:
            raise NotFound("Schedule slot not found", slot_id=slot_id)
        return slot

    def _policy(self) -> QueuePolicy:
        return self.settings.get_policy()

    def _resolve_reservation_date(
        self, slot: ScheduleSlot, when: Union[date, datetime]
    ) -> datetime:
        if isinstance(when, datetime):
            return when
        if isinstance(when, date):
            return datetime.combine(when, slot.session.start_time)
        raise InvalidDate("Reservation date is required")

    def _validate_booking_date(self, slot: ScheduleSlot, reservation_date: datetime) -> None:
        """Reject past dates, dates past the booking horizon and weekday mismatches"""
        today = self.clock().date()
        service_date = reservation_date.date()
        horizon = self._policy().booking_horizon_days

        if service_date < today:
            raise InvalidDate("Cannot book a date in the past", date=service_date)
        if service_date > today + timedelta(days=horizon):
            raise InvalidDate(
                f"Bookings are only open up to {horizon} days ahead",
                date=service_date,
                horizon_days=horizon,
            )
        if day_of_week(service_date) != slot.day_of_week:
            raise InvalidDate(
                "The doctor has no session on that day",
                date=service_date,
                day_of_week=slot.day_of_week,
            )

    def _cancel(
        self,
        reservation: Reservation,
        reason: str,
        event_type: EventType = EventType.CANCELLED,
        detail: Optional[str] = None,
    ) -> Reservation:
        """Cancel inside the caller's transaction and release the daily place"""
        ensure_status_transition(reservation.status, ReservationStatus.CANCELLED)
        from_status = reservation.status
        from_exam = reservation.exam_status

        reservation.status = ReservationStatus.CANCELLED
        reservation.examination_status = ExaminationStatus.CANCELLED
        reservation.cancellation_reason = reason
        reservation.cancelled_at = self.clock()
        self.db.flush()

        self.tracker.decrement(reservation.schedule_slot_id, reservation.service_date)
        self.repo.record_event(
            self.db,
            reservation,
            event_type,
            at=self.clock(),
            from_status=from_status,
            from_examination_status=from_exam,
            detail=detail or reason,
        )
        return reservation

    def _new_reservation(
        self,
        slot: ScheduleSlot,
        patient_id: int,
        reservation_date: datetime,
        override: Optional[CapacityOverride] = None,
        **fields,
    ) -> Reservation:
        allocation = self.allocator.allocate(slot, reservation_date.date(), override)
        reservation = Reservation(
            patient_id=patient_id,
            doctor_id=slot.doctor_id,
            schedule_slot_id=slot.id,
            reservation_date=reservation_date,
            service_date=reservation_date.date(),
            queue_number=allocation.queue_number,
            capacity_override=allocation.over_capacity,
            override_reason=override.reason if override else None,
            **fields,
        )
        self.repo.add(self.db, reservation)

        if allocation.over_capacity:
            capacity = allocation.capacity
            self.repo.record_event(
                self.db,
                reservation,
                EventType.CAPACITY_OVERRIDE,
                at=self.clock(),
                detail=(
                    f"{capacity.current_reservations}/{slot.max_patients}: {override.reason}"
                ),
            )
        return reservation

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, reservation_id: int) -> Reservation:
        return self._reservation(reservation_id)

    def history(self, reservation_id: int) -> list[ReservationEvent]:
        """Audit events of a reservation, oldest first"""
        self._reservation(reservation_id)
        return self.repo.events(self.db, reservation_id)

    def awaiting_payment(self, service_date: date) -> list[Reservation]:
        """Finished examinations still waiting on the payment desk"""
        return QueueViews(self.db).awaiting_payment(service_date)

    def patient_appointments(self, patient_id: int) -> list[Reservation]:
        """All of a patient's reservations, most recent first"""
        return self.repo.for_patient(self.db, patient_id)

    def today_appointment(self, patient_id: int) -> Optional[Reservation]:
        """The patient's earliest non-cancelled reservation for today, if any"""
        return self.repo.for_patient_on_day(self.db, patient_id, self.clock().date())

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    def book(
        self,
        patient_id: int,
        doctor_id: int,
        slot_id: int,
        when: Union[date, datetime],
        complaint: Optional[str] = None,
    ) -> Reservation:
        """
        Book a scheduled visit.

        Args:
            patient_id: Patient account id (must be active and verified)
            doctor_id: Doctor owning the slot
            slot_id: Weekly schedule slot
            when: Date (session start time is used) or exact datetime
            complaint: Free text from the patient

        Returns:
            Pending / Not Started reservation with its queue number
        """

        def work() -> Reservation:
            self.directory.ensure_patient_eligible(patient_id)
            slot = self._slot(slot_id)
            if slot.doctor_id != doctor_id:
                raise ValidationError(
                    "Schedule slot belongs to another doctor", slot_id=slot_id, doctor_id=doctor_id
                )
            reservation_date = self._resolve_reservation_date(slot, when)
            self._validate_booking_date(slot, reservation_date)

            reservation = self._new_reservation(
                slot,
                patient_id,
                reservation_date,
                status=ReservationStatus.PENDING,
                examination_status=ExaminationStatus.NOT_STARTED,
                complaint=complaint,
            )
            self.repo.record_event(
                self.db,
                reservation,
                EventType.BOOKED,
                at=self.clock(),
                detail=f"queue #{reservation.queue_number}",
            )
            return reservation

        reservation = run_atomic(self.db, work, label=f"book slot {slot_id}")
        logger.info(
            f"✅ Reservation {reservation.id} booked: patient {patient_id}, "
            f"doctor {doctor_id}, queue #{reservation.queue_number}"
        )
        return reservation

    def register_walk_in(
        self,
        patient_id: int,
        doctor_id: int,
        slot_id: int,
        notes: Optional[str] = None,
        emergency_override: bool = False,
        override_reason: Optional[str] = None,
    ) -> Reservation:
        """
        Register a patient standing at reception for today's session.

        The patient is present, so the reservation starts Confirmed / Waiting.
        An emergency override needs a reason; it flags the reservation as
        priority and lets it past the slot's capacity.
        """
        override = CapacityOverride(override_reason) if emergency_override else None

        def work() -> Reservation:
            self.directory.ensure_patient_eligible(patient_id)
            slot = self._slot(slot_id)
            if slot.doctor_id != doctor_id:
                raise ValidationError(
                    "Schedule slot belongs to another doctor", slot_id=slot_id, doctor_id=doctor_id
                )
            now = self.clock()
            if day_of_week(now) != slot.day_of_week:
                raise InvalidDate(
                    "The doctor has no session today", date=now.date(), day_of_week=slot.day_of_week
                )

            reservation = self._new_reservation(
                slot,
                patient_id,
                now,
                override=override,
                status=ReservationStatus.CONFIRMED,
                examination_status=ExaminationStatus.WAITING,
                complaint=notes,
                checked_in_at=now,
            )
            self.repo.record_event(
                self.db,
                reservation,
                EventType.WALK_IN,
                at=now,
                detail=f"queue #{reservation.queue_number}",
            )
            if override:
                self.priority.mark(reservation, override.reason)
            return reservation

        reservation = run_atomic(self.db, work, label=f"walk-in slot {slot_id}")
        logger.info(
            f"✅ Walk-in {reservation.id} registered: patient {patient_id}, "
            f"queue #{reservation.queue_number}{' (emergency)' if override else ''}"
        )
        return reservation

    def confirm(self, reservation_id: int) -> Reservation:
        def work() -> Reservation:
            reservation = self._reservation(reservation_id)
            ensure_status_transition(reservation.status, ReservationStatus.CONFIRMED)
            from_status = reservation.status
            reservation.status = ReservationStatus.CONFIRMED
            self.db.flush()
            self.repo.record_event(
                self.db, reservation, EventType.CONFIRMED, at=self.clock(), from_status=from_status
            )
            return reservation

        reservation = run_atomic(self.db, work, label=f"confirm {reservation_id}")
        logger.info(f"✅ Reservation {reservation_id} confirmed")
        return reservation

    def reschedule(
        self, reservation_id: int, new_slot_id: int, when: Union[date, datetime]
    ) -> RescheduleResult:
        """
        Move a visit to another slot/date: a new reservation with a fresh queue
        number replaces the old one, which is cancelled as "Rescheduled".
        """

        def work() -> RescheduleResult:
            old = self._reservation(reservation_id)
            if old.status in TERMINAL_STATUSES:
                raise InvalidTransition(
                    f"A {old.status.value.lower()} reservation cannot be rescheduled",
                    reservation_id=reservation_id,
                    status=old.status.value,
                )
            if old.exam_status in RESCHEDULE_BLOCKED:
                raise InvalidTransition(
                    f"Cannot reschedule a visit that is {old.exam_status.value}",
                    reservation_id=reservation_id,
                    examination_status=old.exam_status.value,
                )

            slot = self._slot(new_slot_id)
            reservation_date = self._resolve_reservation_date(slot, when)
            self._validate_booking_date(slot, reservation_date)

            # Both daily rows are locked in key order before either counter moves
            keys = sorted(
                {
                    (old.schedule_slot_id, old.service_date),
                    (slot.id, reservation_date.date()),
                }
            )
            for key_slot_id, key_date in keys:
                self.tracker.get_or_create(key_slot_id, key_date, lock=True)

            old_number = old.queue_number
            self._cancel(old, RESCHEDULED_REASON, EventType.RESCHEDULED)

            new = self._new_reservation(
                slot,
                old.patient_id,
                reservation_date,
                status=ReservationStatus.PENDING,
                examination_status=ExaminationStatus.NOT_STARTED,
                complaint=old.complaint,
                rescheduled_from_id=old.id,
            )
            self.repo.record_event(
                self.db,
                new,
                EventType.BOOKED,
                at=self.clock(),
                detail=f"queue #{new.queue_number}, rescheduled from #{old.id} (queue #{old_number})",
            )
            if old.is_priority:
                self.priority.mark(new, old.priority_reason)
            return RescheduleResult(superseded=old, reservation=new)

        result = run_atomic(self.db, work, label=f"reschedule {reservation_id}")
        logger.info(
            f"🔁 Reservation {reservation_id} rescheduled as {result.reservation.id}, "
            f"queue #{result.reservation.queue_number}"
        )
        return result

    # ------------------------------------------------------------------
    # Visit progress
    # ------------------------------------------------------------------

    def check_in(self, reservation_id: int) -> Reservation:
        """Put a booked patient into the waiting queue"""

        def work() -> Reservation:
            reservation = self._reservation(reservation_id)
            if reservation.status not in ACTIVE_STATUSES:
                raise InvalidTransition(
                    f"A {reservation.status.value.lower()} reservation cannot be checked in",
                    reservation_id=reservation_id,
                    status=reservation.status.value,
                )
            if reservation.exam_status != ExaminationStatus.NOT_STARTED:
                raise AlreadyCheckedIn(
                    "Patient has already checked in",
                    reservation_id=reservation_id,
                    examination_status=reservation.exam_status.value,
                )

            now = self.clock()
            policy = self._policy()
            if policy.enable_strict_check_in:
                session = reservation.slot.session
                window = check_in_window(
                    reservation.reservation_date, session.start_time, session.end_time, policy
                )
                if now < window.starts_at:
                    raise CheckInWindowClosed(
                        "Check-in is not open yet for this appointment",
                        window_starts_at=window.starts_at,
                        window_ends_at=window.ends_at,
                    )
                if now > window.ends_at:
                    raise CheckInWindowClosed(
                        "Check-in window has closed for this appointment",
                        window_starts_at=window.starts_at,
                        window_ends_at=window.ends_at,
                    )

            from_status = reservation.status
            from_exam = reservation.exam_status
            reservation.status = ReservationStatus.CONFIRMED
            reservation.examination_status = ExaminationStatus.WAITING
            reservation.checked_in_at = now
            reservation.cancellation_reason = None
            self.db.flush()
            self.repo.record_event(
                self.db,
                reservation,
                EventType.CHECKED_IN,
                at=now,
                from_status=from_status,
                from_examination_status=from_exam,
            )
            return reservation

        reservation = run_atomic(self.db, work, label=f"check-in {reservation_id}")
        logger.info(f"✅ Reservation {reservation_id} checked in, queue #{reservation.queue_number}")
        return reservation

    def update_examination_status(
        self, reservation_id: int, new_status: Union[str, ExaminationStatus]
    ) -> Reservation:
        """
        Staff-driven examination transition (also used by the payment desk to
        move Waiting for Payment -> Completed).

        Raises:
            InvalidTransition: edge not allowed, e.g. Waiting -> Completed
        """
        target = parse_examination_status(new_status)

        def work() -> Reservation:
            reservation = self._reservation(reservation_id)
            if reservation.status in TERMINAL_STATUSES:
                raise InvalidTransition(
                    f"A {reservation.status.value.lower()} reservation cannot change examination status",
                    reservation_id=reservation_id,
                    status=reservation.status.value,
                )
            ensure_examination_transition(reservation.exam_status, target, staff=True)

            if target == ExaminationStatus.CANCELLED:
                return self._cancel(reservation, STAFF_CANCEL_REASON)

            from_status = reservation.status
            from_exam = reservation.exam_status
            now = self.clock()

            if target == ExaminationStatus.IN_PROGRESS:
                if reservation.status != ReservationStatus.CONFIRMED:
                    ensure_status_transition(reservation.status, ReservationStatus.CONFIRMED)
                    reservation.status = ReservationStatus.CONFIRMED
                reservation.started_at = now
            elif target == ExaminationStatus.COMPLETED:
                ensure_status_transition(reservation.status, ReservationStatus.COMPLETED)
                reservation.status = ReservationStatus.COMPLETED
                reservation.completed_at = now

            reservation.examination_status = target
            self.db.flush()
            self.repo.record_event(
                self.db,
                reservation,
                EventType.EXAMINATION_UPDATED,
                at=now,
                from_status=from_status,
                from_examination_status=from_exam,
            )
            return reservation

        reservation = run_atomic(self.db, work, label=f"examination status {reservation_id}")
        logger.info(f"✅ Reservation {reservation_id} examination status -> {target.value}")
        return reservation

    def cancel(self, reservation_id: int, reason: Optional[str] = None) -> Reservation:
        """Cancel a Pending/Confirmed reservation; its queue number is not reused"""
        reason = (reason or "").strip() or "Cancelled"

        def work() -> Reservation:
            reservation = self._reservation(reservation_id)
            return self._cancel(reservation, reason)

        reservation = run_atomic(self.db, work, label=f"cancel {reservation_id}")
        logger.info(f"🚫 Reservation {reservation_id} cancelled: {reason}")
        return reservation

    def mark_no_show(self, reservation_id: int) -> Optional[Reservation]:
        """Cancel a reservation whose patient never checked in; None if it moved on meanwhile"""

        def work() -> Optional[Reservation]:
            reservation = self._reservation(reservation_id)
            if (
                reservation.status not in ACTIVE_STATUSES
                or reservation.exam_status != ExaminationStatus.NOT_STARTED
            ):
                return None
            return self._cancel(reservation, NO_SHOW_REASON, EventType.NO_SHOW)

        return run_atomic(self.db, work, label=f"no-show {reservation_id}")
