"""Reservation router - FastAPI endpoints for booking and the reservation lifecycle"""

import logging
from datetime import date, datetime, time
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...config import BOOKING_RATE_LIMIT, BOOKING_RATE_WINDOW_SECONDS
from ...database import get_db
from ...models import Reservation
from ...rate_limiter import create_rate_limiter
from ..capacity.availability import available_sessions
from .schemas import (
    BookingRequest,
    CancelRequest,
    RescheduleRequest,
    RescheduleResponse,
    ReservationEventResponse,
    ReservationResponse,
    SessionSlotResponse,
)
from .service import ReservationLifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])
patients_router = APIRouter(prefix="/patients", tags=["Appointments"])

booking_rate_limit = create_rate_limiter(
    limit=BOOKING_RATE_LIMIT, window_seconds=BOOKING_RATE_WINDOW_SECONDS, key_prefix="booking"
)


def get_reservation_lifecycle(db: Session = Depends(get_db)) -> ReservationLifecycle:
    """Dependency injection for ReservationLifecycle"""
    return ReservationLifecycle(db)


def appointment_moment(day: date, at: Optional[time]):
    return datetime.combine(day, at) if at else day


def to_reservation_response(r: Reservation) -> ReservationResponse:
    return ReservationResponse(
        id=r.id,
        patientId=r.patient_id,
        doctorId=r.doctor_id,
        scheduleId=r.schedule_slot_id,
        reservationDate=r.reservation_date,
        queueNumber=r.queue_number,
        status=r.status.value,
        examinationStatus=r.exam_status.value,
        complaint=r.complaint,
        isPriority=r.is_priority,
        priorityReason=r.priority_reason,
        cancellationReason=r.cancellation_reason,
        capacityOverride=r.capacity_override,
        overrideReason=r.override_reason,
        rescheduledFromId=r.rescheduled_from_id,
        checkedInAt=r.checked_in_at,
        startedAt=r.started_at,
        completedAt=r.completed_at,
        cancelledAt=r.cancelled_at,
    )


@router.get("/slots", response_model=list[SessionSlotResponse])
def get_available_slots(
    doctor_id: int = Query(...),
    date: date = Query(...),
    include_full: bool = Query(False),
    db: Session = Depends(get_db),
):
    """Sessions of a doctor on a date that still have room"""
    return [
        SessionSlotResponse(
            scheduleId=s.slot_id,
            sessionId=s.session_id,
            sessionName=s.session_name,
            startTime=s.start_time,
            endTime=s.end_time,
            maxPatients=s.max_patients,
            currentReservations=s.current_reservations,
            remaining=s.remaining,
            isActive=s.is_active,
            hasCapacity=s.has_capacity,
            times=s.times,
        )
        for s in available_sessions(db, doctor_id, date, include_full=include_full)
    ]


@router.post("/book", response_model=ReservationResponse, status_code=201)
def book_appointment(
    data: BookingRequest,
    _: None = Depends(booking_rate_limit),
    service: ReservationLifecycle = Depends(get_reservation_lifecycle),
):
    """Book a scheduled appointment and receive a queue number"""
    reservation = service.book(
        data.patientId,
        data.doctorId,
        data.scheduleId,
        appointment_moment(data.appointmentDate, data.appointmentTime),
        data.complaint,
    )
    return to_reservation_response(reservation)


@router.get("/{reservation_id}", response_model=ReservationResponse)
def get_appointment(
    reservation_id: int, service: ReservationLifecycle = Depends(get_reservation_lifecycle)
):
    return to_reservation_response(service.get(reservation_id))


@router.get("/{reservation_id}/history", response_model=list[ReservationEventResponse])
def get_appointment_history(
    reservation_id: int, service: ReservationLifecycle = Depends(get_reservation_lifecycle)
):
    """Audit trail of status, priority and override changes"""
    return [
        ReservationEventResponse(
            id=e.id,
            eventType=e.event_type.value,
            fromStatus=e.from_status,
            toStatus=e.to_status,
            fromExaminationStatus=e.from_examination_status,
            toExaminationStatus=e.to_examination_status,
            detail=e.detail,
            at=e.at,
        )
        for e in service.history(reservation_id)
    ]


@router.post("/{reservation_id}/confirm", response_model=ReservationResponse)
def confirm_appointment(
    reservation_id: int, service: ReservationLifecycle = Depends(get_reservation_lifecycle)
):
    return to_reservation_response(service.confirm(reservation_id))


@router.post("/{reservation_id}/reschedule", response_model=RescheduleResponse)
def reschedule_appointment(
    reservation_id: int,
    data: RescheduleRequest,
    service: ReservationLifecycle = Depends(get_reservation_lifecycle),
):
    """Move to another slot/date; the old reservation is cancelled as Rescheduled"""
    result = service.reschedule(
        reservation_id,
        data.scheduleId,
        appointment_moment(data.appointmentDate, data.appointmentTime),
    )
    return RescheduleResponse(
        superseded=to_reservation_response(result.superseded),
        reservation=to_reservation_response(result.reservation),
        queueNumber=result.reservation.queue_number,
    )


@router.post("/{reservation_id}/cancel", response_model=ReservationResponse)
def cancel_appointment(
    reservation_id: int,
    data: Optional[CancelRequest] = None,
    service: ReservationLifecycle = Depends(get_reservation_lifecycle),
):
    reason = data.reason if data else None
    return to_reservation_response(service.cancel(reservation_id, reason))


# ============================================================================
# PATIENT VIEWS
# ============================================================================


@patients_router.get("/{patient_id}/appointments", response_model=list[ReservationResponse])
def list_patient_appointments(
    patient_id: int, service: ReservationLifecycle = Depends(get_reservation_lifecycle)
):
    """Every reservation of the patient, most recent first"""
    return [to_reservation_response(r) for r in service.patient_appointments(patient_id)]


@patients_router.get("/{patient_id}/today-appointment", response_model=Optional[ReservationResponse])
def get_today_appointment(
    patient_id: int, service: ReservationLifecycle = Depends(get_reservation_lifecycle)
):
    """Today's visit of the patient, or null when there is none"""
    reservation = service.today_appointment(patient_id)
    return to_reservation_response(reservation) if reservation else None
