"""Queue router - FastAPI endpoints for reception, nurse and doctor queue actions"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...config import BOOKING_RATE_LIMIT, BOOKING_RATE_WINDOW_SECONDS
from ...database import get_db
from ...rate_limiter import create_rate_limiter
from ..reservations.router import get_reservation_lifecycle, to_reservation_response
from ..reservations.schemas import ReservationResponse
from ..reservations.service import ReservationLifecycle
from .priority import PriorityReorderer
from .schemas import (
    CheckInRequest,
    DayQueueResponse,
    DisplayBoardResponse,
    DoctorDayQueue,
    DoctorSessionQueue,
    ExaminationStatusUpdate,
    PaymentQueueItem,
    PriorityUpdate,
    WalkInRequest,
)
from .views import QueueViews

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/queue", tags=["Queue"])

walk_in_rate_limit = create_rate_limiter(
    limit=BOOKING_RATE_LIMIT, window_seconds=BOOKING_RATE_WINDOW_SECONDS, key_prefix="walk_in"
)


def get_queue_views(db: Session = Depends(get_db)) -> QueueViews:
    """Dependency injection for QueueViews"""
    return QueueViews(db)


def get_priority_reorderer(db: Session = Depends(get_db)) -> PriorityReorderer:
    """Dependency injection for PriorityReorderer"""
    return PriorityReorderer(db)


def _day(value: Optional[date]) -> date:
    return value or date.today()


# ============================================================================
# RECEPTION / STAFF ACTIONS
# ============================================================================


@router.post("/walk-in", response_model=ReservationResponse, status_code=201)
def register_walk_in(
    data: WalkInRequest,
    _: None = Depends(walk_in_rate_limit),
    service: ReservationLifecycle = Depends(get_reservation_lifecycle),
):
    """Register a patient at reception for today's session"""
    reservation = service.register_walk_in(
        data.patientId,
        data.doctorId,
        data.scheduleId,
        notes=data.notes,
        emergency_override=data.emergencyOverride,
        override_reason=data.overrideReason,
    )
    return to_reservation_response(reservation)


@router.post("/checkin", response_model=ReservationResponse)
def check_in(
    data: CheckInRequest, service: ReservationLifecycle = Depends(get_reservation_lifecycle)
):
    return to_reservation_response(service.check_in(data.reservationId))


@router.put("/{reservation_id}/status", response_model=ReservationResponse)
def update_examination_status(
    reservation_id: int,
    data: ExaminationStatusUpdate,
    service: ReservationLifecycle = Depends(get_reservation_lifecycle),
):
    """Move the examination forward (start, finish, send to payment, cancel)"""
    return to_reservation_response(service.update_examination_status(reservation_id, data.status))


@router.put("/{reservation_id}/priority", response_model=ReservationResponse)
def update_priority(
    reservation_id: int,
    data: PriorityUpdate,
    service: PriorityReorderer = Depends(get_priority_reorderer),
):
    if data.isPriority:
        reservation = service.set_priority(reservation_id, data.priorityReason)
    else:
        reservation = service.clear_priority(reservation_id)
    return to_reservation_response(reservation)


# ============================================================================
# QUEUE VIEWS
# ============================================================================


@router.get("/doctor/{doctor_id}", response_model=list[ReservationResponse])
def get_doctor_queue(
    doctor_id: int,
    date: Optional[date] = Query(None),
    active_only: bool = Query(True),
    views: QueueViews = Depends(get_queue_views),
):
    """A doctor's worklist for the day, priority patients first"""
    return [
        to_reservation_response(r)
        for r in views.current_queue(doctor_id, _day(date), active_only=active_only)
    ]


@router.get("/date", response_model=DayQueueResponse)
def get_day_queue(date: Optional[date] = Query(None), views: QueueViews = Depends(get_queue_views)):
    """Reception list for a day: all booked and checked-in visits per doctor"""
    day = _day(date)
    return DayQueueResponse(
        date=day,
        doctorQueues=[
            DoctorDayQueue(
                doctorId=g["doctor_id"],
                doctorName=g["doctor_name"],
                queues=[to_reservation_response(r) for r in g["queues"]],
            )
            for g in views.day_queue(day)
        ],
    )


@router.get("/display", response_model=DisplayBoardResponse)
def get_display_board(
    date: Optional[date] = Query(None), views: QueueViews = Depends(get_queue_views)
):
    """Waiting room display: who is waiting / being examined per doctor and session"""
    board = views.display_board(_day(date))
    return DisplayBoardResponse(
        doctorQueues=[
            DoctorSessionQueue(
                doctorId=g["doctor_id"],
                doctorName=g["doctor_name"],
                sessionId=g["session_id"],
                sessionName=g["session_name"],
                startTime=g["session_start"],
                queues=[to_reservation_response(r) for r in g["queues"]],
            )
            for g in board["doctor_queues"]
        ],
        paymentQueue=[
            PaymentQueueItem(
                reservationId=item["reservation"].id,
                queueNumber=item["reservation"].queue_number,
                doctorName=item["doctor_name"],
                isPriority=item["reservation"].is_priority,
            )
            for item in board["payment_queue"]
        ],
    )


@router.get("/emergency", response_model=list[ReservationResponse])
def get_emergency_cases(
    date: Optional[date] = Query(None), views: QueueViews = Depends(get_queue_views)
):
    return [to_reservation_response(r) for r in views.priority_cases(_day(date))]


@router.get("/awaiting-payment", response_model=list[ReservationResponse])
def get_awaiting_payment(
    date: Optional[date] = Query(None),
    service: ReservationLifecycle = Depends(get_reservation_lifecycle),
):
    """Examinations finished and waiting on the payment desk"""
    return [to_reservation_response(r) for r in service.awaiting_payment(_day(date))]
