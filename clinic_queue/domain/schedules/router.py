"""Schedule router - FastAPI endpoints for practice sessions and weekly slots"""

import logging
from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import PracticeSession, ScheduleSlot
from ..capacity.availability import doctors_available_now
from ..capacity.tracker import DailyCapacityTracker
from .schemas import (
    DailyCapacityResponse,
    DailyStatusUpdate,
    DoctorAvailableNowResponse,
    PracticeSessionCreate,
    PracticeSessionResponse,
    PracticeSessionUpdate,
    ScheduleSlotCreate,
    ScheduleSlotResponse,
    ScheduleSlotUpdate,
)
from .service import ScheduleCatalog

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["Schedules"])
sessions_router = APIRouter(prefix="/sessions", tags=["Schedules"])
doctors_router = APIRouter(prefix="/doctors", tags=["Schedules"])


def get_schedule_catalog(db: Session = Depends(get_db)) -> ScheduleCatalog:
    """Dependency injection for ScheduleCatalog"""
    return ScheduleCatalog(db)


def to_slot_response(slot: ScheduleSlot) -> ScheduleSlotResponse:
    session = slot.session
    return ScheduleSlotResponse(
        id=slot.id,
        doctorId=slot.doctor_id,
        sessionId=slot.session_id,
        sessionName=session.name if session else None,
        startTime=session.start_time if session else None,
        endTime=session.end_time if session else None,
        dayOfWeek=slot.day_of_week,
        maxPatients=slot.max_patients,
        isActive=slot.is_active,
    )


# ============================================================================
# PRACTICE SESSIONS
# ============================================================================


def to_session_response(s: PracticeSession) -> PracticeSessionResponse:
    return PracticeSessionResponse(
        id=s.id, name=s.name, startTime=s.start_time, endTime=s.end_time, description=s.description
    )


@sessions_router.get("", response_model=list[PracticeSessionResponse])
def list_sessions(catalog: ScheduleCatalog = Depends(get_schedule_catalog)):
    return [to_session_response(s) for s in catalog.list_sessions()]


@sessions_router.post("", response_model=PracticeSessionResponse, status_code=201)
def create_session(
    data: PracticeSessionCreate, catalog: ScheduleCatalog = Depends(get_schedule_catalog)
):
    s = catalog.create_session(data.name, data.startTime, data.endTime, data.description)
    return to_session_response(s)


@sessions_router.get("/{session_id}", response_model=PracticeSessionResponse)
def get_session(session_id: int, catalog: ScheduleCatalog = Depends(get_schedule_catalog)):
    return to_session_response(catalog.get_session(session_id))


@sessions_router.put("/{session_id}", response_model=PracticeSessionResponse)
def update_session(
    session_id: int,
    data: PracticeSessionUpdate,
    catalog: ScheduleCatalog = Depends(get_schedule_catalog),
):
    s = catalog.update_session(
        session_id,
        name=data.name,
        start_time=data.startTime,
        end_time=data.endTime,
        description=data.description,
    )
    return to_session_response(s)


@sessions_router.delete("/{session_id}")
def delete_session(session_id: int, catalog: ScheduleCatalog = Depends(get_schedule_catalog)):
    """Soft delete; slots on the session stop being offered"""
    catalog.delete_session(session_id)
    return {"message": "Session deleted successfully"}


# ============================================================================
# DOCTORS ON DUTY
# ============================================================================


@doctors_router.get("/available-now", response_model=list[DoctorAvailableNowResponse])
def list_doctors_available_now(db: Session = Depends(get_db)):
    """Doctors whose practice session is running right now and still has room"""
    return [
        DoctorAvailableNowResponse(
            doctorId=entry.doctor_id,
            doctorName=entry.doctor_name,
            date=entry.service_date,
            scheduleId=entry.session.slot_id,
            sessionName=entry.session.session_name,
            startTime=entry.session.start_time,
            endTime=entry.session.end_time,
            remaining=entry.session.remaining,
        )
        for entry in doctors_available_now(db, datetime.now())
    ]


# ============================================================================
# WEEKLY SLOTS
# ============================================================================


@router.get("", response_model=list[ScheduleSlotResponse])
def list_slots(
    doctor_id: Optional[int] = Query(None),
    catalog: ScheduleCatalog = Depends(get_schedule_catalog),
):
    """Active slots, optionally for one doctor, ordered by day then session start"""
    slots = catalog.list_slots_for_doctor(doctor_id) if doctor_id is not None else catalog.list_slots()
    return [to_slot_response(slot) for slot in slots]


@router.post("", response_model=ScheduleSlotResponse, status_code=201)
def create_slot(
    data: ScheduleSlotCreate, catalog: ScheduleCatalog = Depends(get_schedule_catalog)
):
    slot = catalog.create_slot(data.doctorId, data.sessionId, data.dayOfWeek, data.maxPatients)
    return to_slot_response(catalog.get_slot(slot.id))


@router.patch("/{slot_id}", response_model=ScheduleSlotResponse)
def update_slot(
    slot_id: int,
    data: ScheduleSlotUpdate,
    catalog: ScheduleCatalog = Depends(get_schedule_catalog),
):
    slot = catalog.get_slot(slot_id)
    if data.maxPatients is not None:
        slot = catalog.update_capacity(slot_id, data.maxPatients)
    if data.isActive is not None and data.isActive != slot.is_active:
        slot = catalog.reactivate_slot(slot_id) if data.isActive else catalog.deactivate_slot(slot_id)
    return to_slot_response(slot)


@router.post("/{slot_id}/deactivate", response_model=ScheduleSlotResponse)
def deactivate_slot(slot_id: int, catalog: ScheduleCatalog = Depends(get_schedule_catalog)):
    return to_slot_response(catalog.deactivate_slot(slot_id))


@router.post("/{slot_id}/activate", response_model=ScheduleSlotResponse)
def activate_slot(slot_id: int, catalog: ScheduleCatalog = Depends(get_schedule_catalog)):
    return to_slot_response(catalog.reactivate_slot(slot_id))


@router.delete("/{slot_id}")
def delete_slot(slot_id: int, catalog: ScheduleCatalog = Depends(get_schedule_catalog)):
    """Soft delete; past reservations keep pointing at the slot"""
    catalog.delete_slot(slot_id)
    return {"message": "Schedule deleted successfully"}


@router.patch("/{slot_id}/days/{service_date}", response_model=DailyCapacityResponse)
def set_daily_status(
    slot_id: int,
    service_date: date,
    data: DailyStatusUpdate,
    db: Session = Depends(get_db),
):
    """Close or reopen one date of a slot, e.g. the doctor is out sick"""
    tracker = DailyCapacityTracker(db)
    capacity = tracker.set_daily_status(slot_id, service_date, data.isActive, data.notes)
    return DailyCapacityResponse(
        scheduleId=slot_id,
        date=capacity.date,
        isActive=capacity.is_active,
        currentReservations=capacity.current_reservations,
        maxPatients=capacity.slot.max_patients,
        notes=capacity.notes,
    )
