"""Reservation schemas - Pydantic models for validation"""

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel


class BookingRequest(BaseModel):
    patientId: int
    doctorId: int
    scheduleId: int
    appointmentDate: date
    appointmentTime: Optional[time] = None  # defaults to the session start
    complaint: Optional[str] = None


class RescheduleRequest(BaseModel):
    scheduleId: int
    appointmentDate: date
    appointmentTime: Optional[time] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class ReservationResponse(BaseModel):
    id: int
    patientId: int
    doctorId: int
    scheduleId: int
    reservationDate: datetime
    queueNumber: Optional[int] = None
    status: str
    examinationStatus: str
    complaint: Optional[str] = None
    isPriority: bool
    priorityReason: Optional[str] = None
    cancellationReason: Optional[str] = None
    capacityOverride: bool = False
    overrideReason: Optional[str] = None
    rescheduledFromId: Optional[int] = None
    checkedInAt: Optional[datetime] = None
    startedAt: Optional[datetime] = None
    completedAt: Optional[datetime] = None
    cancelledAt: Optional[datetime] = None


class RescheduleResponse(BaseModel):
    superseded: ReservationResponse
    reservation: ReservationResponse
    queueNumber: int


class ReservationEventResponse(BaseModel):
    id: int
    eventType: str
    fromStatus: Optional[str] = None
    toStatus: Optional[str] = None
    fromExaminationStatus: Optional[str] = None
    toExaminationStatus: Optional[str] = None
    detail: Optional[str] = None
    at: datetime

    class Config:
        from_attributes = True


class SessionSlotResponse(BaseModel):
    scheduleId: int
    sessionId: int
    sessionName: str
    startTime: time
    endTime: time
    maxPatients: int
    currentReservations: int
    remaining: int
    isActive: bool
    hasCapacity: bool
    times: list[str]
