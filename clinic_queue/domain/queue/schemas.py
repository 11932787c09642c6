"""Queue schemas - Pydantic models for walk-in, check-in and queue views"""

from datetime import date, time
from typing import Optional

from pydantic import BaseModel

from ..reservations.schemas import ReservationResponse


class WalkInRequest(BaseModel):
    patientId: int
    doctorId: int
    scheduleId: int
    notes: Optional[str] = None
    emergencyOverride: bool = False
    overrideReason: Optional[str] = None


class CheckInRequest(BaseModel):
    reservationId: int


class ExaminationStatusUpdate(BaseModel):
    status: str


class PriorityUpdate(BaseModel):
    isPriority: bool
    priorityReason: Optional[str] = None


class DoctorSessionQueue(BaseModel):
    doctorId: int
    doctorName: str
    sessionId: int
    sessionName: str
    startTime: time
    queues: list[ReservationResponse]


class PaymentQueueItem(BaseModel):
    reservationId: int
    queueNumber: Optional[int] = None
    doctorName: str
    isPriority: bool


class DisplayBoardResponse(BaseModel):
    doctorQueues: list[DoctorSessionQueue]
    paymentQueue: list[PaymentQueueItem]


class DoctorDayQueue(BaseModel):
    doctorId: int
    doctorName: str
    queues: list[ReservationResponse]


class DayQueueResponse(BaseModel):
    date: date
    doctorQueues: list[DoctorDayQueue]
