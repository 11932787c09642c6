"""Schedule schemas - Pydantic models for validation"""

from datetime import date, time
from typing import Optional

from pydantic import BaseModel


class PracticeSessionCreate(BaseModel):
    name: str
    startTime: time
    endTime: time
    description: Optional[str] = None


class PracticeSessionUpdate(BaseModel):
    name: Optional[str] = None
    startTime: Optional[time] = None
    endTime: Optional[time] = None
    description: Optional[str] = None


class PracticeSessionResponse(BaseModel):
    id: int
    name: str
    startTime: time
    endTime: time
    description: Optional[str] = None


class ScheduleSlotCreate(BaseModel):
    doctorId: int
    sessionId: int
    dayOfWeek: int  # 0 = Sunday ... 6 = Saturday
    maxPatients: int = 30


class ScheduleSlotUpdate(BaseModel):
    maxPatients: Optional[int] = None
    isActive: Optional[bool] = None


class ScheduleSlotResponse(BaseModel):
    id: int
    doctorId: int
    sessionId: int
    sessionName: Optional[str] = None
    startTime: Optional[time] = None
    endTime: Optional[time] = None
    dayOfWeek: int
    maxPatients: int
    isActive: bool


class DailyStatusUpdate(BaseModel):
    isActive: bool
    notes: Optional[str] = None


class DailyCapacityResponse(BaseModel):
    scheduleId: int
    date: date
    isActive: bool
    currentReservations: int
    maxPatients: int
    notes: Optional[str] = None


class DoctorAvailableNowResponse(BaseModel):
    doctorId: int
    doctorName: str
    date: date
    scheduleId: int
    sessionName: str
    startTime: time
    endTime: time
    remaining: int
