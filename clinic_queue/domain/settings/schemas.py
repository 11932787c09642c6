"""Clinic settings schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel


class ClinicSettingsUpdate(BaseModel):
    """Partial update; omitted fields keep their current value"""

    clinicName: Optional[str] = None
    enableStrictCheckIn: Optional[bool] = None
    checkInEarlyMinutes: Optional[int] = None
    checkInLateMinutes: Optional[int] = None
    enableAutoCancel: Optional[bool] = None
    autoCancelGraceMinutes: Optional[int] = None
    bookingHorizonDays: Optional[int] = None


class ClinicSettingsResponse(BaseModel):
    clinicName: str
    enableStrictCheckIn: bool
    checkInEarlyMinutes: int
    checkInLateMinutes: int
    enableAutoCancel: bool
    autoCancelGraceMinutes: int
    bookingHorizonDays: int
