"""Clinic settings router - FastAPI endpoints for queue policy"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import ClinicSettingsResponse, ClinicSettingsUpdate
from .service import ClinicSettingsService

router = APIRouter(prefix="/settings", tags=["Settings"])


def get_settings_service(db: Session = Depends(get_db)) -> ClinicSettingsService:
    """Dependency injection for ClinicSettingsService"""
    return ClinicSettingsService(db)


def _to_response(settings: dict) -> ClinicSettingsResponse:
    return ClinicSettingsResponse(
        clinicName=settings["clinic_name"],
        enableStrictCheckIn=settings["enable_strict_check_in"],
        checkInEarlyMinutes=settings["check_in_early_minutes"],
        checkInLateMinutes=settings["check_in_late_minutes"],
        enableAutoCancel=settings["enable_auto_cancel"],
        autoCancelGraceMinutes=settings["auto_cancel_grace_minutes"],
        bookingHorizonDays=settings["booking_horizon_days"],
    )


@router.get("", response_model=ClinicSettingsResponse)
def get_settings(service: ClinicSettingsService = Depends(get_settings_service)):
    """Get the clinic queue policy"""
    return _to_response(service.get_settings())


@router.put("", response_model=ClinicSettingsResponse)
def update_settings(
    data: ClinicSettingsUpdate,
    service: ClinicSettingsService = Depends(get_settings_service),
):
    """Update check-in window, auto-cancel and booking horizon settings"""
    return _to_response(service.update_settings(data))
