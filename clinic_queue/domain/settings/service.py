"""Clinic settings service - policy lookup with Redis caching"""

import logging

from sqlalchemy.orm import Session

from ...cache import (
    get_clinic_policy_cached,
    invalidate_clinic_policy_cache,
    set_clinic_policy_cached,
)
from ...config import CLINIC_NAME, SETTINGS_CACHE_TTL
from ...models import ClinicSettings
from .policy import QueuePolicy, normalize_queue_policy
from .repository import ClinicSettingsRepository
from .schemas import ClinicSettingsUpdate

logger = logging.getLogger(__name__)

POLICY_FIELDS = (
    "enable_strict_check_in",
    "check_in_early_minutes",
    "check_in_late_minutes",
    "enable_auto_cancel",
    "auto_cancel_grace_minutes",
    "booking_horizon_days",
)


def _row_to_mapping(settings: ClinicSettings) -> dict:
    return {field: getattr(settings, field) for field in POLICY_FIELDS}


class ClinicSettingsService:
    """Service layer for clinic policy"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClinicSettingsRepository()

    def get_policy(self) -> QueuePolicy:
        """Current normalized queue policy; defaults apply until settings are saved"""
        cached = get_clinic_policy_cached()
        if cached is not None:
            return normalize_queue_policy(cached)

        settings = self.repo.get(self.db)
        policy = normalize_queue_policy(_row_to_mapping(settings) if settings else None)
        set_clinic_policy_cached(policy.to_dict(), ttl=SETTINGS_CACHE_TTL)
        return policy

    def get_settings(self) -> dict:
        settings = self.repo.get(self.db)
        policy = self.get_policy()
        return {
            "clinic_name": settings.clinic_name if settings else CLINIC_NAME,
            **policy.to_dict(),
        }

    def update_settings(self, data: ClinicSettingsUpdate) -> dict:
        """Save settings, normalizing minute values before they are stored"""
        current = self.get_policy().to_dict()
        incoming = {
            "enable_strict_check_in": data.enableStrictCheckIn,
            "check_in_early_minutes": data.checkInEarlyMinutes,
            "check_in_late_minutes": data.checkInLateMinutes,
            "enable_auto_cancel": data.enableAutoCancel,
            "auto_cancel_grace_minutes": data.autoCancelGraceMinutes,
            "booking_horizon_days": data.bookingHorizonDays,
        }
        merged = {k: (v if v is not None else current[k]) for k, v in incoming.items()}
        policy = normalize_queue_policy(merged)

        self.repo.upsert(self.db, clinic_name=data.clinicName, **policy.to_dict())
        invalidate_clinic_policy_cache()
        logger.info(f"⚙️ Clinic settings updated: {policy}")
        return self.get_settings()
