"""Clinic settings repository - Database operations for the single settings row"""

from typing import Optional

from sqlalchemy.orm import Session

from ...config import CLINIC_NAME
from ...models import ClinicSettings


class ClinicSettingsRepository:
    """Repository for clinic settings database operations"""

    @staticmethod
    def get(db: Session) -> Optional[ClinicSettings]:
        """Get the clinic settings row (lowest id wins if several exist)"""
        return db.query(ClinicSettings).order_by(ClinicSettings.id.asc()).first()

    @staticmethod
    def upsert(db: Session, **values) -> ClinicSettings:
        """Update the settings row, creating it on first save"""
        settings = ClinicSettingsRepository.get(db)
        if settings is None:
            settings = ClinicSettings(clinic_name=CLINIC_NAME)
            db.add(settings)

        for key, value in values.items():
            if value is not None and hasattr(settings, key):
                setattr(settings, key, value)

        db.commit()
        db.refresh(settings)
        return settings
