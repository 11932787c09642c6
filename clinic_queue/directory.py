"""Patient/doctor directory lookups against the local accounts mirror"""

import logging

from sqlalchemy.orm import Session

from .errors import NotFound, PatientNotEligible
from .models import Account

logger = logging.getLogger(__name__)

PATIENT_ROLE = "Patient"
DOCTOR_ROLE = "Doctor"


class AccountDirectory:
    """Read-only view of the user directory used by booking"""

    def __init__(self, db: Session):
        self.db = db

    def ensure_patient_eligible(self, patient_id: int) -> Account:
        """Raise PatientNotEligible unless the account is an active, verified patient"""
        account = self.db.get(Account, patient_id)
        if account is None or account.role != PATIENT_ROLE:
            logger.warning(f"⚠️ Booking refused: patient {patient_id} not found")
            raise PatientNotEligible("Patient account not found", patient_id=patient_id)
        if not account.is_active:
            logger.warning(f"⚠️ Booking refused: patient {patient_id} is inactive")
            raise PatientNotEligible("Patient account is inactive", patient_id=patient_id)
        if not account.is_verified:
            logger.warning(f"⚠️ Booking refused: patient {patient_id} is not verified")
            raise PatientNotEligible(
                "Patient account has not been verified yet", patient_id=patient_id
            )
        return account

    def ensure_doctor(self, doctor_id: int) -> Account:
        account = self.db.get(Account, doctor_id)
        if account is None or account.role != DOCTOR_ROLE or not account.is_active:
            raise NotFound("Doctor not found", doctor_id=doctor_id)
        return account
