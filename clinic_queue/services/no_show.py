"""
Automated no-show cancellation.

Booked patients who never checked in are cancelled once their no-show deadline
has passed, releasing their place on the daily capacity. Meant to run from a
cron job (HTTP endpoint or run_no_show_sweep.py).
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..domain.reservations.repository import ReservationRepository
from ..domain.reservations.service import ReservationLifecycle
from ..domain.settings.policy import no_show_deadline
from ..domain.settings.service import ClinicSettingsService
from ..errors import SchedulingError

logger = logging.getLogger(__name__)


def cancel_no_shows(
    db: Session, now: Optional[datetime] = None, clock: Callable[[], datetime] = datetime.now
) -> dict:
    """
    Cancel reservations whose patients missed the check-in deadline

    Returns:
        dict: Summary of the sweep, or {"skipped": True, ...} when auto-cancel is off
    """
    now = now or clock()
    policy = ClinicSettingsService(db).get_policy()

    if not policy.enable_auto_cancel:
        db.rollback()
        logger.debug("ℹ️ Auto-cancel is disabled in clinic settings")
        return {"skipped": True, "message": "Auto-cancel is disabled in clinic settings"}

    summary = {
        "skipped": False,
        "processed": 0,
        "cancelled": 0,
        "cancelled_ids": [],
        "now": now.isoformat(),
    }

    try:
        candidates = ReservationRepository.no_show_candidates(db, now)
        overdue = [
            reservation.id
            for reservation, session in candidates
            if now > no_show_deadline(
                reservation.reservation_date, session.start_time, session.end_time, policy
            )
        ]
        summary["processed"] = len(candidates)
        # Release the read transaction before the per-reservation writes
        db.rollback()

        lifecycle = ReservationLifecycle(db, clock=lambda: now)
        for reservation_id in overdue:
            try:
                reservation = lifecycle.mark_no_show(reservation_id)
            except SchedulingError as e:
                logger.warning(f"⚠️ No-show cancel skipped for reservation {reservation_id}: {e.message}")
                continue
            if reservation is not None:
                summary["cancelled"] += 1
                summary["cancelled_ids"].append(reservation_id)
                logger.info(f"✅ Reservation {reservation_id} auto-cancelled: NO_SHOW")

        if summary["cancelled"]:
            logger.info(f"📊 No-show sweep summary: {summary}")
        else:
            logger.debug("ℹ️ No overdue reservations to cancel")
        return summary

    except Exception as e:
        logger.error(f"❌ Error running no-show sweep: {str(e)}")
        db.rollback()
        raise
