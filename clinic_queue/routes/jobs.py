"""
Internal job endpoints triggered by an external cron
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from .. import config
from ..database import get_db
from ..services.no_show import cancel_no_shows

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal/jobs", tags=["Jobs"])


def _is_authorized(request: Request, secret: str) -> bool:
    if request.headers.get("authorization") == f"Bearer {secret}":
        return True
    return request.headers.get("x-cron-secret") == secret


def verify_cron_secret(request: Request) -> None:
    """Require CRON_SECRET when configured; refuse to run unguarded in production"""
    secret: Optional[str] = config.CRON_SECRET
    if not secret:
        if config.ENVIRONMENT == "production":
            logger.error("❌ CRON_SECRET is not configured")
            raise HTTPException(status_code=500, detail="CRON_SECRET is not configured")
        return

    if not _is_authorized(request, secret):
        logger.warning("🚫 Unauthorized cron job call")
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route("/auto-cancel", methods=["GET", "POST"])
def run_auto_cancel(
    _: None = Depends(verify_cron_secret), db: Session = Depends(get_db)
):
    """Cancel no-show reservations (run every few minutes from cron)"""
    result = cancel_no_shows(db)
    return {"ok": True, **result}
