"""
Transaction wrapper for multi-step scheduling writes.

Capacity check, queue number allocation and counter increment have to commit
together or not at all. ``run_atomic`` runs one unit of work, commits it, and
retries the whole unit (never a single step) when the store reports a
transient conflict.
"""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .config import ALLOCATION_RETRY_ATTEMPTS, ALLOCATION_RETRY_BASE_DELAY, DB_LOCK_TIMEOUT_MS
from .errors import (
    AllocationTimeout,
    ConcurrentAllocationRetry,
    InvalidTransition,
    PersistenceError,
    SchedulingError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL SQLSTATE codes
SERIALIZATION_FAILURE = "40001"
DEADLOCK_DETECTED = "40P01"
UNIQUE_VIOLATION = "23505"
LOCK_NOT_AVAILABLE = "55P03"


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def classify_db_error(exc: SQLAlchemyError) -> SchedulingError:
    """Map a storage-layer failure onto the scheduling error taxonomy"""
    if isinstance(exc, StaleDataError):
        return InvalidTransition(
            "Reservation was changed by another staff action; reload and try again"
        )

    message = str(getattr(exc, "orig", exc)).lower()
    code = _sqlstate(exc) if isinstance(exc, DBAPIError) else None

    if isinstance(exc, IntegrityError):
        if code == UNIQUE_VIOLATION or "unique constraint" in message:
            return ConcurrentAllocationRetry("Concurrent allocation collided on a unique key")
        return PersistenceError("Storage rejected the write")

    if code in (SERIALIZATION_FAILURE, DEADLOCK_DETECTED):
        return ConcurrentAllocationRetry("Transaction serialization failure")

    if code == LOCK_NOT_AVAILABLE or "database is locked" in message:
        return AllocationTimeout(
            "The schedule is busy with other bookings right now; please try again"
        )

    return PersistenceError("Storage failure while saving the reservation")


def _apply_lock_timeout(db: Session) -> None:
    bind = db.get_bind()
    if bind.dialect.name == "postgresql":
        # SET LOCAL does not take bind parameters
        db.execute(text(f"SET LOCAL lock_timeout = {int(DB_LOCK_TIMEOUT_MS)}"))


def _backoff(attempt: int) -> float:
    base = ALLOCATION_RETRY_BASE_DELAY * (2 ** (attempt - 1))
    return base + random.uniform(0, base)


def run_atomic(
    db: Session,
    work: Callable[[], T],
    *,
    label: str,
    attempts: Optional[int] = None,
) -> T:
    """
    Run ``work`` inside one transaction on ``db`` and commit it.

    Args:
        db: Session owned by the caller; it is committed or rolled back here
        work: Zero-argument callable doing all reads and writes of the unit
        label: Operation name used in log lines
        attempts: Override for ALLOCATION_RETRY_ATTEMPTS

    Returns:
        Whatever ``work`` returned, after a successful commit

    Raises:
        SchedulingError: Domain errors unchanged; storage errors classified.
            ConcurrentAllocationRetry only escapes after the last attempt.
    """
    max_attempts = attempts or ALLOCATION_RETRY_ATTEMPTS

    for attempt in range(1, max_attempts + 1):
        try:
            _apply_lock_timeout(db)
            result = work()
            db.commit()
            return result
        except ConcurrentAllocationRetry as exc:
            db.rollback()
            error = exc
        except SchedulingError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            error = classify_db_error(exc)
            if not isinstance(error, ConcurrentAllocationRetry):
                if isinstance(error, PersistenceError):
                    logger.error(f"❌ {label} failed in storage: {exc}")
                else:
                    logger.warning(f"⚠️ {label} rejected: {error.message}")
                raise error from exc

        if attempt >= max_attempts:
            logger.error(f"❌ {label} gave up after {attempt} attempts: {error.message}")
            raise error

        delay = _backoff(attempt)
        logger.info(f"🔁 {label} conflict on attempt {attempt}/{max_attempts}, retrying in {delay:.3f}s")
        time.sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover
