import logging
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from clinic_queue import transactions
from clinic_queue.config import ALLOCATION_RETRY_ATTEMPTS
from clinic_queue.errors import (
    AllocationTimeout,
    ConcurrentAllocationRetry,
    InvalidTransition,
    NotFound,
    PersistenceError,
)
from clinic_queue.models import Account
from clinic_queue.transactions import classify_db_error, run_atomic


class PgError(Exception):
    """Driver error carrying a PostgreSQL SQLSTATE, like psycopg2's"""

    def __init__(self, message, pgcode):
        super().__init__(message)
        self.pgcode = pgcode


class CountingWork:
    """Unit of work failing with the given errors, in order, before it succeeds"""

    def __init__(self, db, *failures):
        self.db = db
        self.failures = list(failures)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        self.db.add(Account(id=900, full_name="Committed", role="Patient"))
        return "done"


@pytest.fixture
def sleeps(monkeypatch):
    delays = []
    monkeypatch.setattr(transactions, "time", SimpleNamespace(sleep=delays.append))
    return delays


def test_retries_conflicts_then_commits(db, session_factory, sleeps):
    work = CountingWork(
        db,
        ConcurrentAllocationRetry("collision"),
        ConcurrentAllocationRetry("collision"),
    )

    assert run_atomic(db, work, label="book") == "done"

    assert work.calls == 3
    assert len(sleeps) == 2
    other = session_factory()
    try:
        assert other.get(Account, 900).full_name == "Committed"
    finally:
        other.close()


def test_conflict_escapes_after_last_attempt(db, sleeps, caplog):
    work = CountingWork(db, *[ConcurrentAllocationRetry("collision")] * (ALLOCATION_RETRY_ATTEMPTS + 1))

    with caplog.at_level(logging.ERROR, logger="clinic_queue.transactions"):
        with pytest.raises(ConcurrentAllocationRetry):
            run_atomic(db, work, label="book")

    assert work.calls == ALLOCATION_RETRY_ATTEMPTS
    assert len(sleeps) == ALLOCATION_RETRY_ATTEMPTS - 1
    assert "gave up" in caplog.text


def test_attempts_override_disables_retry(db, sleeps):
    work = CountingWork(db, ConcurrentAllocationRetry("collision"))

    with pytest.raises(ConcurrentAllocationRetry):
        run_atomic(db, work, label="set priority", attempts=1)

    assert work.calls == 1
    assert sleeps == []


def test_unique_violation_from_storage_is_retried(db, sleeps):
    work = CountingWork(db, IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: queue_counters")))

    assert run_atomic(db, work, label="book") == "done"
    assert work.calls == 2


def test_locked_database_becomes_timeout_without_retry(db, sleeps):
    work = CountingWork(db, OperationalError("SELECT 1", {}, Exception("database is locked")))

    with pytest.raises(AllocationTimeout):
        run_atomic(db, work, label="book")

    assert work.calls == 1
    assert sleeps == []


def test_storage_failure_is_logged_and_not_retried(db, sleeps, caplog):
    work = CountingWork(db, DBAPIError("INSERT", {}, Exception("disk I/O error")))

    with caplog.at_level(logging.ERROR, logger="clinic_queue.transactions"):
        with pytest.raises(PersistenceError) as exc:
            run_atomic(db, work, label="book slot 3")

    assert work.calls == 1
    assert isinstance(exc.value.__cause__, DBAPIError)
    assert "book slot 3 failed in storage" in caplog.text


def test_stale_row_becomes_invalid_transition(db, sleeps):
    work = CountingWork(db, StaleDataError("UPDATE statement on table 'reservations' expected 1 row"))

    with pytest.raises(InvalidTransition):
        run_atomic(db, work, label="check in 5")

    assert work.calls == 1


def test_domain_errors_pass_through_unchanged(db, sleeps):
    work = CountingWork(db, NotFound("Reservation not found", reservation_id=5))

    with pytest.raises(NotFound) as exc:
        run_atomic(db, work, label="cancel 5")

    assert exc.value.context == {"reservation_id": 5}
    assert work.calls == 1
    assert db.get(Account, 900) is None


@pytest.mark.parametrize(
    "error, expected",
    [
        (DBAPIError("UPDATE", {}, PgError("could not serialize access", "40001")), ConcurrentAllocationRetry),
        (DBAPIError("UPDATE", {}, PgError("deadlock detected", "40P01")), ConcurrentAllocationRetry),
        (IntegrityError("INSERT", {}, PgError("duplicate key value", "23505")), ConcurrentAllocationRetry),
        (DBAPIError("SELECT", {}, PgError("could not obtain lock", "55P03")), AllocationTimeout),
        (IntegrityError("INSERT", {}, PgError("null value in column", "23502")), PersistenceError),
        (OperationalError("SELECT", {}, Exception("database is locked")), AllocationTimeout),
        (DBAPIError("SELECT", {}, Exception("connection reset")), PersistenceError),
        (StaleDataError("expected 1 row"), InvalidTransition),
    ],
)
def test_classify_db_error(error, expected):
    assert type(classify_db_error(error)) is expected
