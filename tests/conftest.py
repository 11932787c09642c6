import os
import tempfile
from datetime import datetime, time
from pathlib import Path
from types import SimpleNamespace

import pytest

# Configure the app before clinic_queue is imported
_TEST_DIR = Path(tempfile.mkdtemp(prefix="clinic_queue_tests_"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'app.db'}"
os.environ["BOOKING_RATE_LIMIT"] = "1000"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["SQLITE_BUSY_TIMEOUT_SECONDS"] = "30"
os.environ["ALLOCATION_RETRY_BASE_DELAY"] = "0.01"
os.environ.pop("REDIS_URL", None)
os.environ.pop("REDIS_HOST", None)
os.environ.pop("CRON_SECRET", None)

from sqlalchemy.orm import sessionmaker  # noqa: E402

from clinic_queue.database import Base, build_engine  # noqa: E402
from clinic_queue.models import Account, PracticeSession  # noqa: E402
from tests.helpers import FixedClock, add_slot  # noqa: E402

DOCTOR_ID = 7
OTHER_DOCTOR_ID = 8
MONDAY = datetime(2025, 6, 2).date()  # day_of_week 1


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'clinic.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    # Monday 2025-06-02, 09:00
    return FixedClock(datetime(2025, 6, 2, 9, 0))


@pytest.fixture
def clinic(db):
    """
    Doctor 7 with a Monday morning slot (max 1) and a Monday evening slot (max 5),
    doctor 8 with a Monday morning slot, and a handful of patient accounts.
    Only ids are returned so no test session keeps a transaction open.
    """
    db.add_all(
        [
            Account(id=DOCTOR_ID, full_name="dr. Sari", role="Doctor", is_active=True, is_verified=True),
            Account(id=OTHER_DOCTOR_ID, full_name="dr. Budi", role="Doctor", is_active=True, is_verified=True),
            Account(id=150, full_name="Unverified", role="Patient", is_active=True, is_verified=False),
            Account(id=151, full_name="Inactive", role="Patient", is_active=False, is_verified=True),
        ]
        + [
            Account(id=pid, full_name=f"Patient {pid}", role="Patient", is_active=True, is_verified=True)
            for pid in range(101, 131)
        ]
    )
    morning = PracticeSession(name="Pagi", start_time=time(8, 0), end_time=time(12, 0))
    evening = PracticeSession(name="Sore", start_time=time(16, 0), end_time=time(20, 0))
    db.add_all([morning, evening])
    db.flush()
    ids = SimpleNamespace(
        doctor_id=DOCTOR_ID,
        other_doctor_id=OTHER_DOCTOR_ID,
        morning_session_id=morning.id,
        evening_session_id=evening.id,
        patients=list(range(101, 131)),
        unverified_patient=150,
        inactive_patient=151,
        date=MONDAY,
    )
    db.commit()

    ids.small_slot_id = add_slot(db, DOCTOR_ID, ids.morning_session_id, 1, max_patients=1)
    ids.slot_id = add_slot(db, DOCTOR_ID, ids.evening_session_id, 1, max_patients=5)
    ids.other_slot_id = add_slot(db, OTHER_DOCTOR_ID, ids.morning_session_id, 1, max_patients=5)
    return ids
