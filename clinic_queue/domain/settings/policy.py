"""Clinic queue policy: check-in window and no-show deadline arithmetic"""

import math
from dataclasses import asdict, dataclass
from datetime import datetime, time, timedelta
from typing import Any, Mapping, NamedTuple, Optional

from ...config import (
    AUTO_CANCEL_ENABLED,
    AUTO_CANCEL_GRACE_MINUTES,
    BOOKING_HORIZON_DAYS,
    CHECK_IN_EARLY_MINUTES,
    CHECK_IN_LATE_MINUTES,
    STRICT_CHECK_IN,
)

MINUTES_MIN = 0
MINUTES_MAX = 24 * 60
HORIZON_MAX_DAYS = 365


@dataclass(frozen=True)
class QueuePolicy:
    enable_strict_check_in: bool = STRICT_CHECK_IN
    check_in_early_minutes: int = CHECK_IN_EARLY_MINUTES
    check_in_late_minutes: int = CHECK_IN_LATE_MINUTES
    enable_auto_cancel: bool = AUTO_CANCEL_ENABLED
    auto_cancel_grace_minutes: int = AUTO_CANCEL_GRACE_MINUTES
    booking_horizon_days: int = BOOKING_HORIZON_DAYS

    def to_dict(self) -> dict:
        return asdict(self)


DEFAULT_QUEUE_POLICY = QueuePolicy()


class CheckInWindow(NamedTuple):
    starts_at: datetime
    ends_at: datetime


def _clamp(value: Any, fallback: int, upper: int) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number):
        return fallback
    # Halves round up: 2.5 -> 3
    return min(max(math.floor(number + 0.5), MINUTES_MIN), upper)


def clamp_minutes(value: Any, fallback: int) -> int:
    return _clamp(value, fallback, MINUTES_MAX)


def normalize_queue_policy(value: Optional[Mapping[str, Any]]) -> QueuePolicy:
    """Build a policy from a settings mapping, falling back to defaults for bad values"""
    value = value or {}
    defaults = DEFAULT_QUEUE_POLICY

    def flag(name: str) -> bool:
        raw = value.get(name)
        return getattr(defaults, name) if raw is None else bool(raw)

    return QueuePolicy(
        enable_strict_check_in=flag("enable_strict_check_in"),
        check_in_early_minutes=clamp_minutes(
            value.get("check_in_early_minutes"), defaults.check_in_early_minutes
        ),
        check_in_late_minutes=clamp_minutes(
            value.get("check_in_late_minutes"), defaults.check_in_late_minutes
        ),
        enable_auto_cancel=flag("enable_auto_cancel"),
        auto_cancel_grace_minutes=clamp_minutes(
            value.get("auto_cancel_grace_minutes"), defaults.auto_cancel_grace_minutes
        ),
        booking_horizon_days=_clamp(
            value.get("booking_horizon_days"), defaults.booking_horizon_days, HORIZON_MAX_DAYS
        ),
    )


def session_end_at(
    reservation_date: datetime, session_start: Optional[time], session_end: Optional[time]
) -> Optional[datetime]:
    """End of the session on the reservation's day; sessions ending past midnight roll over"""
    if session_end is None:
        return None

    end_at = datetime.combine(reservation_date.date(), session_end)
    if session_start is not None and end_at <= datetime.combine(
        reservation_date.date(), session_start
    ):
        end_at += timedelta(days=1)
    return end_at


def no_show_deadline(
    reservation_date: datetime,
    session_start: Optional[time],
    session_end: Optional[time],
    policy: QueuePolicy,
) -> datetime:
    """Latest moment a patient may still check in; the earlier of the two cut-offs wins"""
    appointment_deadline = reservation_date + timedelta(minutes=policy.check_in_late_minutes)

    end_at = session_end_at(reservation_date, session_start, session_end)
    if end_at is None:
        return appointment_deadline

    session_deadline = end_at + timedelta(minutes=policy.auto_cancel_grace_minutes)
    return min(appointment_deadline, session_deadline)


def check_in_window(
    reservation_date: datetime,
    session_start: Optional[time],
    session_end: Optional[time],
    policy: QueuePolicy,
) -> CheckInWindow:
    starts_at = reservation_date - timedelta(minutes=policy.check_in_early_minutes)
    ends_at = no_show_deadline(reservation_date, session_start, session_end, policy)
    return CheckInWindow(starts_at, ends_at)
