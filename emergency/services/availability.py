from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Optional, Union

from django.conf import settings
from django.utils import timezone

# Standard whole-blood inter-donation interval.
DEFAULT_COOLDOWN_DAYS = 56

AVAILABLE = "available"
COOLING_DOWN = "cooling_down"

Moment = Union[date, datetime]


@dataclass(frozen=True)
class AvailabilityStatus:
    status: str
    next_eligible_date: Optional[datetime] = None
    days_remaining: int = 0

    @property
    def is_available(self) -> bool:
        return self.status == AVAILABLE


def get_cooldown_days() -> int:
    return int(getattr(settings, "DONATION_RECOVERY_DAYS", DEFAULT_COOLDOWN_DAYS))


def _as_datetime(value: Moment) -> datetime:
    if isinstance(value, datetime):
        result = value
    else:
        result = datetime.combine(value, time.min)
    if timezone.is_naive(result):
        result = timezone.make_aware(result, timezone.get_default_timezone())
    return result


def next_eligible_date(last_donation_date: Optional[Moment], cooldown_days: Optional[int] = None) -> Optional[datetime]:
    if last_donation_date is None:
        return None
    days = get_cooldown_days() if cooldown_days is None else int(cooldown_days)
    return _as_datetime(last_donation_date) + timedelta(days=days)


def is_available(
    last_donation_date: Optional[Moment],
    now: Optional[Moment] = None,
    cooldown_days: Optional[int] = None,
) -> bool:
    """True when the donor never donated or the cooldown window has elapsed."""

    eligible_at = next_eligible_date(last_donation_date, cooldown_days)
    if eligible_at is None:
        return True
    current = _as_datetime(now) if now is not None else timezone.now()
    return current >= eligible_at


def availability_status(
    last_donation_date: Optional[Moment],
    now: Optional[Moment] = None,
    cooldown_days: Optional[int] = None,
) -> AvailabilityStatus:
    current = _as_datetime(now) if now is not None else timezone.now()
    if is_available(last_donation_date, current, cooldown_days):
        return AvailabilityStatus(AVAILABLE)
    eligible_at = next_eligible_date(last_donation_date, cooldown_days)
    remaining = eligible_at - current
    days_remaining = remaining.days + (1 if remaining.seconds or remaining.microseconds else 0)
    return AvailabilityStatus(COOLING_DOWN, eligible_at, days_remaining)
