"""Due estimation, urgency scoring and classification helpers."""

import math
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from .catalog import Interval
from .due_estimate import DueEstimate, FAR_FUTURE
from .status import Confidence, SuggestionStatus

DAYS_PER_MONTH = 30
OVERDUE_BONUS = 0.25
CRITICAL_REMAINING_KM = 500
CRITICAL_REMAINING_DAYS = 30
SOON_SCORE = 85
UPCOMING_SCORE = 70


def add_months(start: datetime, months: float) -> datetime:
    """Add (possibly fractional) months: whole months + fraction * 30 days."""
    whole = int(months)
    days = int((months - whole) * DAYS_PER_MONTH)
    return start + relativedelta(months=whole, days=days)


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from start to end, rounded up. Negative when end is earlier."""
    return math.ceil((end - start).total_seconds() / 86400)


def calc_due_km(
    last_km: Optional[float],
    interval_km: Optional[float],
    current_km: Optional[float],
) -> Optional[float]:
    """
    Calculate next due odometer reading.

    - With history: last_km + interval (only if current >= last)
    - Without history: next interval boundary strictly above current
    - Otherwise None (unbounded)
    """
    if not interval_km or current_km is None:
        return None
    if last_km is not None:
        if current_km < last_km:
            return None
        return last_km + interval_km
    return (math.floor(current_km / interval_km) + 1) * interval_km


def estimate_due(
    interval: Interval,
    now: datetime,
    fallback_start: datetime,
    last_km: Optional[float] = None,
    last_date: Optional[datetime] = None,
    current_km: Optional[float] = None,
    avg_km_per_month: Optional[float] = None,
) -> DueEstimate:
    """
    Estimate when a task is next due from whatever data is available.

    The distance side is converted to days using the average monthly
    distance; whichever of the two horizons is tighter wins.
    """
    due_km = calc_due_km(last_km, interval.km, current_km)
    start = last_date if last_date is not None else fallback_start
    due_date = add_months(start, interval.months) if interval.months else FAR_FUTURE
    return estimate_from_due_points(
        due_date, due_km, now, current_km, avg_km_per_month
    )


def estimate_from_due_points(
    due_date: Optional[datetime],
    due_km: Optional[float],
    now: datetime,
    current_km: Optional[float] = None,
    avg_km_per_month: Optional[float] = None,
) -> DueEstimate:
    """Build a DueEstimate from already-known due date and due odometer."""
    if due_date is None:
        due_date = FAR_FUTURE
    remaining_km = None
    if due_km is not None and current_km is not None:
        remaining_km = due_km - current_km
    signed_days = days_between(now, due_date)

    days_to_due = signed_days
    if remaining_km is not None and avg_km_per_month and avg_km_per_month > 0:
        km_days = round(remaining_km / avg_km_per_month * DAYS_PER_MONTH)
        days_to_due = min(signed_days, km_days)

    is_overdue = days_to_due < 0 or (remaining_km is not None and remaining_km < 0)

    return DueEstimate(
        remaining_km=remaining_km,
        remaining_days=max(0, signed_days),
        days_to_due=days_to_due,
        is_overdue=is_overdue,
        due_date=due_date,
        due_km=due_km,
    )


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def urgency_score(estimate: DueEstimate, interval: Interval) -> int:
    """Urgency 0-100 from how much of the interval has been used up."""
    km_ratio = 0.0
    if interval.km and estimate.remaining_km is not None:
        km_ratio = _clamp(1 - estimate.remaining_km / interval.km, 0, 1)

    time_ratio = 0.0
    if interval.months:
        total_days = interval.months * DAYS_PER_MONTH
        time_ratio = _clamp(1 - estimate.remaining_days / total_days, 0, 1)

    progress = max(km_ratio, time_ratio)
    bonus = OVERDUE_BONUS if estimate.is_overdue else 0
    return min(100, round((progress + bonus) * 100))


def classify_status(estimate: DueEstimate, score: int) -> SuggestionStatus:
    """Determine the status tier. Hard thresholds first, then score bands."""
    if (
        estimate.is_overdue
        or (
            estimate.remaining_km is not None
            and estimate.remaining_km <= CRITICAL_REMAINING_KM
        )
        or estimate.remaining_days <= CRITICAL_REMAINING_DAYS
    ):
        return SuggestionStatus.CRITICAL
    if score >= SOON_SCORE:
        return SuggestionStatus.SOON
    if score >= UPCOMING_SCORE:
        return SuggestionStatus.UPCOMING
    return SuggestionStatus.OK


def classify_confidence(has_history: bool, has_odometer: bool) -> Confidence:
    if has_history and has_odometer:
        return Confidence.HIGH
    if has_history:
        return Confidence.MEDIUM
    return Confidence.LOW


def build_message(
    estimate: DueEstimate, status: SuggestionStatus, confidence: Confidence
) -> str:
    """Human-readable summary of what is left, with a confidence caveat."""
    km = estimate.remaining_km
    days = estimate.remaining_days

    if estimate.is_overdue:
        message = "Overdue. Please service as soon as possible."
    elif status == SuggestionStatus.CRITICAL:
        if km is not None and km <= CRITICAL_REMAINING_KM:
            message = f"About {km:,.0f} km left."
        else:
            message = f"About {days} days left."
    elif km is not None and estimate.time_bounded:
        message = f"About {km:,.0f} km / {days} days left."
    elif km is not None:
        message = f"About {km:,.0f} km left."
    else:
        message = f"About {days} days left."

    if confidence == Confidence.LOW:
        message += " (estimated: no history)"
    elif confidence == Confidence.MEDIUM:
        message += " (estimated: odometer not recorded)"
    return message
