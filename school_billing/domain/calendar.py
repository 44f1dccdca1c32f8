"""Billing calendar - decides whether today is a tenant's billing day"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

from school_billing.domain.exceptions import InvalidBillingDayError
from school_billing.domain.models import LedgerStatus
from school_billing.utils.date_utils import end_of_day, month_key, parse_month_key

MAX_BILLING_DAY = 28  # Every month has a 28th
LATE_AFTER = timedelta(hours=48)
OVERDUE_AFTER = timedelta(hours=96)


def resolve_billing_day(billing_day: Optional[int], fee_due_day: Optional[int] = None) -> Optional[int]:
    """
    Effective billing day for a tenant.

    The primary field wins; the legacy `fee_due_day` is only read when the
    primary is unset. Days 29-31 clamp to 28. Zero or negative values count
    as unset.
    """
    for day in (billing_day, fee_due_day):
        if day is None or day < 1:
            continue
        return min(day, MAX_BILLING_DAY)
    return None


def is_billing_day_today(tenant: Any, today: date) -> bool:
    """True if `today` is the tenant's billing day. Missing config is never an error."""
    day = resolve_billing_day(
        getattr(tenant, "billing_day", None),
        getattr(tenant, "fee_due_day", None),
    )
    return day is not None and day == today.day


def billing_month(today: date) -> str:
    return month_key(today)


def prepare_billing_day_update(day: int) -> Dict[str, int]:
    """
    Field values to persist when a tenant changes its billing day.

    Both the primary and the legacy field are written so that older readers
    of `fee_due_day` agree with the new value.

    Raises:
        InvalidBillingDayError: If day is outside 1-28
    """
    if isinstance(day, bool) or not isinstance(day, int) or not 1 <= day <= MAX_BILLING_DAY:
        raise InvalidBillingDayError(f"Billing day must be between 1 and {MAX_BILLING_DAY}, got {day!r}")
    return {"billing_day": day, "fee_due_day": day}


def payment_due_date(month: str, billing_day: Optional[int], tz_name: str = "UTC") -> Optional[datetime]:
    """End of the billing day within `month`, or None when no valid billing day is set"""
    if billing_day is None or not 1 <= billing_day <= MAX_BILLING_DAY:
        return None
    year, month_num = parse_month_key(month)
    return end_of_day(date(year, month_num, billing_day), tz_name)


def calculate_payment_status(
    current_status: str,
    month: str,
    billing_day: Optional[int],
    paid_at: Optional[datetime],
    now: Optional[datetime] = None,
    tz_name: str = "UTC",
) -> str:
    """
    Display status for a ledger entry.

    - PAID stays PAID
    - unpaid and more than 96h past the due date -> OVERDUE
    - unpaid and more than 48h past the due date -> LATE
    - otherwise the stored status

    The due date is the end of the billing day in `tz_name`, the timezone
    billing runs in.

    Read-side only; the ledger row itself is never rewritten with these values.
    """
    if current_status == LedgerStatus.PAID.value or paid_at is not None:
        return LedgerStatus.PAID.value

    due = payment_due_date(month, billing_day, tz_name)
    if due is None:
        return current_status

    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    past_due = now - due

    if past_due > OVERDUE_AFTER:
        return "OVERDUE"
    if past_due > LATE_AFTER:
        return "LATE"
    return current_status
