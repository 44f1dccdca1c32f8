"""Monthly charge ledger lifecycle rules"""

from typing import Dict, FrozenSet

from school_billing.domain.exceptions import InvalidLedgerTransitionError
from school_billing.domain.models import LedgerStatus

# PAID is terminal: the gift-aid view assumes a paid month never becomes unpaid
ALLOWED_TRANSITIONS: Dict[LedgerStatus, FrozenSet[LedgerStatus]] = {
    LedgerStatus.PENDING: frozenset({LedgerStatus.PAID, LedgerStatus.FAILED}),
    LedgerStatus.FAILED: frozenset({LedgerStatus.PENDING}),
    LedgerStatus.PAID: frozenset(),
}


def next_status(current: str, target: LedgerStatus) -> LedgerStatus:
    """
    Validate a ledger status change.

    Raises:
        InvalidLedgerTransitionError: If `target` is not reachable from `current`
    """
    current_status = LedgerStatus(current)
    if target not in ALLOWED_TRANSITIONS[current_status]:
        raise InvalidLedgerTransitionError(current_status.value, target.value)
    return target


def is_chargeable(status: str) -> bool:
    """Whether an attempt may be made for an entry in this status"""
    return LedgerStatus(status) != LedgerStatus.PAID


def idempotency_key(student_id: str, class_id: str, month: str) -> str:
    """Provider idempotency key, stable for a (student, class, month) triple"""
    return f"monthly_{student_id}_{class_id}_{month}"
