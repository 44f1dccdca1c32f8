"""Domain models - pure Python dataclasses representing billing entities"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Union


class LedgerStatus(str, Enum):
    """Lifecycle of a monthly charge ledger entry"""

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class TenantStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DEACTIVATED = "DEACTIVATED"


class PaymentMethodType(str, Enum):
    CARD = "CARD"
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"


@dataclass
class BillingCandidate:
    """One (student, class) pair to charge for the current month"""

    tenant_id: str
    student_id: str
    class_id: str
    guardian_id: str
    amount_minor: int


@dataclass
class GuardianPaymentProfile:
    """Stored instrument used to charge a guardian off-session"""

    guardian_id: str
    payment_method_ref: str
    customer_ref: Optional[str] = None
    connected_account_id: Optional[str] = None


@dataclass
class ChargeSucceeded:
    """Provider confirmed the charge"""

    transaction_ref: str


@dataclass
class ChargeDeclined:
    """Provider refused the charge (card declined, authentication required, ...)"""

    reason: str
    transaction_ref: Optional[str] = None


@dataclass
class ChargeErrored:
    """Charge outcome unknown or provider unreachable"""

    reason: str


ChargeResult = Union[ChargeSucceeded, ChargeDeclined, ChargeErrored]


class AttemptOutcome(str, Enum):
    CHARGED = "charged"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class AttemptResult:
    """Result of one executor attempt against a ledger entry"""

    outcome: AttemptOutcome
    transaction_ref: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class TenantPreview:
    """Dry-run view of a tenant due today"""

    tenant_id: str
    name: str
    billing_day: int
    candidate_count: int
    amount_minor_total: int


@dataclass
class RunSummary:
    """Aggregated counts for one billing run"""

    month: str
    processed: int = 0
    charged: int = 0
    failed: int = 0
    skipped: int = 0
    tenant_errors: List[str] = field(default_factory=list)

    def record(self, result: AttemptResult) -> None:
        if result.outcome == AttemptOutcome.CHARGED:
            self.charged += 1
        elif result.outcome == AttemptOutcome.FAILED:
            self.failed += 1
        else:
            self.skipped += 1
