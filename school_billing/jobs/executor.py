"""Payment attempt executor - one off-session charge per ledger entry"""

import logging
import time
from datetime import datetime
from typing import Callable, Optional, Protocol

from school_billing.domain.ledger import idempotency_key, is_chargeable
from school_billing.domain.models import (
    AttemptOutcome,
    AttemptResult,
    ChargeErrored,
    ChargeResult,
    ChargeSucceeded,
    GuardianPaymentProfile,
    LedgerStatus,
)
from school_billing.infrastructure.clients.payments import GENERIC_DECLINE
from school_billing.infrastructure.database.models import MonthlyChargeEntry
from school_billing.infrastructure.database.repositories import LedgerRepository
from school_billing.infrastructure.observability.logging import log_charge_outcome
from school_billing.utils.date_utils import utc_now


class ChargeProvider(Protocol):
    async def attempt_charge(
        self,
        tenant_id: str,
        guardian_id: str,
        idempotency_key: str,
        amount_minor: int,
        payment_method_ref: Optional[str] = None,
        customer_ref: Optional[str] = None,
        connected_account_id: Optional[str] = None,
    ) -> ChargeResult: ...


class PaymentAttemptExecutor:
    """Charges a ledger entry and records the outcome on it"""

    def __init__(
        self,
        ledger: LedgerRepository,
        provider: ChargeProvider,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.ledger = ledger
        self.provider = provider
        self.clock = clock

    async def attempt(self, entry: MonthlyChargeEntry, profile: GuardianPaymentProfile) -> AttemptResult:
        """
        Attempt the month's charge for one entry.

        - PAID entries are skipped without calling the provider
        - FAILED entries are moved back to PENDING first
        - an entry another run settled meanwhile is reported SKIPPED
        - success marks the entry PAID with the provider reference
        - a decline, provider error or exception marks it FAILED with a reason

        Provider failures never propagate out of this method.
        """
        if not is_chargeable(entry.status):
            return AttemptResult(outcome=AttemptOutcome.SKIPPED)

        if entry.status == LedgerStatus.FAILED.value:
            self.ledger.reset_for_retry(entry)
            if entry.status == LedgerStatus.PAID.value:
                return AttemptResult(outcome=AttemptOutcome.SKIPPED)

        # Read before the call; ledger writes expire the ORM instance
        tenant_id = entry.tenant_id
        student_id = entry.student_id
        class_id = entry.class_id
        month = entry.month
        amount_minor = entry.amount_minor

        start_time = time.time()
        try:
            result = await self.provider.attempt_charge(
                tenant_id=tenant_id,
                guardian_id=profile.guardian_id,
                idempotency_key=idempotency_key(student_id, class_id, month),
                amount_minor=amount_minor,
                payment_method_ref=profile.payment_method_ref,
                customer_ref=profile.customer_ref,
                connected_account_id=profile.connected_account_id,
            )
        except Exception as e:
            logging.exception("Off-session charge raised", extra={"student_id": student_id, "class_id": class_id})
            result = ChargeErrored(reason=str(e) or "Payment error")

        duration_ms = (time.time() - start_time) * 1000

        if isinstance(result, ChargeSucceeded):
            if not self.ledger.mark_paid(entry, reference=result.transaction_ref, paid_at=self.clock()):
                # An overlapping run recorded the same charge first
                logging.info(
                    f"Charge already recorded by another run: {student_id} for class {class_id} in {month}",
                    extra={"tenant_id": tenant_id, "transaction_ref": result.transaction_ref},
                )
                return AttemptResult(outcome=AttemptOutcome.SKIPPED, transaction_ref=result.transaction_ref)
            log_charge_outcome(tenant_id, student_id, class_id, month, "charged", amount_minor, duration_ms)
            return AttemptResult(outcome=AttemptOutcome.CHARGED, transaction_ref=result.transaction_ref)

        reason = result.reason or GENERIC_DECLINE
        if not self.ledger.mark_failed(entry, notes=reason, reference=getattr(result, "transaction_ref", None)):
            return AttemptResult(outcome=AttemptOutcome.SKIPPED)
        log_charge_outcome(tenant_id, student_id, class_id, month, "failed", amount_minor, duration_ms, reason)
        return AttemptResult(outcome=AttemptOutcome.FAILED, reason=reason)
