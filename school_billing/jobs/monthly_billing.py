"""Monthly guardian billing run - charges every due tenant's autopay students"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from school_billing.config import settings
from school_billing.domain.calendar import billing_month, is_billing_day_today, resolve_billing_day
from school_billing.domain.eligibility import profile_for_autopay, select_candidates
from school_billing.domain.exceptions import BillingRunError
from school_billing.domain.models import (
    AttemptOutcome,
    BillingCandidate,
    GuardianPaymentProfile,
    RunSummary,
    TenantPreview,
)
from school_billing.infrastructure.database.models import Tenant
from school_billing.infrastructure.database.repositories import (
    EligibilityRepository,
    LedgerRepository,
    TenantRepository,
)
from school_billing.infrastructure.observability.metrics import record_charge
from school_billing.jobs.executor import ChargeProvider, PaymentAttemptExecutor
from school_billing.utils.date_utils import local_today, utc_now


class MonthlyBillingJob:
    """
    One invocation of the daily billing run.

    Tenants whose billing day is today get every eligible (student, class)
    charged. Tenants whose billing day already passed this month only have
    their unpaid entries (FAILED, or PENDING left by an interrupted run)
    retried. Tenants and candidates are processed one at
    a time; a failure while billing one tenant or one candidate is logged,
    counted as a failure and the run moves on. Only failing to list tenants
    aborts the run.
    """

    def __init__(
        self,
        db: Session,
        provider: ChargeProvider,
        now: datetime,
        tz_name: Optional[str] = None,
        clock: Callable[[], datetime] = utc_now,
        retry_failed: Optional[bool] = None,
    ):
        self.db = db
        self.today = local_today(now, tz_name or settings.billing_timezone)
        self.month = billing_month(self.today)
        self.retry_failed = settings.retry_failed_after_billing_day if retry_failed is None else retry_failed
        self.tenants = TenantRepository(db)
        self.eligibility = EligibilityRepository(db)
        self.ledger = LedgerRepository(db)
        self.executor = PaymentAttemptExecutor(self.ledger, provider, clock=clock)

    def select_tenants(self) -> Tuple[List[Tenant], List[Tenant]]:
        """
        Split collecting tenants into (due today, billing day already passed).

        Raises:
            BillingRunError: If tenants cannot be read at all
        """
        try:
            tenants = self.tenants.list_collecting_tenants()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise BillingRunError(f"Could not enumerate tenants: {e}") from e

        due, passed = [], []
        for tenant in tenants:
            if is_billing_day_today(tenant, self.today):
                due.append(tenant)
                continue
            day = resolve_billing_day(tenant.billing_day, tenant.fee_due_day)
            if day is not None and day < self.today.day:
                passed.append(tenant)
        return due, passed

    def due_tenants(self) -> List[Tenant]:
        """Tenants whose billing day is today"""
        due, _ = self.select_tenants()
        return due

    def tenant_candidates(self, tenant: Tenant) -> Tuple[List[BillingCandidate], Dict[str, GuardianPaymentProfile]]:
        """Candidates for a tenant plus the chargeable instrument of each guardian involved"""
        students = self.eligibility.load_card_students(tenant.id)
        profiles = self.eligibility.load_billing_profiles(
            tenant.id, {s.primary_guardian_id for s in students}
        )
        candidates = select_candidates(tenant, students, profiles)

        instruments: Dict[str, GuardianPaymentProfile] = {}
        for guardian_id in {c.guardian_id for c in candidates}:
            instruments[guardian_id] = profile_for_autopay(profiles[guardian_id], tenant.payment_account_id)
        return candidates, instruments

    async def run(self) -> RunSummary:
        summary = RunSummary(month=self.month)
        due, passed = self.select_tenants()
        due_ids = [t.id for t in due]
        retry_ids = [t.id for t in passed] if self.retry_failed else []

        logging.info(
            "Starting monthly guardian billing",
            extra={
                "billing_date": self.today.isoformat(),
                "month": self.month,
                "tenant_count": len(due_ids),
                "retry_tenant_count": len(retry_ids),
            },
        )

        for tenant_id in due_ids:
            summary.processed += 1
            await self._guarded(tenant_id, summary, retry_only=False)

        for tenant_id in retry_ids:
            try:
                has_unpaid = bool(self.ledger.unpaid_triples(tenant_id, self.month))
            except SQLAlchemyError as e:
                self.db.rollback()
                logging.error(f"Could not read unpaid entries for tenant {tenant_id}: {e}")
                continue
            if has_unpaid:
                summary.processed += 1
                await self._guarded(tenant_id, summary, retry_only=True)

        return summary

    def preview(self) -> List[TenantPreview]:
        """Tenants due today and what would be charged, without writing or charging"""
        previews = []
        for tenant in self.due_tenants():
            candidates, _ = self.tenant_candidates(tenant)
            previews.append(
                TenantPreview(
                    tenant_id=tenant.id,
                    name=tenant.name,
                    billing_day=resolve_billing_day(tenant.billing_day, tenant.fee_due_day),
                    candidate_count=len(candidates),
                    amount_minor_total=sum(c.amount_minor for c in candidates),
                )
            )
        return previews

    async def _guarded(self, tenant_id: str, summary: RunSummary, retry_only: bool) -> None:
        try:
            await self._bill_tenant(tenant_id, summary, retry_only)
        except Exception as e:
            self.db.rollback()
            summary.failed += 1
            summary.tenant_errors.append(tenant_id)
            logging.error(f"Error processing tenant {tenant_id}: {e}", extra={"tenant_id": tenant_id})

    async def _bill_tenant(self, tenant_id: str, summary: RunSummary, retry_only: bool) -> None:
        tenant = self.tenants.get_tenant(tenant_id)
        if tenant is None:
            return

        candidates, instruments = self.tenant_candidates(tenant)
        if retry_only:
            unpaid = self.ledger.unpaid_triples(tenant_id, self.month)
            candidates = [c for c in candidates if (c.student_id, c.class_id) in unpaid]

        logging.info(
            f"Processing tenant {tenant_id}",
            extra={"tenant_id": tenant_id, "candidate_count": len(candidates), "retry_only": retry_only},
        )

        for candidate in candidates:
            try:
                entry, _ = self.ledger.get_or_create_entry(
                    tenant_id=candidate.tenant_id,
                    student_id=candidate.student_id,
                    class_id=candidate.class_id,
                    month=self.month,
                    amount_minor=candidate.amount_minor,
                )
                result = await self.executor.attempt(entry, instruments[candidate.guardian_id])
            except Exception as e:
                self.db.rollback()
                summary.failed += 1
                record_charge(AttemptOutcome.FAILED.value)
                logging.error(
                    f"Error charging {candidate.student_id} for class {candidate.class_id}: {e}",
                    extra={"tenant_id": tenant_id, "student_id": candidate.student_id, "class_id": candidate.class_id},
                )
                continue

            if result.outcome == AttemptOutcome.SKIPPED:
                logging.info(
                    f"Skipping already paid: {candidate.student_id} for class {candidate.class_id} in {self.month}"
                )
            summary.record(result)
            record_charge(result.outcome.value)


async def run_monthly_billing(
    db: Session,
    provider: ChargeProvider,
    now: datetime,
    tz_name: Optional[str] = None,
) -> RunSummary:
    """Run the billing job for the day `now` falls on"""
    return await MonthlyBillingJob(db, provider, now, tz_name=tz_name).run()
