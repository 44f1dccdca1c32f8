"""/v1/cron/bill-guardians - scheduler trigger for the monthly billing run"""

import time
import logging
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from school_billing.api.v1.schemas import BillingPreviewResponse, BillingRunResponse, TenantPreviewItem
from school_billing.api.dependencies import (
    get_clock,
    get_payment_client,
    get_request_id,
    get_settings,
    verify_cron_secret,
)
from school_billing.config import Settings
from school_billing.infrastructure.database.session import get_db
from school_billing.infrastructure.clients.payments import PaymentProviderClient
from school_billing.jobs.monthly_billing import MonthlyBillingJob
from school_billing.domain.exceptions import BillingRunError
from school_billing.infrastructure.observability.metrics import record_run
from school_billing.infrastructure.observability.logging import log_run_summary

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


@router.api_route("/cron/bill-guardians", methods=["GET", "POST"], response_model=BillingRunResponse)
async def bill_guardians(
    request: Request,
    db: Session = Depends(get_db),
    payment_client: PaymentProviderClient = Depends(get_payment_client),
    clock: Callable[[], datetime] = Depends(get_clock),
    app_settings: Settings = Depends(get_settings),
):
    """
    Charge guardians of every tenant whose billing day is today.

    Flow:
    1. Resolve today's date in the billing timezone
    2. Select tenants due today
    3. For each autopay student and paid class: find/create this month's
       ledger entry and charge it unless already paid
    4. Return counts

    Individual charge failures still return 200; only a run that cannot start
    returns 500.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    job = MonthlyBillingJob(
        db,
        payment_client,
        clock(),
        tz_name=app_settings.billing_timezone,
        clock=clock,
        retry_failed=app_settings.retry_failed_after_billing_day,
    )
    try:
        summary = await job.run()
    except BillingRunError as e:
        record_run(completed=False)
        logging.error(f"Billing run could not start: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Failed to process billing")

    duration_ms = (time.time() - start_time) * 1000
    record_run(completed=True, tenants=summary.processed)
    log_run_summary(
        request_id,
        summary.month,
        summary.processed,
        summary.charged,
        summary.failed,
        summary.skipped,
        duration_ms,
    )

    return BillingRunResponse(
        processed=summary.processed,
        charged=summary.charged,
        failed=summary.failed,
        skipped=summary.skipped,
        month=summary.month,
    )


@router.get("/cron/bill-guardians/preview", response_model=BillingPreviewResponse)
def preview_billing(
    db: Session = Depends(get_db),
    payment_client: PaymentProviderClient = Depends(get_payment_client),
    clock: Callable[[], datetime] = Depends(get_clock),
    app_settings: Settings = Depends(get_settings),
):
    """
    List tenants due today with their candidate counts.

    Read-only: no ledger writes and no provider calls.
    """
    job = MonthlyBillingJob(db, payment_client, clock(), tz_name=app_settings.billing_timezone)
    try:
        previews = job.preview()
    except BillingRunError as e:
        logging.error(f"Billing preview failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to check billing status")

    return BillingPreviewResponse(
        month=job.month,
        billing_date=job.today.isoformat(),
        tenants=[
            TenantPreviewItem(
                tenant_id=p.tenant_id,
                name=p.name,
                billing_day=p.billing_day,
                candidate_count=p.candidate_count,
                amount_minor_total=p.amount_minor_total,
            )
            for p in previews
        ],
    )
