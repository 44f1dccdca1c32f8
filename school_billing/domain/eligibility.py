"""Eligibility rules - which (student, class) pairs get charged this month"""

from typing import Any, Dict, Iterable, List, Optional

from school_billing.domain.models import (
    BillingCandidate,
    GuardianPaymentProfile,
    PaymentMethodType,
    TenantStatus,
)


def tenant_can_collect(tenant: Any) -> bool:
    """Active tenant that takes cards and has a connected provider account"""
    return (
        tenant.status == TenantStatus.ACTIVE.value
        and bool(tenant.accepts_card)
        and bool(tenant.payment_account_id)
    )


def student_is_billable(student: Any) -> bool:
    return (
        not student.is_archived
        and student.payment_method == PaymentMethodType.CARD.value
        and student.primary_guardian_id is not None
    )


def profile_for_autopay(profile: Any, connected_account_id: Optional[str] = None) -> Optional[GuardianPaymentProfile]:
    """
    Turn a stored billing profile into a chargeable instrument.

    Returns None when autopay is off or no instrument is stored; the guardian's
    students are then skipped for this month.
    """
    if profile is None or not profile.autopay_enabled or not profile.default_payment_method_id:
        return None
    return GuardianPaymentProfile(
        guardian_id=profile.guardian_id,
        payment_method_ref=profile.default_payment_method_id,
        customer_ref=profile.provider_customer_id,
        connected_account_id=connected_account_id,
    )


def select_candidates(
    tenant: Any,
    students: Iterable[Any],
    profiles_by_guardian: Dict[str, Any],
) -> List[BillingCandidate]:
    """
    Project a tenant's students into billing candidates.

    Filters in order: tenant can collect; student is an active CARD student
    with a guardian; guardian profile allows autopay (checked once per
    guardian); class fee is positive. Output is ordered by guardian so a
    guardian's charges run back to back.
    """
    if not tenant_can_collect(tenant):
        return []

    autopay_by_guardian: Dict[str, bool] = {}
    candidates: List[BillingCandidate] = []

    for student in students:
        if not student_is_billable(student):
            continue

        guardian_id = student.primary_guardian_id
        if guardian_id not in autopay_by_guardian:
            autopay_by_guardian[guardian_id] = (
                profile_for_autopay(profiles_by_guardian.get(guardian_id)) is not None
            )
        if not autopay_by_guardian[guardian_id]:
            continue

        for enrollment in student.enrollments:
            fee = enrollment.school_class.monthly_fee_minor
            if not fee or fee <= 0:
                continue
            candidates.append(
                BillingCandidate(
                    tenant_id=tenant.id,
                    student_id=student.id,
                    class_id=enrollment.school_class.id,
                    guardian_id=guardian_id,
                    amount_minor=fee,
                )
            )

    candidates.sort(key=lambda c: c.guardian_id)
    return candidates
