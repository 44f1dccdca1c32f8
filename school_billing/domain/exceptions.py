"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidBillingDayError(DomainException):
    """Billing day outside the supported 1-28 range"""

    pass


class InvalidLedgerTransitionError(DomainException):
    """Requested status change is not allowed for a ledger entry"""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move ledger entry from {current} to {target}")
        self.current = current
        self.target = target


class BillingRunError(DomainException):
    """Billing run could not start (e.g. tenants could not be enumerated)"""

    pass
