"""Dependency injection for FastAPI endpoints"""

import secrets
from datetime import datetime
from typing import Callable

from fastapi import Depends, Header, HTTPException, Request
from school_billing.config import Settings, settings
from school_billing.infrastructure.clients.payments import PaymentProviderClient
from school_billing.utils.date_utils import utc_now


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_settings() -> Settings:
    return settings


def get_clock() -> Callable[[], datetime]:
    """Source of "now" for billing runs; overridden in tests"""
    return utc_now


def get_payment_client() -> PaymentProviderClient:
    """Provide payment provider client instance"""
    return PaymentProviderClient()


def verify_cron_secret(
    authorization: str | None = Header(default=None),
    app_settings: Settings = Depends(get_settings),
) -> None:
    """Reject scheduler calls whose bearer token does not match the configured secret"""
    expected = app_settings.cron_secret
    if not expected or not authorization:
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not secrets.compare_digest(authorization.encode(), f"Bearer {expected}".encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")
