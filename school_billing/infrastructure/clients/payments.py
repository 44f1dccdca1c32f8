"""Payment provider HTTP client for off-session card charges"""

import asyncio
import logging
import httpx
from typing import Any, Dict, Optional
from school_billing.config import settings
from school_billing.domain.models import ChargeDeclined, ChargeErrored, ChargeResult, ChargeSucceeded
from school_billing.infrastructure.observability.metrics import (
    provider_latency_histogram,
    provider_failures_counter,
)

GENERIC_DECLINE = "Payment failed"


class PaymentProviderClient:
    """Client for the provider's off-session charge API"""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.payment_api_base
        self.api_key = api_key if api_key is not None else settings.payment_api_key
        self.timeout = timeout or settings.http_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.charge_max_retries
        self.backoff_base = backoff_base if backoff_base is not None else settings.charge_backoff_base
        self.transport = transport

    async def attempt_charge(
        self,
        tenant_id: str,
        guardian_id: str,
        idempotency_key: str,
        amount_minor: int,
        payment_method_ref: Optional[str] = None,
        customer_ref: Optional[str] = None,
        connected_account_id: Optional[str] = None,
    ) -> ChargeResult:
        """
        Charge a guardian's stored card without the cardholder present.

        Retry strategy:
        - Network failures and 5xx responses are retried with exponential
          backoff (base * 2^attempt), reusing the same idempotency key so the
          provider never charges twice
        - Declines (402 or a non-succeeded status) are returned immediately

        Never raises for provider-side problems; those come back as
        ChargeDeclined or ChargeErrored.
        """
        payload = {
            "tenant_id": tenant_id,
            "guardian_id": guardian_id,
            "amount": amount_minor,
            "currency": settings.currency,
            "payment_method": payment_method_ref,
            "customer": customer_ref,
            "connected_account": connected_account_id,
            "off_session": True,
            "confirm": True,
            "metadata": {
                "tenantId": tenant_id,
                "guardianId": guardian_id,
                "invoiceId": idempotency_key,
            },
        }
        headers = {"Idempotency-Key": idempotency_key}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    with provider_latency_histogram.time():
                        response = await client.post(
                            f"{self.base_url}/v1/charges/off-session",
                            json=payload,
                            headers=headers,
                        )
                    if response.status_code == 402:
                        return self._parse_decline(response)
                    response.raise_for_status()
                    return self._parse_charge(response.json())

                except httpx.HTTPStatusError as e:
                    if e.response.status_code < 500:
                        return ChargeErrored(f"Payment provider rejected request: {e.response.status_code}")
                    reason = f"Payment provider error: {e.response.status_code}"
                except httpx.TimeoutException:
                    reason = f"Payment provider timeout after {self.timeout}s"
                except httpx.RequestError as e:
                    reason = f"Payment provider unreachable: {e.__class__.__name__}"
                except ValueError as e:
                    return ChargeErrored(f"Invalid response from payment provider: {e}")

                attempt += 1
                provider_failures_counter.inc()
                if attempt >= self.max_retries:
                    return ChargeErrored(reason)

                backoff = self.backoff_base * (2 ** (attempt - 1))
                logging.warning(
                    "Retrying off-session charge",
                    extra={"idempotency_key": idempotency_key, "attempt": attempt, "reason": reason},
                )
                await asyncio.sleep(backoff)

    @staticmethod
    def _parse_charge(data: Dict[str, Any]) -> ChargeResult:
        try:
            status = data["status"]
            transaction_ref = data.get("id")
        except (KeyError, TypeError) as e:
            return ChargeErrored(f"Invalid response from payment provider: {e}")

        if status == "succeeded" and transaction_ref:
            return ChargeSucceeded(transaction_ref=transaction_ref)

        error = data.get("last_payment_error") or {}
        return ChargeDeclined(
            reason=error.get("message") or GENERIC_DECLINE,
            transaction_ref=transaction_ref,
        )

    @staticmethod
    def _parse_decline(response: httpx.Response) -> ChargeResult:
        try:
            error = response.json().get("error") or {}
        except (ValueError, AttributeError):
            error = {}
        intent = error.get("payment_intent") or {}
        return ChargeDeclined(
            reason=error.get("message") or GENERIC_DECLINE,
            transaction_ref=intent.get("id"),
        )
