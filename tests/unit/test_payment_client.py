"""Unit tests for the payment provider client"""

import json
import httpx
from school_billing.domain.models import ChargeDeclined, ChargeErrored, ChargeSucceeded
from school_billing.infrastructure.clients.payments import PaymentProviderClient


def _client(handler, max_retries=3) -> PaymentProviderClient:
    return PaymentProviderClient(
        base_url="http://provider.test",
        api_key="sk_test",
        timeout=1.0,
        max_retries=max_retries,
        backoff_base=0.0,
        transport=httpx.MockTransport(handler),
    )


async def _charge(client: PaymentProviderClient):
    return await client.attempt_charge(
        tenant_id="t1",
        guardian_id="g1",
        idempotency_key="monthly_s1_c1_2026-03",
        amount_minor=5000,
        payment_method_ref="pm_card_visa",
        customer_ref="cus_g1",
        connected_account_id="acct_1",
    )


async def test_successful_charge():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "pi_123", "status": "succeeded"})

    result = await _charge(_client(handler))

    assert result == ChargeSucceeded(transaction_ref="pi_123")
    request = seen[0]
    assert request.url.path == "/v1/charges/off-session"
    assert request.headers["Idempotency-Key"] == "monthly_s1_c1_2026-03"
    assert request.headers["Authorization"] == "Bearer sk_test"
    body = json.loads(request.content)
    assert body["amount"] == 5000
    assert body["payment_method"] == "pm_card_visa"
    assert body["off_session"] is True


async def test_card_declined_402():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            402,
            json={"error": {"message": "Your card was declined.", "payment_intent": {"id": "pi_9"}}},
        )

    result = await _charge(_client(handler))

    assert result == ChargeDeclined(reason="Your card was declined.", transaction_ref="pi_9")


async def test_non_succeeded_status_is_decline_with_generic_reason():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "pi_5", "status": "requires_action"})

    result = await _charge(_client(handler))

    assert isinstance(result, ChargeDeclined)
    assert result.reason == "Payment failed"


async def test_server_errors_retried_with_same_idempotency_key():
    keys = []

    def handler(request: httpx.Request) -> httpx.Response:
        keys.append(request.headers["Idempotency-Key"])
        if len(keys) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"id": "pi_ok", "status": "succeeded"})

    result = await _charge(_client(handler, max_retries=3))

    assert result == ChargeSucceeded(transaction_ref="pi_ok")
    assert keys == ["monthly_s1_c1_2026-03"] * 3


async def test_gives_up_after_max_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    result = await _charge(_client(handler, max_retries=2))

    assert isinstance(result, ChargeErrored)
    assert "500" in result.reason
    assert len(calls) == 2


async def test_network_failure_is_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    result = await _charge(_client(handler, max_retries=1))

    assert isinstance(result, ChargeErrored)
    assert "unreachable" in result.reason


async def test_client_error_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"error": {"message": "bad request"}})

    result = await _charge(_client(handler))

    assert isinstance(result, ChargeErrored)
    assert len(calls) == 1


async def test_malformed_body_is_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"not json")

    result = await _charge(_client(handler))

    assert isinstance(result, ChargeErrored)
