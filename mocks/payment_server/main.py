from fastapi import FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from typing import Dict, Optional
import uuid

app = FastAPI(title="Mock Payment Provider", version="1.0.0")

# Replayed responses keyed by Idempotency-Key, like the real provider
RESPONSES: Dict[str, tuple[int, dict]] = {}

DECLINED_PREFIX = "pm_card_declined"
ERROR_PREFIX = "pm_card_error"


class OffSessionCharge(BaseModel):
    tenant_id: str
    guardian_id: str
    amount: int
    currency: str = "gbp"
    payment_method: Optional[str] = None
    customer: Optional[str] = None
    connected_account: Optional[str] = None
    off_session: bool = True
    confirm: bool = True
    metadata: Dict[str, str] = {}


@app.get("/health")
def health(): return {"status": "ok"}


@app.post("/v1/charges/off-session")
def create_charge(charge: OffSessionCharge, idempotency_key: str = Header(...)):
    if idempotency_key in RESPONSES:
        status_code, body = RESPONSES[idempotency_key]
        return JSONResponse(status_code=status_code, content=body)

    method = charge.payment_method or ""
    if method.startswith(ERROR_PREFIX):
        raise HTTPException(status_code=503, detail="provider unavailable")

    intent_id = f"pi_{uuid.uuid4().hex[:24]}"
    if not method or method.startswith(DECLINED_PREFIX):
        status_code = 402
        body = {
            "error": {
                "type": "card_error",
                "message": "Your card was declined.",
                "payment_intent": {"id": intent_id, "status": "requires_payment_method"},
            }
        }
    else:
        status_code = 200
        body = {"id": intent_id, "status": "succeeded", "amount": charge.amount, "currency": charge.currency}

    RESPONSES[idempotency_key] = (status_code, body)
    return JSONResponse(status_code=status_code, content=body)
