"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from school_billing.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_charge_outcome(
    tenant_id: str,
    student_id: str,
    class_id: str,
    month: str,
    outcome: str,
    amount_minor: int,
    duration_ms: float,
    reason: Optional[str] = None,
) -> None:
    """Log structured charge outcome for reconciliation"""
    extra = {
        "tenant_id": tenant_id,
        "student_id": student_id,
        "class_id": class_id,
        "month": month,
        "step": "charge_complete",
        "outcome": outcome,
        "amount_minor": amount_minor,
        "duration_ms": duration_ms,
    }
    if reason:
        extra["reason"] = reason

    if outcome == "failed":
        logging.warning("Charge failed", extra=extra)
    else:
        logging.info("Charge completed", extra=extra)


def log_run_summary(
    request_id: str,
    month: str,
    processed: int,
    charged: int,
    failed: int,
    skipped: int,
    duration_ms: float,
) -> None:
    """Log structured billing run totals"""
    logging.info(
        "Billing run completed",
        extra={
            "request_id": request_id,
            "month": month,
            "step": "run_complete",
            "processed": processed,
            "charged": charged,
            "failed": failed,
            "skipped": skipped,
            "duration_ms": duration_ms,
        },
    )
