"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from fintrack_engine.config import settings


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

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_sync_outcome(
    user_id: str,
    item_id: str,
    outcome: str,
    applied: int,
    duplicates: int,
    duration_ms: float,
    error: Optional[str] = None,
) -> None:
    """Log structured sync outcome for analysis"""
    level = logging.INFO if outcome == "success" else logging.WARNING
    logging.log(
        level,
        "Item sync completed" if error is None else "Item sync failed",
        extra={
            "user_id": user_id,
            "item_id": item_id,
            "step": "sync_complete",
            "sync_outcome": outcome,
            "transactions_applied": applied,
            "duplicates_avoided": duplicates,
            "duration_ms": duration_ms,
            "error": error,
        },
    )


def log_payment_recorded(
    user_id: str,
    path: str,
    title: str,
    amount: str,
    next_due_date: Optional[str] = None,
) -> None:
    """Log a recorded bill or installment payment"""
    logging.info(
        "Payment recorded",
        extra={
            "user_id": user_id,
            "step": "payment_recorded",
            "payment_path": path,
            "title": title,
            "amount": amount,
            "next_due_date": next_due_date,
        },
    )
