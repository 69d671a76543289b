"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from installment_ledger.config import settings
from installment_ledger.domain.models import AmountDiscrepancy, ResolutionResult

logger = logging.getLogger("installment_ledger.reconciliation")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)


def log_resolution(
    source_batch: str,
    source_row: Optional[int],
    payment_index: int,
    payment_total: int,
    result: ResolutionResult,
) -> None:
    """Log structured outcome of one reconciled row"""
    logger.info(
        "Installment row resolved",
        extra={
            "source_batch": source_batch,
            "source_row": source_row,
            "payment_index": payment_index,
            "payment_total": payment_total,
            "resolution": result.resolution.value,
            "group_identity": result.group_identity[:16] if result.group_identity else None,
            "created_count": result.created_count,
        },
    )


def log_discrepancy(
    group_identity: Optional[str],
    payment_index: int,
    discrepancy: AmountDiscrepancy,
) -> None:
    """Warn that an observed payment does not match the ledger's expectation"""
    logger.warning(
        f"Installment amount discrepancy: expected {discrepancy.expected:.2f}, "
        f"got {discrepancy.observed:.2f} ({discrepancy.percent:.1f}% difference)",
        extra={
            "group_identity": group_identity[:16] if group_identity else None,
            "payment_index": payment_index,
            "expected_amount": str(discrepancy.expected),
            "observed_amount": str(discrepancy.observed),
            "percent_difference": discrepancy.percent,
        },
    )
