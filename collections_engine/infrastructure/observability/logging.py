"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable
from pythonjsonlogger import jsonlogger

from collections_engine.config import settings


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


def log_skipped_customers(request_id: str, tenant_id: str, report: str, skipped: Iterable[Any]) -> None:
    """One warning per customer left out of a report because of bad ledger data"""
    for entry in skipped:
        logging.warning(
            "Customer skipped",
            extra={
                "request_id": request_id,
                "tenant_id": tenant_id,
                "report": report,
                "customer_id": entry.customer_id,
                "field": entry.field,
                "reason": entry.reason,
            },
        )


def log_report(request_id: str, tenant_id: str, report: str, rows: int, duration_ms: float) -> None:
    """Log structured report completion for analysis"""
    logging.info(
        "Report completed",
        extra={
            "request_id": request_id,
            "tenant_id": tenant_id,
            "step": "report_complete",
            "report": report,
            "rows": rows,
            "duration_ms": duration_ms,
        },
    )


def log_recalculation(request_id: str, tenant_id: str, summary: Any, duration_ms: float) -> None:
    logging.info(
        "Category recalculation completed",
        extra={
            "request_id": request_id,
            "tenant_id": tenant_id,
            "step": "recalculation_complete",
            "reassigned": summary.reassigned,
            "unchanged": summary.unchanged,
            "skipped_override": summary.skipped_override,
            "failed": summary.failed,
            "complete": summary.complete,
            "next_cursor": summary.next_cursor,
            "duration_ms": duration_ms,
        },
    )
