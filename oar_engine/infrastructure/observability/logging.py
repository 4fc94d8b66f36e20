"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

from oar_engine.config import settings
from oar_engine.domain.models import TickResult


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


def log_tick_result(source: str, result: TickResult, duration_ms: float) -> None:
    """Log structured tick outcome (source is "tick" or "catch_up")"""
    extra = {
        "step": f"{source}_complete",
        "reference_time": result.reference_time.isoformat() if result.reference_time else None,
        "overdue_updated": result.overdue_updated,
        "due_updated": result.due_updated,
        "autopay_processed": result.autopay_processed,
        "error_count": len(result.errors),
        "failed_bill_ids": [e.bill_id for e in result.errors],
        "reprocess_count": len(result.reprocess),
        "aborted": result.aborted,
        "duration_ms": duration_ms,
    }
    if result.aborted:
        logging.warning("Scheduler %s aborted", source, extra=extra)
    elif result.errors:
        logging.warning("Scheduler %s completed with errors", source, extra=extra)
    else:
        logging.info("Scheduler %s completed", source, extra=extra)
