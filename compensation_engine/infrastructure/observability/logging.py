"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from compensation_engine.config import settings
from compensation_engine.domain.models import ClaimResult, JobRunSummary


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


def log_claim(request_id: str, result: ClaimResult, duration_ms: float) -> None:
    """Log structured claim outcome for auditing"""
    logging.info(
        "Income claimed",
        extra={
            "request_id": request_id,
            "member_id": result.member_id,
            "step": "claim_complete",
            "transaction_type": result.transaction_type.value,
            "character_income": str(result.character_income),
            "digit_income": str(result.digit_income),
            "total_income": str(result.total_income),
            "new_balance": str(result.new_balance),
            "duration_ms": duration_ms,
        },
    )


def log_job_run(summary: JobRunSummary) -> None:
    """Log the per-run summary of a batch job"""
    log = logging.warning if summary.errors else logging.info
    log(
        f"Job {summary.job} {summary.status}",
        extra={
            "job": summary.job,
            "status": summary.status,
            "total": summary.total,
            "processed": summary.processed,
            "updated": summary.updated,
            "skipped": summary.skipped,
            "errors": summary.errors,
            "failed_member_ids": summary.failed_member_ids,
            "total_amount": str(summary.total_amount),
            "duration_seconds": round(summary.duration_seconds, 3),
        },
    )
