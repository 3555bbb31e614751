"""Structured JSON logging for the sandbox"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List

from pythonjsonlogger import jsonlogger

from sandbox_bank.config import settings


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


def log_job_progress(
    job_id: str,
    user_id: str,
    provider_id: str,
    stage: str,
    unmet: List[str],
    problems: List[str],
) -> None:
    """Log one round of access-job progression"""
    logging.info(
        "Job progressed",
        extra={
            "job_id": job_id,
            "user_id": user_id,
            "provider_id": provider_id,
            "step": "job_progress",
            "stage": stage,
            "unmet_challenges": unmet,
            "problems": problems,
        },
    )


def log_transfer_progress(
    transfer_id: str,
    user_id: str,
    from_intent: str | None,
    to_intent: str | None,
    state: str,
    version: int,
    confirm: bool,
) -> None:
    """Log one round of transfer authorization"""
    logging.info(
        "Transfer progressed",
        extra={
            "transfer_id": transfer_id,
            "user_id": user_id,
            "step": "transfer_progress",
            "from_intent": from_intent,
            "to_intent": to_intent,
            "state": state,
            "version": version,
            "confirm": confirm,
        },
    )


def log_transfer_rejected(transfer_id: str, code: str, version: int, intent: str | None) -> None:
    """Log a submission turned away by the version/intent/state checks"""
    logging.warning(
        "Transfer submission rejected",
        extra={
            "transfer_id": transfer_id,
            "step": "transfer_rejected",
            "code": code,
            "version": version,
            "intent": intent,
        },
    )
