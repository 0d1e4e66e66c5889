"""Structured JSON logging for analysis and training runs"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

from finsight.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding timestamp, level and service name"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging on the root logger"""
    logger = logging.getLogger()
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    logger.addHandler(handler)


def log_analysis(
    user_id: str,
    operation: str,
    has_data: bool,
    duration_ms: float,
    reason: Optional[str] = None,
) -> None:
    """Log the outcome of one engine call"""
    extra = {
        "user_id": user_id,
        "step": "analysis_complete",
        "operation": operation,
        "outcome": "ok" if has_data else "insufficient_data",
        "duration_ms": duration_ms,
    }
    if reason:
        extra["reason"] = reason
    logging.info("Analysis completed", extra=extra)


def log_training(
    user_id: str,
    model_type: str,
    success: bool,
    duration_ms: float,
    version: Optional[int] = None,
    accuracy: Optional[float] = None,
    reason: Optional[str] = None,
) -> None:
    """Log a training run; failures carry the reason instead of a version"""
    logging.info(
        "Training completed" if success else "Training failed",
        extra={
            "user_id": user_id,
            "step": "training_complete",
            "model_type": model_type,
            "outcome": "trained" if success else "failed",
            "version": version,
            "accuracy": accuracy,
            "reason": reason,
            "duration_ms": duration_ms,
        },
    )
