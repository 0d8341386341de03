"""
Logging configuration for owdev.

Provides plain or structured JSON logging. Every record handled while an
action runs is stamped with that action's activation id and name, in both
formats.
"""

import json
import logging
import sys
import time
from typing import Any, Dict, Optional

from .activation import current_activation

NO_ACTIVATION = "-"

PLAIN_FORMAT = "%(asctime)s %(levelname)s [%(activation_id)s %(action_name)s] %(name)s: %(message)s"


class ActivationFilter(logging.Filter):
    """Stamps records with the current activation, or "-" outside of one."""

    def filter(self, record: logging.LogRecord) -> bool:
        activation = current_activation()
        if activation is None:
            record.activation_id = NO_ACTIVATION
            record.action_name = NO_ACTIVATION
        else:
            record.activation_id = activation.activation_id
            record.action_name = activation.action_name
        return True


def _activation_fields(record: logging.LogRecord) -> Dict[str, str]:
    activation_id = getattr(record, "activation_id", NO_ACTIVATION)
    if activation_id != NO_ACTIVATION:
        return {"activation_id": activation_id, "action_name": record.action_name}
    # formatter used without the filter
    activation = current_activation()
    if activation is None:
        return {}
    return {"activation_id": activation.activation_id, "action_name": activation.action_name}


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    One JSON object per line, with the activation fields when the record
    was emitted inside an invocation.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": time.strftime('%Y-%m-%dT%H:%M:%SZ', time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_data.update(_activation_fields(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_fields'):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class InvocationLogger:
    """
    Logger for invocation events.

    Each method emits one record with an `event_type` and the event's
    fields attached as `extra_fields`.
    """

    def __init__(self, name: str = "owdev.invocation"):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, event_type: str, **kwargs) -> None:
        if not self._logger.isEnabledFor(level):
            return
        extra = {"event_type": event_type, **kwargs}

        record = self._logger.makeRecord(
            self._logger.name,
            level,
            "",
            0,
            f"{event_type}: {kwargs.get('message', '')}",
            (),
            None
        )
        record.extra_fields = extra
        self._logger.handle(record)

    def invocation_start(self, action_name: str, activation_id: str) -> None:
        self._log(
            logging.DEBUG,
            "INVOCATION_START",
            action_name=action_name,
            activation_id=activation_id,
            message=f"calling action {action_name}"
        )

    def invocation_result(
        self,
        action_name: str,
        activation_id: Optional[str],
        status_code: Any,
        duration_ms: Optional[float] = None
    ) -> None:
        """Log the normalized status of an invocation."""
        level = logging.INFO
        if isinstance(status_code, int) and status_code >= 400:
            level = logging.WARNING
        self._log(
            level,
            "INVOCATION_RESULT",
            action_name=action_name,
            activation_id=activation_id,
            status_code=status_code,
            duration_ms=duration_ms,
            message=f"{action_name} returned {status_code}"
        )

    def sequence_step(self, sequence_name: str, index: int, action_name: str) -> None:
        self._log(
            logging.INFO,
            "SEQUENCE_STEP",
            sequence_name=sequence_name,
            index=index,
            action_name=action_name,
            message=f"calling action {action_name}"
        )

    def auth_rejected(self, action_name: str, missing_header: str) -> None:
        self._log(
            logging.WARNING,
            "AUTH_REJECTED",
            action_name=action_name,
            missing_header=missing_header,
            message=f"missing {missing_header} header for {action_name}"
        )


def configure_logging(
    level: str = "INFO",
    json_format: bool = False,
    log_file: Optional[str] = None
) -> None:
    """
    Route all logging to stdout (and `log_file`), stamped with activations.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: One JSON object per line instead of plain text
        log_file: Optional file that receives the same records
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    formatter = StructuredFormatter() if json_format else logging.Formatter(PLAIN_FORMAT)
    activation_filter = ActivationFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(activation_filter)
        root_logger.addHandler(handler)


# Global invocation logger instance
invocation_log = InvocationLogger()
