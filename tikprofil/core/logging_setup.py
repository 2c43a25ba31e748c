from __future__ import annotations

import json
import logging
import os
import re
from datetime import datetime, timezone

from tikprofil.core.request_context import get_business_id, get_client_ip, get_request_id

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_SENSITIVE_PATTERNS = [
    (re.compile(r"(authorization\s*[:=]\s*bearer\s+)([^\s\"]+)", re.IGNORECASE), r"\1***"),
    (re.compile(r"(token\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE), r"\1***"),
    (re.compile(r"(password\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE), r"\1***"),
    (re.compile(r"(secret\s*[:=]\s*)([^\s\",}]+)", re.IGNORECASE), r"\1***"),
    # customer phone: keep the last 4 digits
    (re.compile(r"(phone\s*[:=]\s*)\d+(\d{4})", re.IGNORECASE), r"\1***\2"),
]


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "request_id": getattr(record, "request_id", None) or get_request_id(),
            "business_id": getattr(record, "business_id", None) or get_business_id(),
            "client_ip": getattr(record, "client_ip", None) or get_client_ip(),
            "module": record.name,
            "message": self._mask(record.getMessage()),
            "duration_ms": getattr(record, "duration_ms", None),
        }
        for key in ("endpoint", "method", "status_code", "order_id", "event"):
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self._mask(self.formatException(record.exc_info))
        return json.dumps(payload, ensure_ascii=False)

    def _mask(self, value: str) -> str:
        masked = value
        for pattern, replacement in _SENSITIVE_PATTERNS:
            masked = pattern.sub(replacement, masked)
        return masked


def configure_logging() -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(LOG_LEVEL)

    handler = logging.StreamHandler()
    formatter = JsonFormatter("%(message)s")
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(logger_name).setLevel(LOG_LEVEL)
