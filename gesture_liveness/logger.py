"""
Gesture Liveness — Logging & Audit Trail
========================================
Console logging for every module plus an optional structured audit trail.

Audit trail:
  - JSONL (one JSON object per line) under ``log_dir``
  - Thread-safe appends, flushed per entry
  - Levels: AUDIT, WARN, ERROR, SYSTEM
  - Session lifecycle and gesture scores only; landmark coordinates are
    biometric data and are never written
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
import time
from typing import Any, Dict, Optional

import numpy as np


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Create a configured logger for gesture liveness modules."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '[%(asctime)s] %(name)-12s %(levelname)-7s %(message)s',
            datefmt='%H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


class LivenessJSONEncoder(json.JSONEncoder):
    """Handles NumPy and Enum values for JSON serialization."""
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if hasattr(obj, "value") and isinstance(obj.value, (str, int)):
            return obj.value
        return super().default(obj)


class AuditLogger:
    """Append-only JSONL audit log of liveness sessions."""

    FILENAME = "liveness_audit.jsonl"

    def __init__(self, log_dir: str = "logs"):
        self.log_dir = log_dir
        os.makedirs(self.log_dir, exist_ok=True)

        self.log_path = os.path.join(self.log_dir, self.FILENAME)
        self._file = open(self.log_path, "a", encoding="utf-8")
        self._lock = threading.Lock()

        self.log({
            "event": "system_startup",
            "python_version": sys.version,
            "platform": sys.platform
        }, level="SYSTEM")

    def log(self, data: Dict[str, Any], level: str = "AUDIT", event: Optional[str] = None):
        """Append log entry."""
        entry = {
            "timestamp": time.time(),
            "level": level,
            "event": event or data.get("event", "unknown"),
            "data": data
        }
        line = json.dumps(entry, cls=LivenessJSONEncoder) + "\n"

        with self._lock:
            if self._file.closed:
                raise ValueError(f"Audit log {self.log_path} is closed")
            self._file.write(line)
            self._file.flush()

    def warn(self, message: str, context: Optional[dict] = None):
        logging.getLogger("LivenessAudit").warning(message)
        self.log({"message": message, "context": context}, level="WARN", event="system_warning")

    def error(self, message: str, exception: Optional[BaseException] = None):
        logging.getLogger("LivenessAudit").error(message)
        err_details = str(exception) if exception else None
        self.log({"message": message, "exception": err_details}, level="ERROR", event="system_error")

    @property
    def closed(self) -> bool:
        return self._file.closed

    def close(self):
        """Clean shutdown."""
        with self._lock:
            if self._file.closed:
                return
        self.log({"message": "Audit logger shutting down"}, level="SYSTEM", event="system_shutdown")
        with self._lock:
            self._file.close()

    def __enter__(self) -> "AuditLogger":
        return self

    def __exit__(self, *args) -> None:
        self.close()
