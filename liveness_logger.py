"""
Liveness-Gate - Structured Audit Logger
========================================
Logs every session decision (state changes, challenge completions,
verdicts, resets, glare observations, frame errors) in JSONL format
for post-mortem analysis.

Key Features:
  - JSONL (Newline Delimited JSON) format
  - Thread-safe logging (buffered writes)
  - Levels: SYSTEM, AUDIT, ERROR
  - Entries carrying a session_id expose it at the top level so one
    session can be filtered out of the trail
  - NumPy / Enum aware serialisation
"""

import json
import logging
import os
import sys
import threading
import time
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Create a configured console logger for Liveness-Gate modules."""
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '[%(asctime)s] %(name)-16s %(levelname)-7s %(message)s',
            datefmt='%H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


class LivenessJSONEncoder(json.JSONEncoder):
    """Handles NumPy and Enum types for JSON serialization."""
    def default(self, obj):
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


class LivenessAuditLogger:
    """
    Audit trail for liveness sessions.
    Writes one JSON object per line to <log_dir>/liveness_audit.jsonl.
    """

    def __init__(self, log_dir: str = "logs", filename: str = "liveness_audit.jsonl"):
        self.log_dir = log_dir
        os.makedirs(self.log_dir, exist_ok=True)

        self.log_path = os.path.join(self.log_dir, filename)
        self._file = open(self.log_path, "a", encoding="utf-8")
        self._lock = threading.Lock()

        self.log({
            "event": "system_startup",
            "python_version": sys.version,
            "platform": sys.platform
        }, level="SYSTEM")

    @property
    def closed(self) -> bool:
        return self._file.closed

    def log(self, data: Dict[str, Any], level: str = "AUDIT", event: Optional[str] = None):
        """Append log entry."""
        entry = {
            "timestamp": time.time(),
            "level": level,
            "event": event or data.get("event", "unknown"),
            "data": data
        }
        if "session_id" in data:
            entry["session_id"] = data["session_id"]

        line = json.dumps(entry, cls=LivenessJSONEncoder) + "\n"

        with self._lock:
            if self._file.closed:
                return
            self._file.write(line)
            self._file.flush()

    def error(self, message: str, exception: Optional[Exception] = None, **kwargs):
        """Log structured error with exception details."""
        logging.getLogger("LivenessAudit").error(message, **kwargs)
        err_details = str(exception) if exception else None
        self.log({"message": message, "exception": err_details}, level="ERROR", event="system_error")

    def close(self):
        """Clean shutdown."""
        if self._file.closed:
            return
        self.log({"message": "Logger shutting down"}, level="SYSTEM", event="system_shutdown")
        with self._lock:
            self._file.close()


# One shared logger per directory
_loggers: Dict[str, LivenessAuditLogger] = {}
_loggers_lock = threading.Lock()


def get_audit_logger(log_dir: str = "logs") -> LivenessAuditLogger:
    key = os.path.abspath(log_dir)
    with _loggers_lock:
        logger = _loggers.get(key)
        if logger is None or logger.closed:
            logger = LivenessAuditLogger(log_dir)
            _loggers[key] = logger
        return logger
