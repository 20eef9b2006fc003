"""JSON logging for the suite's hooks, fixtures and page objects.

Every record is one JSON line. Caller `extra` values are merged into the
payload, and records emitted while a test runs are stamped with that test's
nodeid and xdist worker so page-object steps can be traced back to scenarios.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any

_STANDARD_FIELDS = set(logging.makeLogRecord({}).__dict__.keys())
_current_test: str | None = None


def bind_test(nodeid: str) -> None:
    global _current_test
    _current_test = nodeid


def unbind_test() -> None:
    global _current_test
    _current_test = None


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for one-line JSON output."""

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    handler.addFilter(TestContextFilter())
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


class TestContextFilter(logging.Filter):
    """Attach the running test's nodeid and worker id unless the caller set them."""

    __test__ = False

    def filter(self, record: logging.LogRecord) -> bool:
        if _current_test is not None and not hasattr(record, "test_nodeid"):
            record.test_nodeid = _current_test
        if not hasattr(record, "worker"):
            record.worker = os.getenv("PYTEST_XDIST_WORKER", "master")
        return True


class JsonFormatter(logging.Formatter):
    """Serialize log records as compact JSON with support for `extra` fields."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Keep only caller-provided fields; stdlib logging internals stay out of payloads.
        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_FIELDS and not key.startswith("_")
        }
        if extras:
            data.update(extras)
        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)
