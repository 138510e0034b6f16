"""
Logging configuration with optional JSON output.
"""
from __future__ import annotations
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict

from pulsetime.config import settings

# extras copied into JSON records when present on the LogRecord
EXTRA_FIELDS = (
    "request_id",
    "path",
    "status",
    "duration_ms",
    "user_id",
    "pulse_id",
    "project_id",
)


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "msg": record.getMessage(),
            "logger": record.name,
            "service": "pulsetime",
        }

        for field in EXTRA_FIELDS:
            if hasattr(record, field):
                log_obj[field] = getattr(record, field)

        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def configure_logging(level: int = logging.INFO, json_output: bool | None = None) -> None:
    """
    Configure logging with optional JSON format.
    Falls back to the LOG_JSON setting when json_output is not given.
    """
    use_json = settings.LOG_JSON if json_output is None else json_output

    handler = logging.StreamHandler(sys.stdout)

    if use_json:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )
