"""
Logging setup for the affiliate engine.

Console output in a readable format; JSON lines when LOG_FORMAT=json is
requested by the deployment (log collectors parse those directly).
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional


class StructuredFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: Optional[str] = None) -> None:
    """Configure the root logger once for the application process."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    # Avoid duplicated handlers on reload
    for handler in list(root.handlers):
        if getattr(handler, "_affiliate_engine", False):
            root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)-8s %(name)s - %(message)s"
        ))
    handler._affiliate_engine = True
    root.addHandler(handler)

    # SQL echo is controlled by DEBUG on the engine, keep sqlalchemy quiet otherwise
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
