"""
Logging configuration shared by the app, pages and scripts.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from warehouse_intel.config import config


ROOT_LOGGER = "warehouse_intel"


class JSONFormatter(logging.Formatter):
    """JSON structured log formatter for production."""
    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in ("site_id", "scheduled_date", "shift_code", "table"):
            if hasattr(record, key):
                log_entry[key] = str(getattr(record, key))
        return json.dumps(log_entry)


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> logging.Logger:
    """Configure the package logger. Safe to call on every Streamlit rerun."""
    level = level or config.log_level
    json_output = config.log_json if json_output is None else json_output

    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))

    logger.handlers = [handler]
    logger.propagate = False

    # Suppress noisy loggers
    for name in ["urllib3", "watchdog"]:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Return a logger under the package namespace."""
    if not name.startswith(ROOT_LOGGER):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
