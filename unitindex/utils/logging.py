"""Centralized logging configuration using Loguru.

Every module logs through the single configured loguru logger:

    from unitindex.utils.logging import logger
    logger.info("Extracted {} jobs", count)
    logger.debug("Tier miss")  # Only shows if UNITINDEX_LOG_LEVEL=DEBUG

Environment Variables:
    UNITINDEX_LOG_LEVEL: DEBUG|INFO|WARNING|ERROR (default: INFO)
    UNITINDEX_LOG_JSON: 0|1 (default: 0, human-readable on stderr)
    UNITINDEX_LOG_FILE: path to an NDJSON log file (optional)
    UNITINDEX_REQUEST_ID: correlation ID attached to every JSON record
"""

import json
import os
import sys
import uuid
from pathlib import Path

from loguru import logger

# Remove default handler
logger.remove()

# Numeric levels for NDJSON consumers
JSON_LEVELS = {
    "TRACE": 10,
    "DEBUG": 20,
    "INFO": 30,
    "SUCCESS": 30,
    "WARNING": 40,
    "ERROR": 50,
    "CRITICAL": 60,
}

_log_level = os.environ.get("UNITINDEX_LOG_LEVEL", "INFO").upper()
_json_mode = os.environ.get("UNITINDEX_LOG_JSON", "0") == "1"
_log_file = os.environ.get("UNITINDEX_LOG_FILE")
_request_id = os.environ.get("UNITINDEX_REQUEST_ID") or str(uuid.uuid4())


def _ndjson_line(record) -> str:
    """Render a loguru record as one NDJSON line."""
    payload = {
        "level": JSON_LEVELS.get(record["level"].name, 30),
        "time": int(record["time"].timestamp() * 1000),
        "msg": record["message"],
        "pid": record["process"].id,
        "module": record["name"],
        "request_id": record["extra"].get("request_id", _request_id),
    }

    for key, value in record["extra"].items():
        if key != "request_id":
            payload[key] = value

    if record["exception"]:
        exc = record["exception"]
        payload["err"] = {
            "type": exc.type.__name__ if exc.type else "Error",
            "message": str(exc.value) if exc.value else "",
        }

    return json.dumps(payload, default=str)


def json_stdout_sink(message):
    """Write NDJSON records to stdout.

    Never call logger.* inside a sink - it recurses.
    """
    sys.stdout.write(_ndjson_line(message.record) + "\n")
    sys.stdout.flush()


_human_format = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}:{function}:{line}</cyan> - "
    "<level>{message}</level>"
)

logger.level("DEBUG", color="<blue>")
logger.level("INFO", color="<white>")
logger.level("WARNING", color="<yellow>")
logger.level("ERROR", color="<red>")
logger.level("CRITICAL", color="<red><bold>")

if _json_mode:
    logger.add(json_stdout_sink, level=_log_level, colorize=False)
else:
    logger.add(
        sys.stderr,
        level=_log_level,
        format=_human_format,
        colorize=None,  # Auto-detect: colors if TTY, plain if piped
    )

if _log_file:

    def _file_json_sink(message):
        """Append NDJSON records to UNITINDEX_LOG_FILE."""
        with open(_log_file, "a", encoding="utf-8") as f:
            f.write(_ndjson_line(message.record) + "\n")

    logger.add(_file_json_sink, level="DEBUG")


def configure_file_logging(log_dir: Path, level: str = "DEBUG") -> int:
    """Add a rotating human-readable log file under *log_dir*.

    Args:
        log_dir: Directory for the log file (e.g., Path(".unitindex"))
        level: Minimum log level for file output

    Returns:
        The loguru handler id, so callers can remove it again.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "unitindex.log"

    return logger.add(
        log_file,
        rotation="10 MB",
        retention="7 days",
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    )


def get_request_id() -> str:
    """Get the current request ID for correlation."""
    return _request_id


__all__ = [
    "logger",
    "configure_file_logging",
    "get_request_id",
]
