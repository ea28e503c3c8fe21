"""Centralized logging configuration.

This module provides:
- PlainFormatter for stderr output
- JSONFormatter for the optional structured log file
- RedactingFilter so tokens, codes and states never reach a handler in clear text
"""

import json
import logging
import re
import sys
from datetime import datetime, timezone
from typing import Optional


# key=value, "key": "value" and key: value forms
_SECRET_KEYS = ("access_token", "refresh_token", "client_secret", "code", "state")
_SECRET_PATTERN = re.compile(
    r'(?P<key>\b(?:' + "|".join(_SECRET_KEYS) + r')\b["\']?\s*[=:]\s*["\']?)(?P<value>[^\s&"\',)}]+)'
)


def redact(text: str) -> str:
    """Mask the value of any secret-looking key in ``text``."""
    return _SECRET_PATTERN.sub(lambda m: f"{m.group('key')}***", text)


class RedactingFilter(logging.Filter):
    """Rewrite records so tokens, codes and secrets are masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, app_name: str = "slump"):
        super().__init__()
        self.app_name = app_name

    def format(self, record: logging.LogRecord) -> str:
        # Extract tag from message if present: [TAG] message
        tag = None
        message = record.getMessage()
        tag_match = re.match(r'\[([A-Z_]+)\]\s*(.*)', message, re.DOTALL)
        if tag_match:
            tag = tag_match.group(1)
            message = tag_match.group(2)

        log_entry = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "app": self.app_name,
            "level": record.levelname,
            "tag": tag,
            "message": message,
            "module": record.module,
            "extra": {
                "function": record.funcName,
                "line": record.lineno,
                "thread": record.threadName,
            }
        }

        if record.exc_info:
            log_entry["extra"]["exception"] = redact(self.formatException(record.exc_info))

        return json.dumps(log_entry)


class PlainFormatter(logging.Formatter):
    """Plain text formatter for stderr output (local debugging)."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Configure the root logger.

    Args:
        level: Level name for the root logger and its handlers.
        log_file: Optional path for a JSON-lines log file.

    Returns:
        Configured root logger.
    """
    level_value = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(level_value, int):
        level_value = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level_value)
    root_logger.handlers.clear()

    redacting = RedactingFilter()

    # Always add stderr handler (plain text for readability)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level_value)
    stderr_handler.setFormatter(PlainFormatter())
    stderr_handler.addFilter(redacting)
    root_logger.addHandler(stderr_handler)

    if log_file:
        try:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
        except OSError as e:
            print(f"[WARNING] Cannot open log file {log_file}: {e}", file=sys.stderr)
        else:
            file_handler.setLevel(level_value)
            file_handler.setFormatter(JSONFormatter())
            file_handler.addFilter(redacting)
            root_logger.addHandler(file_handler)

    # Suppress noisy HTTP client and server logs
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"[STARTUP] Logging at {logging.getLevelName(level_value)}"
                + (f", JSON log: {log_file}" if log_file else ""))

    return root_logger
