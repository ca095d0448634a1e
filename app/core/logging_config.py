"""
Logging configuration for the premium subscriptions API.

Console output plus a rotating file under logs/. Payment provider payloads
pass through sanitize_log_data before they are logged.
"""
import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any

SENSITIVE_KEYS = [
    "password", "token", "secret", "key", "authorization",
    "stripe_secret_key", "stripe_webhook_secret", "database_url",
    "card", "payment_method", "client_secret",
]

_CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"


def setup_logging(log_level: str = "INFO", log_dir: str = "logs", log_file: str = "premium.log"):
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the rotating log file
        log_file: Log file name inside log_dir
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    directory = Path(log_dir)
    directory.mkdir(exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    file_handler = RotatingFileHandler(
        directory / log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root.addHandler(console_handler)
    root.addHandler(file_handler)

    # Quiet chatty libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(sensitive in lowered for sensitive in SENSITIVE_KEYS)


def sanitize_log_data(data: Any) -> Any:
    """
    Redact sensitive values from a log payload.

    Nested dicts and lists (webhook events, provider responses) are walked
    recursively. The input is never modified.

    Args:
        data: Dictionary, list or scalar to sanitize

    Returns:
        Sanitized copy without secrets
    """
    if isinstance(data, dict):
        return {
            key: "***REDACTED***" if _is_sensitive(str(key)) else sanitize_log_data(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [sanitize_log_data(item) for item in data]
    return data
