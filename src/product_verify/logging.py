import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, Optional


_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def _coerce_level(value: Optional[str]) -> int:
    if isinstance(value, str):
        return _LEVELS.get(value.upper().strip(), logging.INFO)
    if isinstance(value, int):
        return value
    return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """Return a configured stdout logger with consistent formatting.

    - Honors LOG_LEVEL (default INFO) and LOG_FILE (optional path).
    - Each named logger is configured once; repeated calls reuse it.
    """
    logger = logging.getLogger(name)
    if getattr(logger, "_product_verify_configured", False):
        return logger

    level = _coerce_level(os.environ.get("LOG_LEVEL", "INFO"))
    logger.setLevel(level)

    fmt = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(fmt=fmt, datefmt=datefmt)

    sh = logging.StreamHandler()
    sh.setLevel(level)
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    # Optional log file (appends)
    log_file = os.environ.get("LOG_FILE")
    if log_file:
        try:
            fh = logging.FileHandler(log_file, encoding="utf-8")
            fh.setLevel(level)
            fh.setFormatter(formatter)
            logger.addHandler(fh)
        except OSError:
            logger.warning("LOG_FILE could not be opened; continuing without file logging")

    logger.propagate = False
    setattr(logger, "_product_verify_configured", True)
    return logger


_SECURITY_LOG = get_logger("security")


def log_security_event(
    event: str,
    *,
    ip: Optional[str] = None,
    user_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    level: int = logging.INFO,
) -> None:
    """Write a security-relevant event (rate limits, bad input, outcomes).

    Product text and image payloads must not be passed in `details`.
    """
    timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
    _SECURITY_LOG.log(
        level,
        "SECURITY EVENT [%s]: %s ip=%s user=%s details=%s",
        timestamp,
        event,
        ip or "unknown",
        user_id or "unknown",
        details or {},
    )
