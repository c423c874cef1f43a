import os
from dataclasses import dataclass
from typing import Dict, Optional

from dotenv import dotenv_values

from .logging import get_logger

log = get_logger("config")


DEFAULT_SOURCE_URL = "https://nafdac.gov.ng/category/recalls-and-alerts/"
OCR_BACKENDS = ("tesseract", "http", "none")


@dataclass
class VerifyConfig:
    db_path: Optional[str] = None
    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: int = 60
    request_timeout_seconds: float = 30.0
    ocr_backend: str = "tesseract"
    ocr_service_url: Optional[str] = None
    ocr_timeout_seconds: float = 20.0
    alert_source_url: str = DEFAULT_SOURCE_URL
    user_id_header: str = "X-User-Id"


def _find_upwards(start_dir: str, filename: str) -> Optional[str]:
    """Return first matching file found when walking up from start_dir.

    This makes running tools from subdirectories (e.g., `src/`) still find
    repository-level config files like `.env`.
    """
    d = os.path.abspath(start_dir or ".")
    while True:
        candidate = os.path.join(d, filename)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(d)
        if parent == d:
            return None
        d = parent


def _read_dotenv(dotenv_dir: str) -> Dict[str, str]:
    """Return key/value pairs from the nearest .env; does not touch os.environ."""
    path = _find_upwards(dotenv_dir, ".env")
    if not path:
        log.debug(f"No .env found starting from: {os.path.abspath(dotenv_dir)}")
        return {}
    values = {k: v for k, v in dotenv_values(path).items() if v is not None}
    log.debug(f"Loaded {len(values)} key(s) from .env at {path}")
    return values


def _lookup(env: Dict[str, str], key: str) -> Optional[str]:
    v = os.environ.get(key)
    if v is None:
        v = env.get(key)
    if v is None:
        return None
    v = v.strip()
    return v or None


def _int_setting(env: Dict[str, str], key: str, default: int, *, minimum: int = 1) -> int:
    raw = _lookup(env, key)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning(f"{key}={raw!r} is not an integer; using default {default}")
        return default
    if value < minimum:
        log.warning(f"{key}={value} is below {minimum}; using default {default}")
        return default
    return value


def _float_setting(env: Dict[str, str], key: str, default: float) -> float:
    raw = _lookup(env, key)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        log.warning(f"{key}={raw!r} is not a number; using default {default}")
        return default
    if value <= 0:
        log.warning(f"{key}={value} must be positive; using default {default}")
        return default
    return value


def load_config(dotenv_dir: Optional[str] = None) -> VerifyConfig:
    """Build the service configuration from the environment and .env.

    Environment variables win over .env entries. Invalid values fall back to
    defaults with a warning instead of aborting startup.
    """
    env = _read_dotenv(dotenv_dir or os.getcwd())

    backend = (_lookup(env, "OCR_BACKEND") or "tesseract").lower()
    if backend not in OCR_BACKENDS:
        log.warning(f"Unknown OCR_BACKEND={backend!r}; OCR disabled")
        backend = "none"
    service_url = _lookup(env, "OCR_SERVICE_URL")
    if backend == "http" and not service_url:
        log.warning("OCR_BACKEND=http without OCR_SERVICE_URL; OCR disabled")
        backend = "none"

    cfg = VerifyConfig(
        db_path=_lookup(env, "ALERT_DB_PATH"),
        rate_limit_max_requests=_int_setting(env, "RATE_LIMIT_MAX_REQUESTS", 10),
        rate_limit_window_seconds=_int_setting(env, "RATE_LIMIT_WINDOW_SECONDS", 60),
        request_timeout_seconds=_float_setting(env, "REQUEST_TIMEOUT_SECONDS", 30.0),
        ocr_backend=backend,
        ocr_service_url=service_url,
        ocr_timeout_seconds=_float_setting(env, "OCR_TIMEOUT_SECONDS", 20.0),
        alert_source_url=_lookup(env, "ALERT_SOURCE_URL") or DEFAULT_SOURCE_URL,
        user_id_header=_lookup(env, "USER_ID_HEADER") or "X-User-Id",
    )
    log.debug(f"Configuration: {cfg}")
    return cfg
