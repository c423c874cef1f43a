from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..domain.normalize import extract_batch_numbers, normalize_batch_number
from ..logging import get_logger
from .constants import ALERT_TYPE_DEFAULT, SEVERITY_CHOICES, SEVERITY_DEFAULT


LOG = get_logger("alertdb-parser")


class AlertValidationError(Exception):
    pass


def _pick(payload: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in payload and payload[k] is not None:
            return payload[k]
    return None


def _norm_s(s: Any) -> Optional[str]:
    return str(s).strip() if isinstance(s, str) and s.strip() else None


def _normalize_timestamp(value: Any) -> str:
    if value is None:
        return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds")
    s = _norm_s(value)
    if not s:
        raise AlertValidationError("scraped_at must be an ISO date or datetime string")
    try:
        if len(s) == 10:
            return datetime.fromisoformat(s).isoformat(timespec="seconds")
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        raise AlertValidationError(f"scraped_at is not ISO formatted: {s}")
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat(timespec="seconds")


def _batch_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [part for part in value.split(",")]
    if not isinstance(value, list):
        raise AlertValidationError("batch_numbers must be a list of strings")
    out: List[str] = []
    for item in value:
        b = normalize_batch_number(item if isinstance(item, str) else str(item))
        if b and b not in out:
            out.append(b)
    return out


def parse_and_validate_alert(payload: Any) -> Dict[str, Any]:
    """Validate and normalize one alert record to a DB-ready dict.

    Accepts snake_case or camelCase keys:
    - title (required), url (required), clean_content/cleanContent
    - batch_numbers/batchNumbers: list or comma-separated string; when
      absent, batch numbers are extracted from the content
    - manufacturer, alert_type/alertType, severity, scraped_at/scrapedAt, active
    """
    if not isinstance(payload, dict):
        raise AlertValidationError("Alert record must be a JSON object")

    title = _norm_s(payload.get("title"))
    if not title:
        raise AlertValidationError("title required")
    url = _norm_s(payload.get("url"))
    if not url:
        raise AlertValidationError("url required")

    content = _norm_s(_pick(payload, "clean_content", "cleanContent", "content"))

    raw_batches = _pick(payload, "batch_numbers", "batchNumbers")
    batch_numbers = _batch_list(raw_batches)
    if raw_batches is None and content:
        batch_numbers = extract_batch_numbers(content)

    severity = (_norm_s(payload.get("severity")) or SEVERITY_DEFAULT).upper()
    if severity not in SEVERITY_CHOICES:
        LOG.debug(f"Unknown severity {severity!r} for {url}; using {SEVERITY_DEFAULT}")
        severity = SEVERITY_DEFAULT

    active = payload.get("active", True)
    if not isinstance(active, bool):
        raise AlertValidationError("active must be a boolean")

    return {
        "title": title,
        "url": url,
        "clean_content": content,
        "batch_numbers": batch_numbers,
        "manufacturer": _norm_s(payload.get("manufacturer")),
        "alert_type": _norm_s(_pick(payload, "alert_type", "alertType")) or ALERT_TYPE_DEFAULT,
        "severity": severity,
        "scraped_at": _normalize_timestamp(_pick(payload, "scraped_at", "scrapedAt")),
        "active": active,
    }
