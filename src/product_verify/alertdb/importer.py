"""Bulk ingestion of alert records from JSON or JSON Lines files."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Tuple

from ..logging import get_logger
from ..paths import expand_abs
from .db import AlertDatabase
from .parser import AlertValidationError, parse_and_validate_alert

LOG = get_logger("alertdb-importer")


@dataclass
class ImportReport:
    imported: int = 0
    skipped: List[Tuple[int, str]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "imported": self.imported,
            "skipped": [{"index": i, "reason": reason} for i, reason in self.skipped],
        }


def read_alert_records(path: str) -> List[Any]:
    """Load records from a JSON array, an object with an "alerts" array, or JSONL."""
    p = expand_abs(path)
    with open(p, "r", encoding="utf-8") as f:
        text = f.read()
    stripped = text.lstrip()
    if not stripped:
        return []
    if os.path.splitext(p)[1].lower() in {".jsonl", ".ndjson"} or not stripped.startswith(("[", "{")):
        records = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise ValueError(f"{p}:{lineno}: invalid JSON line ({exc})") from exc
        return records
    data = json.loads(text)
    if isinstance(data, dict):
        data = data.get("alerts")
    if not isinstance(data, list):
        raise ValueError(f"{p}: expected a JSON array of alerts or an object with an 'alerts' array")
    return data


def import_alerts(db: AlertDatabase, records: Iterable[Any]) -> ImportReport:
    report = ImportReport()
    for idx, record in enumerate(records):
        try:
            alert = parse_and_validate_alert(record)
        except AlertValidationError as exc:
            LOG.warning(f"Skipping alert record #{idx}: {exc}")
            report.skipped.append((idx, str(exc)))
            continue
        alert_id = db.upsert_alert(alert)
        LOG.debug(f"Upserted alert_id={alert_id} url={alert['url']}")
        report.imported += 1
    LOG.info(f"Imported {report.imported} alert(s); skipped {len(report.skipped)}")
    return report


def import_alerts_file(db: AlertDatabase, path: str) -> ImportReport:
    return import_alerts(db, read_alert_records(path))
