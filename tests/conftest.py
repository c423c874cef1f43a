from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Dict, List

import pytest

sys.path.insert(0, os.path.abspath("src"))

from product_verify.alertdb import AlertDatabase, import_alerts


SEED_ALERTS: List[Dict[str, object]] = [
    {
        "title": "Counterfeit Amoxicillin 500mg Capsules",
        "url": "https://alerts.example/amoxicillin",
        "cleanContent": "NAFDAC alerts the public about counterfeit Amoxicillin capsules. Batch No: AMX2301, AMX2302.",
        "alertType": "Counterfeit",
        "severity": "HIGH",
        "scrapedAt": "2024-05-01T09:00:00",
    },
    {
        "title": "Recall of Paracetamol Syrup",
        "url": "https://alerts.example/paracetamol",
        "cleanContent": "Paracetamol syrup batch PCM4455 recalled due to contamination.",
        "alertType": "Recall",
        "scrapedAt": "2024-06-01T09:00:00",
    },
    {
        "title": "Expired Insulin in circulation",
        "url": "https://alerts.example/insulin",
        "cleanContent": "Insulin vials with Lot number INS9001 have expired.",
        "alertType": "Expired",
        "scrapedAt": "2024-04-01T09:00:00",
    },
    {
        "title": "Counterfeit Amoxicillin (withdrawn notice)",
        "url": "https://alerts.example/amoxicillin-old",
        "cleanContent": "Amoxicillin notice withdrawn. Batch No: AMX1999.",
        "alertType": "Counterfeit",
        "scrapedAt": "2023-01-01T09:00:00",
        "active": False,
    },
]


@pytest.fixture()
def db(tmp_path: Path) -> AlertDatabase:
    return AlertDatabase(db_path=str(tmp_path / "alerts.sqlite3"))


@pytest.fixture()
def seeded_db(db: AlertDatabase) -> AlertDatabase:
    report = import_alerts(db, SEED_ALERTS)
    assert report.imported == len(SEED_ALERTS)
    return db
