from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..domain.models import Alert
from ..logging import get_logger
from ..paths import find_project_root, var_dir
from .constants import ALERT_TYPE_DEFAULT, SEVERITY_CHOICES, SEVERITY_DEFAULT


LOG = get_logger("alertdb-db")


DEFAULT_DB_FOLDER = "alertdb"
DEFAULT_DB_FILENAME = "alerts.sqlite3"

SEVERITY_ENUM_SQL = ", ".join(f"'{value}'" for value in SEVERITY_CHOICES)


def _unicode_lower(value: Optional[str]) -> Optional[str]:
    # SQLite LOWER() only folds ASCII
    return value.lower() if value is not None else None

ALERT_COLUMNS = (
    "a.alert_id, a.title, a.clean_content, a.url, a.manufacturer, "
    "a.alert_type, a.severity, a.scraped_at, a.active"
)


SCHEMA_SQL = f"""
PRAGMA foreign_keys = ON;

-- 1) Regulatory alert corpus
CREATE TABLE IF NOT EXISTS alerts (
  alert_id      INTEGER PRIMARY KEY,
  title         TEXT NOT NULL,
  clean_content TEXT,
  url           TEXT NOT NULL UNIQUE,
  manufacturer  TEXT,
  alert_type    TEXT NOT NULL DEFAULT '{ALERT_TYPE_DEFAULT}',
  severity      TEXT NOT NULL DEFAULT '{SEVERITY_DEFAULT}'
                CHECK(severity IN ({SEVERITY_ENUM_SQL})),
  scraped_at    TEXT NOT NULL,       -- "YYYY-MM-DDTHH:MM:SS"
  active        INTEGER NOT NULL DEFAULT 1 CHECK(active IN (0, 1)),
  created_at    TEXT DEFAULT (datetime('now')),
  updated_at    TEXT DEFAULT (datetime('now'))
);

-- Batch list per alert; batch_number is stored upper-case
CREATE TABLE IF NOT EXISTS alert_batches (
  alert_id      INTEGER NOT NULL REFERENCES alerts(alert_id) ON DELETE CASCADE,
  position      INTEGER NOT NULL,
  batch_number  TEXT NOT NULL,
  PRIMARY KEY (alert_id, batch_number)
);

-- 2) Verification history
CREATE TABLE IF NOT EXISTS product_checks (
  check_id            INTEGER PRIMARY KEY,
  user_id             TEXT NOT NULL,
  product_name        TEXT NOT NULL,
  product_description TEXT NOT NULL,
  batch_number        TEXT,
  image_count         INTEGER NOT NULL DEFAULT 0 CHECK(image_count >= 0),
  created_at          TEXT DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS check_results (
  result_id      INTEGER PRIMARY KEY,
  check_id       INTEGER NOT NULL UNIQUE REFERENCES product_checks(check_id) ON DELETE CASCADE,
  user_id        TEXT NOT NULL,
  is_counterfeit INTEGER NOT NULL CHECK(is_counterfeit IN (0, 1)),
  summary        TEXT NOT NULL,
  source_url     TEXT,
  source         TEXT,
  batch_number   TEXT,
  alert_type     TEXT,
  confidence     INTEGER NOT NULL CHECK(confidence BETWEEN 0 AND 100),
  created_at     TEXT DEFAULT (datetime('now'))
);

-- Helpful indexes
CREATE INDEX IF NOT EXISTS idx_alerts_active_scraped ON alerts(active, scraped_at);
CREATE INDEX IF NOT EXISTS idx_alert_batches_number  ON alert_batches(batch_number);
CREATE INDEX IF NOT EXISTS idx_checks_user_created   ON product_checks(user_id, created_at);
"""


class AlertDatabase:
    """SQLite-backed alert corpus and verification history.

    - Places DB under `<repo-root>/var/alertdb/alerts.sqlite3` unless an
      explicit `db_path` is given.
    - Ensures schema on first use.
    - Database errors (`sqlite3.Error`) propagate to the caller.
    """

    def __init__(self, root_dir: Optional[str] = None, *, db_path: Optional[str] = None) -> None:
        if db_path:
            self.db_path = os.path.abspath(db_path)
            os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
        else:
            root = find_project_root(root_dir)
            db_folder = os.path.join(var_dir(root), DEFAULT_DB_FOLDER)
            os.makedirs(db_folder, exist_ok=True)
            self.db_path = os.path.join(db_folder, DEFAULT_DB_FILENAME)
        LOG.info(f"Alert DB path: {self.db_path}")
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.create_function("py_lower", 1, _unicode_lower, deterministic=True)
        conn.execute("PRAGMA foreign_keys = ON;")
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
            except sqlite3.OperationalError:
                # Non-fatal; continue with schema creation
                pass
            cur.executescript(SCHEMA_SQL)
            conn.commit()
            LOG.debug("Alert DB schema ensured.")

    # --------------- Alert corpus ---------------
    def upsert_alert(self, alert: Dict[str, Any]) -> int:
        """Insert or update an alert keyed by URL; replaces its batch list.

        Expects a dict already normalized by `parse_and_validate_alert`.
        """
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO alerts (
                    title, clean_content, url, manufacturer,
                    alert_type, severity, scraped_at, active
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET
                    title=excluded.title,
                    clean_content=excluded.clean_content,
                    manufacturer=excluded.manufacturer,
                    alert_type=excluded.alert_type,
                    severity=excluded.severity,
                    scraped_at=excluded.scraped_at,
                    active=excluded.active,
                    updated_at=datetime('now')
                RETURNING alert_id;
                """,
                (
                    alert["title"],
                    alert.get("clean_content"),
                    alert["url"],
                    alert.get("manufacturer"),
                    alert.get("alert_type") or ALERT_TYPE_DEFAULT,
                    alert.get("severity") or SEVERITY_DEFAULT,
                    alert["scraped_at"],
                    1 if alert.get("active", True) else 0,
                ),
            )
            alert_id = int(cur.fetchone()[0])
            cur.execute("DELETE FROM alert_batches WHERE alert_id = ?;", (alert_id,))
            seen: List[str] = []
            for batch in alert.get("batch_numbers") or []:
                key = str(batch).strip().upper()
                if not key or key in seen:
                    continue
                seen.append(key)
                cur.execute(
                    "INSERT INTO alert_batches (alert_id, position, batch_number) VALUES (?, ?, ?);",
                    (alert_id, len(seen), key),
                )
            conn.commit()
            return alert_id

    def set_alert_active(self, alert_id: int, active: bool) -> bool:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "UPDATE alerts SET active = ?, updated_at = datetime('now') WHERE alert_id = ?;",
                (1 if active else 0, alert_id),
            )
            conn.commit()
            return cur.rowcount > 0

    def count_active_alerts(self) -> int:
        with self.connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM alerts WHERE active = 1;").fetchone()
            return int(row[0])

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(f"SELECT {ALERT_COLUMNS} FROM alerts a WHERE a.alert_id = ?;", (alert_id,))
            rows = cur.fetchall()
            alerts = self._hydrate(conn, rows)
        return alerts[0] if alerts else None

    def _hydrate(self, conn: sqlite3.Connection, rows: Sequence[sqlite3.Row]) -> List[Alert]:
        if not rows:
            return []
        ids = [int(r["alert_id"]) for r in rows]
        placeholders = ", ".join("?" for _ in ids)
        batches: Dict[int, List[str]] = {i: [] for i in ids}
        for b in conn.execute(
            f"""
            SELECT alert_id, batch_number
            FROM alert_batches
            WHERE alert_id IN ({placeholders})
            ORDER BY alert_id, position;
            """,
            ids,
        ):
            batches[int(b["alert_id"])].append(b["batch_number"])
        return [
            Alert(
                alert_id=int(r["alert_id"]),
                title=r["title"],
                url=r["url"],
                clean_content=r["clean_content"],
                batch_numbers=batches[int(r["alert_id"])],
                manufacturer=r["manufacturer"],
                alert_type=r["alert_type"],
                severity=r["severity"],
                scraped_at=r["scraped_at"],
                active=bool(r["active"]),
            )
            for r in rows
        ]

    def _find_active(self, where_sql: str, params: Sequence[Any], limit: int) -> List[Alert]:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                f"""
                SELECT {ALERT_COLUMNS}
                FROM alerts a
                WHERE a.active = 1 AND {where_sql}
                ORDER BY a.scraped_at DESC, a.alert_id ASC
                LIMIT ?;
                """,
                (*params, int(limit)),
            )
            return self._hydrate(conn, cur.fetchall())

    def find_by_batch(self, batch_number: str, *, limit: int = 5) -> List[Alert]:
        """Active alerts whose batch list contains `batch_number` exactly (upper-cased)."""
        return self._find_active(
            """
            EXISTS (
              SELECT 1 FROM alert_batches b
              WHERE b.alert_id = a.alert_id AND b.batch_number = ?
            )
            """,
            (batch_number.strip().upper(),),
            limit,
        )

    def find_by_title(self, needle: str, *, limit: int = 5) -> List[Alert]:
        """Active alerts whose title contains `needle`, case-insensitively."""
        return self._find_active("instr(py_lower(a.title), ?) > 0", (needle.lower(),), limit)

    def find_by_content(self, needle: str, *, limit: int = 5) -> List[Alert]:
        """Active alerts whose clean content contains `needle`, case-insensitively."""
        return self._find_active(
            "a.clean_content IS NOT NULL AND instr(py_lower(a.clean_content), ?) > 0",
            (needle.lower(),),
            limit,
        )

    def fetch_active_titles(self, *, limit: int = 1000) -> List[str]:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT title FROM alerts WHERE active = 1 ORDER BY scraped_at DESC LIMIT ?;",
                (int(limit),),
            )
            return [r["title"] for r in cur.fetchall()]

    # --------------- Verification history ---------------
    def insert_product_check(self, check: Dict[str, Any]) -> int:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO product_checks (
                    user_id, product_name, product_description, batch_number, image_count
                ) VALUES (?, ?, ?, ?, ?)
                RETURNING check_id;
                """,
                (
                    check["user_id"],
                    check["product_name"],
                    check["product_description"],
                    check.get("batch_number"),
                    int(check.get("image_count") or 0),
                ),
            )
            row = cur.fetchone()
            conn.commit()
            return int(row[0])

    def insert_check_result(self, result: Dict[str, Any]) -> int:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO check_results (
                    check_id, user_id, is_counterfeit, summary, source_url,
                    source, batch_number, alert_type, confidence
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING result_id;
                """,
                (
                    result["check_id"],
                    result["user_id"],
                    1 if result["is_counterfeit"] else 0,
                    result["summary"],
                    result.get("source_url"),
                    result.get("source"),
                    result.get("batch_number"),
                    result.get("alert_type"),
                    int(result["confidence"]),
                ),
            )
            row = cur.fetchone()
            conn.commit()
            return int(row[0])

    def fetch_checks_for_user(self, user_id: str, *, limit: int = 25, offset: int = 0) -> Dict[str, Any]:
        """Return the caller's checks (newest first) plus verified/counterfeit counts."""
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT
                  COUNT(*) AS total,
                  COALESCE(SUM(CASE WHEN r.is_counterfeit = 0 THEN 1 ELSE 0 END), 0) AS verified,
                  COALESCE(SUM(CASE WHEN r.is_counterfeit = 1 THEN 1 ELSE 0 END), 0) AS counterfeit
                FROM product_checks c
                LEFT JOIN check_results r ON r.check_id = c.check_id
                WHERE c.user_id = ?;
                """,
                (user_id,),
            )
            counts = cur.fetchone()
            cur.execute(
                """
                SELECT
                  c.check_id, c.product_name, c.created_at,
                  r.is_counterfeit, r.confidence, r.batch_number, r.alert_type
                FROM product_checks c
                LEFT JOIN check_results r ON r.check_id = c.check_id
                WHERE c.user_id = ?
                ORDER BY c.created_at DESC, c.check_id DESC
                LIMIT ? OFFSET ?;
                """,
                (user_id, int(limit), int(offset)),
            )
            items = [
                {
                    "id": row["check_id"],
                    "productName": row["product_name"],
                    "isCounterfeit": bool(row["is_counterfeit"]) if row["is_counterfeit"] is not None else None,
                    "confidence": row["confidence"],
                    "createdAt": row["created_at"],
                    "batchNumber": row["batch_number"],
                    "alertType": row["alert_type"],
                }
                for row in cur.fetchall()
            ]
        return {
            "items": items,
            "total": int(counts["total"]),
            "verified": int(counts["verified"]),
            "counterfeit": int(counts["counterfeit"]),
            "limit": int(limit),
            "offset": int(offset),
        }

    def fetch_check_detail(self, check_id: int, user_id: str) -> Optional[Dict[str, Any]]:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT
                  c.check_id, c.product_name, c.product_description, c.batch_number AS user_batch,
                  c.image_count, c.created_at,
                  r.result_id, r.is_counterfeit, r.summary, r.source_url, r.source,
                  r.batch_number, r.alert_type, r.confidence
                FROM product_checks c
                LEFT JOIN check_results r ON r.check_id = c.check_id
                WHERE c.check_id = ? AND c.user_id = ?;
                """,
                (check_id, user_id),
            )
            row = cur.fetchone()
        if row is None:
            return None
        payload: Dict[str, Any] = {
            "id": row["check_id"],
            "productName": row["product_name"],
            "productDescription": row["product_description"],
            "userBatchNumber": row["user_batch"],
            "imageCount": row["image_count"],
            "createdAt": row["created_at"],
            "result": None,
        }
        if row["result_id"] is not None:
            payload["result"] = {
                "isCounterfeit": bool(row["is_counterfeit"]),
                "summary": row["summary"],
                "sourceUrl": row["source_url"],
                "source": row["source"],
                "batchNumber": row["batch_number"],
                "alertType": row["alert_type"],
                "confidence": row["confidence"],
            }
        return payload


__all__ = ["AlertDatabase"]
