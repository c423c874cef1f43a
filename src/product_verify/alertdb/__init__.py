"""Alert corpus and verification history storage.

Modules:
- db: SQLite schema, alert upserts, the match queries, check history
- parser: validation/normalization of incoming alert records
- importer: JSON / JSON Lines bulk import
"""

from .db import AlertDatabase
from .importer import ImportReport, import_alerts, import_alerts_file
from .parser import AlertValidationError, parse_and_validate_alert

__all__ = [
    "AlertDatabase",
    "AlertValidationError",
    "ImportReport",
    "import_alerts",
    "import_alerts_file",
    "parse_and_validate_alert",
]
