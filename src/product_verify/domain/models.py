from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Alert:
    alert_id: Optional[int]
    title: str
    url: str
    clean_content: Optional[str] = None
    batch_numbers: List[str] = field(default_factory=list)
    manufacturer: Optional[str] = None
    alert_type: str = "Alert"
    severity: str = "MEDIUM"
    scraped_at: Optional[str] = None  # ISO timestamp
    active: bool = True


@dataclass
class ProductQuery:
    product_name: str
    product_description: str
    batch_number: Optional[str] = None
    images: List[str] = field(default_factory=list)
    ocr_text: str = ""


@dataclass
class VerificationResult:
    is_counterfeit: bool
    summary: str
    source_url: str
    source: str
    batch_number: Optional[str]
    alert_type: str
    confidence: int
    detected_alert_details: Optional[str]
    search_time_ms: int
    alerts_found: int
    matched_alerts: List[Alert] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        """Return the camelCase response fields shared by the API and CLI."""
        return {
            "isCounterfeit": self.is_counterfeit,
            "summary": self.summary,
            "sourceUrl": self.source_url,
            "source": self.source,
            "batchNumber": self.batch_number,
            "alertType": self.alert_type,
            "confidence": self.confidence,
            "detectedAlertDetails": self.detected_alert_details,
            "searchTime": self.search_time_ms,
            "alertsFound": self.alerts_found,
        }

