from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..alertdb.constants import VERIFICATION_METHOD
from ..alertdb.db import AlertDatabase
from ..config import VerifyConfig
from ..domain.models import ProductQuery, VerificationResult
from ..logging import get_logger
from .engine import MatchingEngine
from .ocr import OcrExtractor


LOG = get_logger("verification-service")


class VerificationService:
    """High-level service coordinating OCR, matching and persistence."""

    def __init__(
        self,
        db: AlertDatabase,
        *,
        engine: Optional[MatchingEngine] = None,
        ocr: Optional[OcrExtractor] = None,
        config: Optional[VerifyConfig] = None,
    ) -> None:
        cfg = config or VerifyConfig()
        self.db = db
        self.engine = engine or MatchingEngine(db, source_url=cfg.alert_source_url)
        self.ocr = ocr or OcrExtractor.from_config(cfg)

    def evaluate(self, query: ProductQuery) -> VerificationResult:
        """OCR the images (if any) then run the matching engine; no DB writes."""
        LOG.info(
            "Verification request: name=%r batch=%s images=%d",
            query.product_name,
            query.batch_number or "Not provided",
            len(query.images),
        )
        if query.images and not query.ocr_text:
            query.ocr_text = self.ocr.extract_text(query.images)
        return self.engine.verify(query)

    def record(self, user_id: str, query: ProductQuery, result: VerificationResult) -> int:
        """Persist the check and its result; returns the check id."""
        check_id = self.db.insert_product_check(
            {
                "user_id": user_id,
                "product_name": query.product_name,
                "product_description": query.product_description,
                "batch_number": query.batch_number,
                "image_count": len(query.images),
            }
        )
        self.db.insert_check_result(
            {
                "check_id": check_id,
                "user_id": user_id,
                "is_counterfeit": result.is_counterfeit,
                "summary": result.summary,
                "source_url": result.source_url,
                "source": result.source,
                "batch_number": result.batch_number,
                "alert_type": result.alert_type,
                "confidence": result.confidence,
            }
        )
        LOG.debug("Persisted check_id=%s for user=%s", check_id, user_id)
        return check_id

    def payload(self, result: VerificationResult, result_id: Optional[int]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"resultId": result_id}
        payload.update(result.to_payload())
        payload["timestamp"] = datetime.now(timezone.utc).isoformat(timespec="milliseconds")
        payload["verificationMethod"] = VERIFICATION_METHOD
        return payload

    def verify(self, query: ProductQuery, *, user_id: Optional[str] = None) -> Dict[str, Any]:
        """End-to-end verification returning the response payload.

        The check is persisted only when a `user_id` is given.
        """
        result = self.evaluate(query)
        result_id = self.record(user_id, query, result) if user_id else None
        return self.payload(result, result_id)
