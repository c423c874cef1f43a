"""Alert matching and the safe/unsafe decision for a product query."""

from __future__ import annotations

import time
from typing import Iterable, List, Optional

from ..alertdb.constants import ALERT_TYPE_NONE, RESULT_SOURCE
from ..alertdb.db import AlertDatabase
from ..config import DEFAULT_SOURCE_URL
from ..domain.models import Alert, ProductQuery, VerificationResult
from ..domain.normalize import build_search_text, first_search_token
from ..logging import get_logger
from .ensemble import EnsembleAnalyzer

LOG = get_logger("verification-engine")


UNSAFE_SUMMARY = (
    "🔴 FAKE/RECALL/EXPIRED PRODUCT DETECTED: Alerts found in NAFDAC database for this product. "
    "Kindly do further research before consuming.\n\n### Reason:\n\n{details}"
)
SAFE_SUMMARY = (
    "✅ SAFE PRODUCT: No alerts found in NAFDAC database for this product. "
    "Kindly do further research before consuming."
)
CLEARED_SUMMARY = "✅ SAFE PRODUCT: No counterfeit alerts found in NAFDAC database for this product."


def merge_unique(*groups: Iterable[Alert], limit: int) -> List[Alert]:
    """Concatenate groups in order, keep the first alert per id, cap at `limit`."""
    seen = set()
    merged: List[Alert] = []
    for group in groups:
        for alert in group:
            if alert.alert_id in seen:
                continue
            seen.add(alert.alert_id)
            merged.append(alert)
    return merged[:limit]


class MatchingEngine:
    """Three-strategy alert search with a conservative decision.

    Strategies run in order: exact batch number, product name in the alert
    title, first search token in the alert content. Any surviving match
    flags the product; a final confidence of 0 always yields SAFE.
    """

    STRATEGY_LIMIT = 5
    MAX_MATCHES = 10
    BASE_CONFIDENCE = 70
    CONFIDENCE_STEP = 5
    MAX_CONFIDENCE = 95
    NO_MATCH_CONFIDENCE = 100
    MIN_TITLE_QUERY_LENGTH = 4
    MIN_SEARCH_TEXT_LENGTH = 6
    # Borderline band (exclusive) that triggers the ensemble second opinion.
    BORDERLINE_LOW = 10
    BORDERLINE_HIGH = 70
    ENSEMBLE_TRUST = 75
    OVERRIDE_CEILING = 40

    def __init__(
        self,
        db: AlertDatabase,
        *,
        source_url: str = DEFAULT_SOURCE_URL,
        ensemble: Optional[EnsembleAnalyzer] = None,
        strategy_limit: Optional[int] = None,
        max_matches: Optional[int] = None,
        base_confidence: Optional[int] = None,
        confidence_step: Optional[int] = None,
        max_confidence: Optional[int] = None,
    ) -> None:
        self.db = db
        self.source_url = source_url
        self.ensemble = ensemble or EnsembleAnalyzer(db)
        if strategy_limit is not None:
            self.STRATEGY_LIMIT = strategy_limit
        if max_matches is not None:
            self.MAX_MATCHES = max_matches
        if base_confidence is not None:
            self.BASE_CONFIDENCE = base_confidence
        if confidence_step is not None:
            self.CONFIDENCE_STEP = confidence_step
        if max_confidence is not None:
            self.MAX_CONFIDENCE = max_confidence

    # --------------- search ---------------
    def search(self, query: ProductQuery) -> List[Alert]:
        batch_matches: List[Alert] = []
        if query.batch_number:
            batch_matches = self.db.find_by_batch(query.batch_number.upper(), limit=self.STRATEGY_LIMIT)
            LOG.info(f"Strategy 1 - Batch matches: {len(batch_matches)}")

        product_matches: List[Alert] = []
        name = query.product_name or ""
        if len(name) >= self.MIN_TITLE_QUERY_LENGTH:
            product_matches = self.db.find_by_title(name.lower(), limit=self.STRATEGY_LIMIT)
            LOG.info(f"Strategy 2 - Product matches: {len(product_matches)}")

        content_matches: List[Alert] = []
        search_text = build_search_text(
            query.product_name, query.product_description, query.batch_number, query.ocr_text
        )
        token = first_search_token(search_text)
        if token and len(search_text) >= self.MIN_SEARCH_TEXT_LENGTH:
            content_matches = self.db.find_by_content(token, limit=self.STRATEGY_LIMIT)
            LOG.info(f"Strategy 3 - Content matches: {len(content_matches)}")

        merged = merge_unique(batch_matches, product_matches, content_matches, limit=self.MAX_MATCHES)
        LOG.info(f"Deduplicated to {len(merged)} unique alert(s): {[a.title for a in merged]}")
        return merged

    # --------------- scoring ---------------
    def score(self, match_count: int) -> int:
        if match_count <= 0:
            return self.NO_MATCH_CONFIDENCE
        return min(self.MAX_CONFIDENCE, self.BASE_CONFIDENCE + match_count * self.CONFIDENCE_STEP)

    def decide(self, matches: List[Alert], *, search_time_ms: int = 0) -> VerificationResult:
        if not matches:
            return VerificationResult(
                is_counterfeit=False,
                summary=SAFE_SUMMARY,
                source_url=self.source_url,
                source=RESULT_SOURCE,
                batch_number=None,
                alert_type=ALERT_TYPE_NONE,
                confidence=self.score(0),
                detected_alert_details=None,
                search_time_ms=search_time_ms,
                alerts_found=0,
            )
        first = matches[0]
        details = "\n\n".join(a.clean_content or a.title for a in matches)
        return VerificationResult(
            is_counterfeit=True,
            summary=UNSAFE_SUMMARY.format(details=details),
            source_url=first.url,
            source=RESULT_SOURCE,
            batch_number=", ".join(first.batch_numbers) or None,
            alert_type=first.alert_type,
            confidence=self.score(len(matches)),
            detected_alert_details=details,
            search_time_ms=search_time_ms,
            alerts_found=len(matches),
            matched_alerts=list(matches),
        )

    def cleared(self, result: VerificationResult) -> VerificationResult:
        """SAFE result used whenever the final confidence drops to 0."""
        return VerificationResult(
            is_counterfeit=False,
            summary=CLEARED_SUMMARY,
            source_url=self.source_url,
            source=RESULT_SOURCE,
            batch_number=None,
            alert_type=ALERT_TYPE_NONE,
            confidence=0,
            detected_alert_details=None,
            search_time_ms=result.search_time_ms,
            alerts_found=result.alerts_found,
        )

    def _review_borderline(self, query: ProductQuery, result: VerificationResult) -> VerificationResult:
        if not (self.BORDERLINE_LOW < result.confidence < self.BORDERLINE_HIGH):
            return result
        LOG.info("Low confidence match - running ensemble analysis")
        opinion = self.ensemble.analyze(query.product_name, query.product_description)
        if opinion.confidence > self.ENSEMBLE_TRUST and not opinion.is_counterfeit:
            LOG.info("Ensemble analysis rates the product legitimate")
            if result.confidence < self.OVERRIDE_CEILING:
                LOG.info("Override: low confidence match and legitimate ensemble opinion")
                result.confidence = 0
        return result

    # --------------- entry point ---------------
    def verify(self, query: ProductQuery) -> VerificationResult:
        started = time.perf_counter()
        matches = self.search(query)
        search_time_ms = int((time.perf_counter() - started) * 1000)
        LOG.info(f"Alert search completed in {search_time_ms}ms - {len(matches)} potential match(es)")

        result = self.decide(matches, search_time_ms=search_time_ms)
        result = self._review_borderline(query, result)
        if result.confidence == 0:
            LOG.info("Confidence 0: product not in alert corpus, reporting SAFE")
            result = self.cleared(result)

        LOG.info(
            "Verification decision: %s confidence=%s%% alerts=%s",
            "UNSAFE" if result.is_counterfeit else "SAFE",
            result.confidence,
            result.alerts_found,
        )
        return result
