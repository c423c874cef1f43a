from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ..alertdb.db import AlertDatabase
from ..domain.similarity import best_similarity, best_token_overlap
from ..logging import get_logger

LOG = get_logger("verification-ensemble")


@dataclass
class EnsembleOpinion:
    is_counterfeit: bool
    confidence: int
    similarity: float


class EnsembleAnalyzer:
    """Second opinion for borderline scores based on title similarity.

    The product name is compared against active alert titles by edit distance
    and token overlap; the name plus description by token overlap only. The
    best score decides. At or above `threshold` the product looks like an
    alerted one.
    """

    def __init__(self, db: Optional[AlertDatabase] = None, *, threshold: float = 0.8) -> None:
        self.db = db
        self.threshold = threshold

    def analyze(
        self,
        product_name: str,
        product_description: str = "",
        titles: Optional[Sequence[str]] = None,
    ) -> EnsembleOpinion:
        if titles is None:
            titles = self.db.fetch_active_titles() if self.db is not None else []
        best = max(
            best_similarity(product_name, titles),
            best_token_overlap(f"{product_name} {product_description}", titles),
        )
        if best >= self.threshold:
            opinion = EnsembleOpinion(True, round(best * 100), best)
        else:
            opinion = EnsembleOpinion(False, round((1.0 - best) * 100), best)
        LOG.debug(f"Ensemble opinion: {opinion}")
        return opinion
