"""Product verification against the alert corpus."""

from .engine import MatchingEngine, merge_unique
from .ensemble import EnsembleAnalyzer, EnsembleOpinion
from .ocr import OcrExtractor
from .request import MISSING_PRODUCT_INFO, RequestValidationError, has_product_info, parse_verify_request
from .service import VerificationService

__all__ = [
    "EnsembleAnalyzer",
    "EnsembleOpinion",
    "MISSING_PRODUCT_INFO",
    "MatchingEngine",
    "OcrExtractor",
    "RequestValidationError",
    "VerificationService",
    "has_product_info",
    "merge_unique",
    "parse_verify_request",
]
