import re
from typing import List, Optional

from ..logging import get_logger

_LOG = get_logger("normalize")

MAX_SANITIZED_LENGTH = 1000
UNSAFE_CHARS_RE = re.compile(r"[<>\"';&]")

# "Batch No.: A123", "Lot numbers - X1, X2 and X3", "batch# 45B"
_BATCH_LABEL_RE = re.compile(
    r"\b(?:batch|lot)\b(?:\s*(?:numbers?|nos?|num)\b\.?|\s*#)?\s*[:\-]?\s*([^\n.;]{1,160})",
    re.IGNORECASE,
)
_BATCH_SPLIT_RE = re.compile(r"\s*(?:,|&|/|\band\b)\s*", re.IGNORECASE)
_BATCH_TOKEN_RE = re.compile(r"^[A-Z0-9][A-Z0-9\-_]{2,49}$")


def sanitize_input(value: str) -> str:
    """Trim, drop markup/SQL-ish characters, collapse whitespace, cap length."""
    s = (value or "").strip()
    s = UNSAFE_CHARS_RE.sub("", s)
    s = re.sub(r"\s+", " ", s)
    return s[:MAX_SANITIZED_LENGTH].strip()


def normalize_batch_number(value: Optional[str]) -> Optional[str]:
    """Return the canonical (upper-case, trimmed) batch number or None."""
    if value is None:
        return None
    s = re.sub(r"\s+", " ", str(value)).strip().upper()
    return s or None


def build_search_text(
    product_name: str,
    product_description: str,
    batch_number: Optional[str] = None,
    ocr_text: str = "",
) -> str:
    """Combine all searchable attributes into one lower-cased string."""
    parts = [product_name or "", product_description or "", batch_number or "", ocr_text or ""]
    return " ".join(parts).lower().strip()


def first_search_token(search_text: str) -> Optional[str]:
    tokens = (search_text or "").split()
    return tokens[0] if tokens else None


def extract_batch_numbers(text: Optional[str]) -> List[str]:
    """Pull batch/lot numbers out of free alert text.

    Only tokens that contain at least one digit are kept so that plain words
    following a "batch" label are not mistaken for identifiers.
    """
    if not text:
        return []
    found: List[str] = []
    for m in _BATCH_LABEL_RE.finditer(text):
        for piece in _BATCH_SPLIT_RE.split(m.group(1)):
            words = piece.split()
            if not words:
                continue
            token = words[0].strip("()[]:").upper()
            if not _BATCH_TOKEN_RE.match(token):
                continue
            if not any(ch.isdigit() for ch in token):
                continue
            if token not in found:
                found.append(token)
    if found:
        _LOG.debug(f"Extracted {len(found)} batch number(s) from alert text")
    return found
