from __future__ import annotations

import re
from typing import Any, List, Optional

from ..domain.models import ProductQuery
from ..domain.normalize import UNSAFE_CHARS_RE, sanitize_input


class RequestValidationError(Exception):
    """Raised with the first failing rule's user-facing message."""


MAX_IMAGES = 3
BATCH_RE = re.compile(r"^[A-Z0-9\-_\s]*$")
MISSING_PRODUCT_INFO = "Missing product information - name and description required"


def _text_field(
    payload: dict,
    key: str,
    label: str,
    *,
    min_len: int,
    max_len: int,
) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise RequestValidationError(f"{label} is required")
    if len(value) < min_len:
        raise RequestValidationError(f"{label} must be at least {min_len} characters")
    if len(value) > max_len:
        raise RequestValidationError(f"{label} must not exceed {max_len} characters")
    if UNSAFE_CHARS_RE.search(value):
        raise RequestValidationError(f"{label} contains invalid characters")
    return value


def _batch_field(payload: dict) -> Optional[str]:
    value = payload.get("userBatchNumber")
    if value is None:
        return None
    if not isinstance(value, str):
        raise RequestValidationError("Batch number must be a string")
    if len(value) > 50:
        raise RequestValidationError("Batch number must not exceed 50 characters")
    if not BATCH_RE.match(value):
        raise RequestValidationError("Batch number contains invalid characters")
    return value


def _images_field(payload: dict) -> List[str]:
    value = payload.get("images")
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise RequestValidationError("Images must be a list of strings")
    if len(value) > MAX_IMAGES:
        raise RequestValidationError(f"Maximum {MAX_IMAGES} images allowed")
    return list(value)


def parse_verify_request(payload: Any) -> ProductQuery:
    """Validate a verify-product body and return a sanitized `ProductQuery`.

    Validation runs on the raw values; sanitization (trim, strip unsafe
    characters, collapse whitespace) runs afterwards.
    """
    if not isinstance(payload, dict):
        raise RequestValidationError("Invalid request format")

    name = _text_field(payload, "productName", "Product name", min_len=2, max_len=200)
    description = _text_field(payload, "productDescription", "Description", min_len=5, max_len=1000)
    batch = _batch_field(payload)
    images = _images_field(payload)

    name = sanitize_input(name)
    description = sanitize_input(description)
    batch = sanitize_input(batch) if batch else None

    return ProductQuery(
        product_name=name,
        product_description=description,
        batch_number=batch or None,
        images=images,
    )


def has_product_info(query: ProductQuery) -> bool:
    """False when sanitizing left the name or description empty."""
    return bool(query.product_name and query.product_description)
