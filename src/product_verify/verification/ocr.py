"""OCR text extraction for product images attached to a verification."""

from __future__ import annotations

import base64
import binascii
import io
from typing import List, Optional, Sequence

import pytesseract
import requests
from PIL import Image, UnidentifiedImageError

from ..config import VerifyConfig
from ..logging import get_logger

LOG = get_logger("verification-ocr")


def decode_image_payload(data: str) -> bytes:
    """Decode a base64 string or a `data:image/...;base64,` URL."""
    s = (data or "").strip()
    if s.startswith("data:"):
        _, _, s = s.partition(",")
    return base64.b64decode(s, validate=False)


class OcrExtractor:
    """Turn uploaded images into searchable text.

    Backends:
    - "tesseract": decode locally with Pillow and run pytesseract
    - "http": POST the images to an OCR service and read its `ocrText` list
    - "none": OCR disabled

    Extraction never raises; failures are logged and yield empty text.
    """

    def __init__(
        self,
        backend: str = "tesseract",
        *,
        service_url: Optional[str] = None,
        timeout: float = 20.0,
    ) -> None:
        self.backend = backend
        self.service_url = service_url
        self.timeout = float(timeout)

    @classmethod
    def from_config(cls, cfg: VerifyConfig) -> "OcrExtractor":
        return cls(cfg.ocr_backend, service_url=cfg.ocr_service_url, timeout=cfg.ocr_timeout_seconds)

    def extract_text(self, images: Sequence[str]) -> str:
        if not images or self.backend == "none":
            return ""
        if self.backend == "http":
            chunks = self._extract_via_service(images)
        else:
            chunks = self._extract_via_tesseract(images)
        text = " ".join(c.strip() for c in chunks if c and c.strip())
        LOG.info(f"OCR produced {len(text)} characters from {len(images)} image(s)")
        return text

    def _extract_via_tesseract(self, images: Sequence[str]) -> List[str]:
        chunks: List[str] = []
        for idx, data in enumerate(images):
            try:
                raw = decode_image_payload(data)
                with Image.open(io.BytesIO(raw)) as img:
                    chunks.append(pytesseract.image_to_string(img.convert("RGB")))
            except (binascii.Error, ValueError, UnidentifiedImageError) as exc:
                LOG.warning(f"Image #{idx} could not be decoded for OCR: {exc}")
            except (OSError, pytesseract.TesseractError) as exc:
                LOG.warning(f"Tesseract OCR failed for image #{idx}; proceeding without it: {exc}")
        return chunks

    def _extract_via_service(self, images: Sequence[str]) -> List[str]:
        if not self.service_url:
            LOG.warning("OCR service URL missing; skipping OCR")
            return []
        try:
            r = requests.post(
                self.service_url,
                json={"images": list(images), "getTextOnly": True},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            body = r.json()
        except (requests.RequestException, ValueError) as exc:
            LOG.warning(f"OCR extraction failed, proceeding without it: {exc}")
            return []
        texts = body.get("ocrText") if isinstance(body, dict) else None
        if not isinstance(texts, list):
            LOG.warning("OCR service response had no ocrText list")
            return []
        return [str(t) for t in texts if t]
