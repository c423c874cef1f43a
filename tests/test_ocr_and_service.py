from __future__ import annotations

import base64
from typing import List

import requests

from product_verify.alertdb import AlertDatabase
from product_verify.config import VerifyConfig
from product_verify.domain.models import ProductQuery
from product_verify.verification import OcrExtractor, VerificationService
from product_verify.verification import ocr as ocr_module
from product_verify.verification.ocr import decode_image_payload


class _Response:
    def __init__(self, payload, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"status {self.status_code}")

    def json(self):
        return self._payload


class _RecordingOcr:
    backend = "stub"

    def __init__(self, text: str) -> None:
        self.text = text
        self.calls: List[List[str]] = []

    def extract_text(self, images):
        self.calls.append(list(images))
        return self.text


def test_decode_image_payload_accepts_data_urls():
    raw = base64.b64encode(b"png-bytes").decode("ascii")
    assert decode_image_payload(raw) == b"png-bytes"
    assert decode_image_payload(f"data:image/png;base64,{raw}") == b"png-bytes"


def test_http_backend_joins_ocr_text(monkeypatch):
    seen = {}

    def _post(url, json=None, headers=None, timeout=None):
        seen.update({"url": url, "json": json, "timeout": timeout})
        return _Response({"ocrText": ["Amoxicillin 500mg", "", "Batch AMX2301"]})

    monkeypatch.setattr(ocr_module.requests, "post", _post)
    extractor = OcrExtractor("http", service_url="http://ocr.local/extract", timeout=5)
    assert extractor.extract_text(["aGVsbG8="]) == "Amoxicillin 500mg Batch AMX2301"
    assert seen["json"] == {"images": ["aGVsbG8="], "getTextOnly": True}
    assert seen["timeout"] == 5.0


def test_http_backend_failures_yield_empty_text(monkeypatch):
    def _post(*args, **kwargs):
        raise requests.ConnectionError("ocr service down")

    monkeypatch.setattr(ocr_module.requests, "post", _post)
    assert OcrExtractor("http", service_url="http://ocr.local/extract").extract_text(["x"]) == ""

    monkeypatch.setattr(ocr_module.requests, "post", lambda *a, **k: _Response({"unexpected": True}))
    assert OcrExtractor("http", service_url="http://ocr.local/extract").extract_text(["x"]) == ""


def test_tesseract_backend_skips_undecodable_images():
    junk = base64.b64encode(b"definitely not an image").decode("ascii")
    assert OcrExtractor("tesseract").extract_text([junk]) == ""


def test_disabled_backend_does_nothing():
    assert OcrExtractor("none").extract_text(["aGVsbG8="]) == ""
    assert OcrExtractor.from_config(VerifyConfig(ocr_backend="none")).backend == "none"


def test_service_runs_ocr_and_records_only_with_user(seeded_db: AlertDatabase):
    ocr = _RecordingOcr("amoxicillin 500mg capsules")
    service = VerificationService(seeded_db, ocr=ocr, config=VerifyConfig(ocr_backend="none"))
    query = ProductQuery(
        product_name="Amoxicillin 500mg",
        product_description="Blister of 10",
        images=["aGVsbG8="],
    )

    anonymous = service.verify(query)
    assert ocr.calls == [["aGVsbG8="]]
    assert query.ocr_text == "amoxicillin 500mg capsules"
    assert anonymous["resultId"] is None
    assert anonymous["isCounterfeit"] is True
    assert seeded_db.fetch_checks_for_user("user-1")["total"] == 0

    recorded = service.verify(query, user_id="user-1")
    # OCR text is reused once extracted
    assert len(ocr.calls) == 1
    history = seeded_db.fetch_checks_for_user("user-1")
    assert history["total"] == 1
    assert history["items"][0]["id"] == recorded["resultId"]
    detail = seeded_db.fetch_check_detail(recorded["resultId"], "user-1")
    assert detail["imageCount"] == 1
    assert detail["result"]["confidence"] == 75
