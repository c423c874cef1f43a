from __future__ import annotations

import sqlite3
import time
from pathlib import Path

from starlette.testclient import TestClient

from product_verify.alertdb import AlertDatabase
from product_verify.config import VerifyConfig
from product_verify.verification import VerificationService
from product_verify.web import create_app


VERIFY = "/api/verify-product"
USER = {"X-User-Id": "user-1"}


def _config(tmp_path: Path, **overrides) -> VerifyConfig:
    cfg = VerifyConfig(db_path=str(tmp_path / "alerts.sqlite3"), ocr_backend="none")
    for key, value in overrides.items():
        setattr(cfg, key, value)
    return cfg


def _client(tmp_path: Path, **overrides) -> TestClient:
    app = create_app(root_dir=str(tmp_path), config=_config(tmp_path, **overrides), allow_origins=["*"])
    return TestClient(app)


def _body(**overrides):
    body = {"productName": "Amoxicillin 500mg", "productDescription": "Capsules, blister of 10"}
    body.update(overrides)
    return body


def test_flagged_product_is_recorded_in_history(seeded_db: AlertDatabase, tmp_path: Path) -> None:
    client = _client(tmp_path)

    response = client.post(VERIFY, json=_body(userBatchNumber="AMX2301"), headers=USER)
    assert response.status_code == 200
    payload = response.json()
    assert payload["isCounterfeit"] is True
    assert payload["confidence"] == 75
    assert payload["alertType"] == "Counterfeit"
    assert payload["batchNumber"] == "AMX2301, AMX2302"
    assert payload["sourceUrl"] == "https://alerts.example/amoxicillin"
    assert payload["source"] == "NAFDAC Database Check"
    assert payload["verificationMethod"] == "Conservative NAFDAC Database Only"
    assert payload["alertsFound"] == 1
    assert isinstance(payload["resultId"], int)

    history = client.get("/api/checks", headers=USER)
    assert history.status_code == 200
    history_payload = history.json()
    assert history_payload["total"] == 1
    assert history_payload["counterfeit"] == 1
    assert history_payload["items"][0]["productName"] == "Amoxicillin 500mg"

    detail = client.get(f"/api/checks/{payload['resultId']}", headers=USER)
    assert detail.status_code == 200
    assert detail.json()["result"]["alertType"] == "Counterfeit"

    other = client.get(f"/api/checks/{payload['resultId']}", headers={"X-User-Id": "user-2"})
    assert other.status_code == 404


def test_unknown_product_is_safe(seeded_db: AlertDatabase, tmp_path: Path) -> None:
    client = _client(tmp_path)
    response = client.post(VERIFY, json=_body(productName="Vitamin C", productDescription="Chewable tablets"), headers=USER)
    assert response.status_code == 200
    payload = response.json()
    assert payload["isCounterfeit"] is False
    assert payload["confidence"] == 100
    assert payload["alertType"] == "No Alert"
    assert payload["detectedAlertDetails"] is None


def test_security_headers_on_every_response(tmp_path: Path) -> None:
    client = _client(tmp_path)
    for response in (client.get("/api/health"), client.post(VERIFY, json={}, headers=USER)):
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
        assert response.headers["Permissions-Policy"] == "camera=(self), microphone=()"


def test_invalid_json_and_invalid_input(tmp_path: Path) -> None:
    client = _client(tmp_path)

    bad_json = client.post(VERIFY, content="{not json", headers={**USER, "Content-Type": "application/json"})
    assert bad_json.status_code == 400
    assert bad_json.json() == {"error": "Invalid request format", "message": "Request body must be valid JSON"}

    bad_input = client.post(VERIFY, json=_body(productName="<b>"), headers=USER)
    assert bad_input.status_code == 400
    assert bad_input.json() == {"error": "Invalid input", "message": "Product name contains invalid characters"}


def test_missing_identity_is_rejected(tmp_path: Path) -> None:
    client = _client(tmp_path)
    assert client.post(VERIFY, json=_body()).status_code == 401
    assert client.get("/api/checks").status_code == 401


def test_rate_limit_per_client_ip(tmp_path: Path) -> None:
    client = _client(tmp_path, rate_limit_max_requests=2)
    headers = {**USER, "X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
    assert client.post(VERIFY, json=_body(), headers=headers).status_code == 200
    assert client.post(VERIFY, json=_body(), headers=headers).status_code == 200
    limited = client.post(VERIFY, json=_body(), headers=headers)
    assert limited.status_code == 429
    assert limited.json()["error"] == "Too many requests"

    other_ip = client.post(VERIFY, json=_body(), headers={**USER, "X-Forwarded-For": "198.51.100.2"})
    assert other_ip.status_code == 200


def test_database_errors_map_to_503(tmp_path: Path, monkeypatch) -> None:
    cfg = _config(tmp_path)
    service = VerificationService(AlertDatabase(db_path=cfg.db_path), config=cfg)

    def _broken(*args, **kwargs):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(service, "record", _broken)
    client = TestClient(create_app(root_dir=str(tmp_path), config=cfg, service=service))
    response = client.post(VERIFY, json=_body(), headers=USER)
    assert response.status_code == 503
    assert response.json()["error"] == "Service temporarily unavailable"


def test_unexpected_errors_map_to_500(tmp_path: Path, monkeypatch) -> None:
    cfg = _config(tmp_path)
    service = VerificationService(AlertDatabase(db_path=cfg.db_path), config=cfg)

    def _broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(service, "evaluate", _broken)
    client = TestClient(create_app(root_dir=str(tmp_path), config=cfg, service=service))
    response = client.post(VERIFY, json=_body(), headers=USER)
    assert response.status_code == 500
    assert response.json() == {
        "error": "Verification failed",
        "message": "An error occurred during product verification. Please try again.",
    }


def test_slow_verification_times_out_without_recording(tmp_path: Path, monkeypatch) -> None:
    cfg = _config(tmp_path, request_timeout_seconds=0.05)
    service = VerificationService(AlertDatabase(db_path=cfg.db_path), config=cfg)
    evaluate = service.evaluate

    def _slow(query):
        time.sleep(0.3)
        return evaluate(query)

    monkeypatch.setattr(service, "evaluate", _slow)
    client = TestClient(create_app(root_dir=str(tmp_path), config=cfg, service=service))
    response = client.post(VERIFY, json=_body(), headers=USER)
    assert response.status_code == 504
    assert response.json()["error"] == "Request timeout"

    # let the abandoned worker finish before looking at history
    time.sleep(0.5)
    history = client.get("/api/checks", headers=USER)
    assert history.json()["total"] == 0


def test_health_reports_active_alerts(seeded_db: AlertDatabase, tmp_path: Path) -> None:
    client = _client(tmp_path)
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["alerts"] == 3


def test_history_database_errors_map_to_503_with_security_headers(tmp_path: Path, monkeypatch) -> None:
    cfg = _config(tmp_path)
    db = AlertDatabase(db_path=cfg.db_path)

    def _broken(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(db, "fetch_checks_for_user", _broken)
    monkeypatch.setattr(db, "count_active_alerts", _broken)
    client = TestClient(create_app(root_dir=str(tmp_path), config=cfg, db=db))

    for response in (client.get("/api/checks", headers=USER), client.get("/api/health")):
        assert response.status_code == 503
        assert response.json() == {"error": "Service temporarily unavailable", "message": "Please try again later."}
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_blank_product_info_is_checked_after_identity(tmp_path: Path) -> None:
    client = _client(tmp_path)
    blank = _body(productName="     ")

    assert client.post(VERIFY, json=blank).status_code == 401

    response = client.post(VERIFY, json=blank, headers=USER)
    assert response.status_code == 400
    assert response.json() == {"error": "Missing product information - name and description required"}
