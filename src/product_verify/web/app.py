from __future__ import annotations

import asyncio
import sqlite3
import time
from typing import List, Optional

from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..alertdb.db import AlertDatabase
from ..config import VerifyConfig, load_config
from ..logging import get_logger, log_security_event
from ..paths import find_project_root
from ..verification.request import MISSING_PRODUCT_INFO, RequestValidationError, has_product_info, parse_verify_request
from ..verification.service import VerificationService
from .security import RateLimiter, SecurityHeadersMiddleware, client_ip


LOG = get_logger("verify-api")

VERIFY_PATH = "/api/verify-product"


def _parse_int(value: Optional[str], *, default: int, minimum: int, maximum: int) -> int:
    try:
        parsed = int(value) if value is not None else default
    except (TypeError, ValueError):
        parsed = default
    if parsed < minimum:
        return minimum
    if parsed > maximum:
        return maximum
    return parsed


def _error(status_code: int, error: str, message: Optional[str] = None) -> JSONResponse:
    body = {"error": error}
    if message:
        body["message"] = message
    return JSONResponse(body, status_code=status_code)


async def _database_unavailable(request: Request, exc: Exception) -> JSONResponse:
    LOG.error(f"Database error on {request.url.path}: {exc}")
    log_security_event(
        "Database error",
        ip=client_ip(request),
        details={"requestPath": request.url.path, "error": str(exc)},
    )
    return _error(503, "Service temporarily unavailable", "Please try again later.")


def create_app(
    root_dir: Optional[str] = None,
    *,
    config: Optional[VerifyConfig] = None,
    db: Optional[AlertDatabase] = None,
    service: Optional[VerificationService] = None,
    rate_limiter: Optional[RateLimiter] = None,
    allow_origins: Optional[List[str]] = None,
) -> Starlette:
    """Create a Starlette app exposing product verification and check history."""

    project_root = find_project_root(root_dir)
    cfg = config or load_config(project_root)
    if db is None:
        db = service.db if service is not None else AlertDatabase(root_dir=project_root, db_path=cfg.db_path)
    svc = service or VerificationService(db, config=cfg)
    limiter = rate_limiter or RateLimiter(cfg.rate_limit_max_requests, cfg.rate_limit_window_seconds)
    user_header = cfg.user_id_header

    def _user_id(request: Request) -> Optional[str]:
        value = request.headers.get(user_header)
        return value.strip() if value and value.strip() else None

    async def health(_: Request) -> JSONResponse:
        alerts = await run_in_threadpool(db.count_active_alerts)
        return JSONResponse({"status": "ok", "db_path": db.db_path, "alerts": alerts})

    async def verify_product(request: Request) -> JSONResponse:
        started = time.perf_counter()
        ip = client_ip(request)

        if not limiter.allow(ip):
            log_security_event("Rate limit exceeded", ip=ip, details={"requestPath": VERIFY_PATH})
            return _error(429, "Too many requests", "Please wait a moment before trying again.")

        try:
            body = await request.json()
        except ValueError as exc:
            log_security_event("Invalid JSON in request", ip=ip, details={"error": str(exc)})
            return _error(400, "Invalid request format", "Request body must be valid JSON")

        try:
            query = parse_verify_request(body)
        except RequestValidationError as exc:
            log_security_event(
                "Invalid input validation failed",
                ip=ip,
                details={"error": str(exc), "requestPath": VERIFY_PATH},
            )
            return _error(400, "Invalid input", str(exc))

        user_id = _user_id(request)
        if not user_id:
            log_security_event("Authentication failed", ip=ip, details={"requestPath": VERIFY_PATH})
            return _error(401, "Authentication required")

        if not has_product_info(query):
            log_security_event(
                "Missing product information",
                ip=ip,
                user_id=user_id,
                details={"requestPath": VERIFY_PATH},
            )
            return _error(400, MISSING_PRODUCT_INFO)

        log_security_event(
            "Authenticated request",
            ip=ip,
            user_id=user_id,
            details={
                "requestPath": VERIFY_PATH,
                "hasImages": bool(query.images),
                "batchProvided": bool(query.batch_number),
            },
        )

        # Executor future: the timeout fires even while the worker thread keeps running.
        # Only evaluation runs under it; the check is recorded once a result is back.
        loop = asyncio.get_running_loop()
        try:
            result = await asyncio.wait_for(
                loop.run_in_executor(None, svc.evaluate, query),
                timeout=cfg.request_timeout_seconds,
            )
            result_id = await run_in_threadpool(svc.record, user_id, query, result)
        except asyncio.TimeoutError:
            log_security_event(
                "Verification timed out",
                ip=ip,
                user_id=user_id,
                details={"timeoutSeconds": cfg.request_timeout_seconds},
            )
            return _error(504, "Request timeout", "Verification took too long. Please try again.")
        except sqlite3.Error as exc:
            LOG.error(f"Database error during verification: {exc}")
            log_security_event("Database error during verification", ip=ip, user_id=user_id, details={"error": str(exc)})
            return _error(503, "Service temporarily unavailable", "Please try again later.")
        except Exception as exc:
            LOG.exception("Product verification error")
            log_security_event(
                "Verification error occurred",
                ip=ip,
                user_id=user_id,
                details={"error": str(exc), "processingTime": int((time.perf_counter() - started) * 1000)},
            )
            return _error(
                500,
                "Verification failed",
                "An error occurred during product verification. Please try again.",
            )

        payload = svc.payload(result, result_id)
        log_security_event(
            "Verification completed successfully",
            ip=ip,
            user_id=user_id,
            details={
                "resultId": payload["resultId"],
                "isCounterfeit": payload["isCounterfeit"],
                "confidence": payload["confidence"],
                "processingTime": int((time.perf_counter() - started) * 1000),
            },
        )
        return JSONResponse(payload)

    async def checks(request: Request) -> JSONResponse:
        user_id = _user_id(request)
        if not user_id:
            raise HTTPException(status_code=401, detail="Authentication required")
        qp = request.query_params
        limit = _parse_int(qp.get("limit"), default=25, minimum=1, maximum=200)
        page = _parse_int(qp.get("page"), default=0, minimum=0, maximum=100_000)
        payload = await run_in_threadpool(db.fetch_checks_for_user, user_id, limit=limit, offset=limit * page)
        payload.update({"page": page})
        return JSONResponse(payload)

    async def check_detail(request: Request) -> JSONResponse:
        user_id = _user_id(request)
        if not user_id:
            raise HTTPException(status_code=401, detail="Authentication required")
        check_id = int(request.path_params["check_id"])
        payload = await run_in_threadpool(db.fetch_check_detail, check_id, user_id)
        if payload is None:
            raise HTTPException(status_code=404, detail="Check not found")
        return JSONResponse(payload)

    routes = [
        Route("/api/health", health, methods=["GET"]),
        Route(VERIFY_PATH, verify_product, methods=["POST"]),
        Route("/api/checks", checks, methods=["GET"]),
        Route("/api/checks/{check_id:int}", check_detail, methods=["GET"]),
    ]

    app = Starlette(
        debug=False,
        routes=routes,
        exception_handlers={sqlite3.Error: _database_unavailable},
    )

    origins = allow_origins or ["http://localhost:3000", "http://127.0.0.1:3000"]
    if "*" in origins:
        cors_allow_origins = ["*"]
    else:
        cors_allow_origins = origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    LOG.info("Verification API ready (db=%s, ocr=%s)", db.db_path, svc.ocr.backend)
    return app


__all__ = ["create_app"]
