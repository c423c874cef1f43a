from __future__ import annotations

import argparse
import base64
import json
import os
import sys
from typing import Sequence

from ..alertdb import AlertDatabase, import_alerts_file
from ..config import load_config
from ..logging import get_logger
from ..paths import expand_abs
from ..verification import (
    MISSING_PRODUCT_INFO,
    RequestValidationError,
    VerificationService,
    has_product_info,
    parse_verify_request,
)

LOG = get_logger("cli-main")


def _open_db(ns: argparse.Namespace) -> AlertDatabase:
    cfg = load_config(os.getcwd())
    db_path = expand_abs(ns.db) if ns.db else cfg.db_path
    return AlertDatabase(root_dir=os.getcwd(), db_path=db_path)


def _handle_init(ns: argparse.Namespace) -> int:
    db = _open_db(ns)
    LOG.info(f"Alert DB ready at: {db.db_path}")
    print(db.db_path)
    return 0


def _handle_import(ns: argparse.Namespace) -> int:
    db = _open_db(ns)
    try:
        report = import_alerts_file(db, ns.file)
    except (OSError, ValueError) as exc:
        LOG.error(f"Could not read alerts from {ns.file}: {exc}")
        return 1
    print(json.dumps(report.to_dict(), ensure_ascii=False))
    return 0 if report.imported or not report.skipped else 1


def _handle_verify(ns: argparse.Namespace) -> int:
    images = []
    for path in ns.image or []:
        with open(expand_abs(path), "rb") as f:
            images.append(base64.b64encode(f.read()).decode("ascii"))
    body = {
        "productName": ns.name,
        "productDescription": ns.description,
        "images": images,
    }
    if ns.batch:
        body["userBatchNumber"] = ns.batch
    try:
        query = parse_verify_request(body)
    except RequestValidationError as exc:
        LOG.error(f"Invalid input: {exc}")
        return 2
    if not has_product_info(query):
        LOG.error(MISSING_PRODUCT_INFO)
        return 2

    cfg = load_config(os.getcwd())
    svc = VerificationService(_open_db(ns), config=cfg)
    payload = svc.verify(query, user_id=ns.user)
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def _handle_history(ns: argparse.Namespace) -> int:
    db = _open_db(ns)
    payload = db.fetch_checks_for_user(ns.user, limit=ns.limit)
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def _handle_serve(ns: argparse.Namespace) -> int:
    from ..web import create_app
    import uvicorn

    allow_origins = ns.allow_origins
    if allow_origins and "*" in allow_origins:
        allow_origins = ["*"]

    cfg = load_config(os.getcwd())
    if ns.db:
        cfg.db_path = expand_abs(ns.db)
    app = create_app(root_dir=os.getcwd(), config=cfg, allow_origins=allow_origins)
    uvicorn.run(
        app,
        host=ns.host,
        port=ns.port,
        reload=ns.reload,
        log_level=ns.log_level,
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    provided = list(argv) if argv is not None else sys.argv[1:]
    LOG.debug(f"CLI invoked with arguments: {provided}")

    parser = argparse.ArgumentParser(
        prog="product-verify",
        description="Verify products against regulatory alerts and manage the alert corpus.",
    )
    parser.add_argument("--db", help="Path to the alert SQLite DB (default: ALERT_DB_PATH or var/alertdb)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_cmd = subparsers.add_parser("init", help="Create/ensure the alert DB schema exists")
    init_cmd.set_defaults(handler=_handle_init)

    import_cmd = subparsers.add_parser("import-alerts", help="Import alert records from JSON or JSON Lines")
    import_cmd.add_argument("--file", required=True)
    import_cmd.set_defaults(handler=_handle_import)

    verify_cmd = subparsers.add_parser("verify", help="Check one product against the alert DB and print the decision")
    verify_cmd.add_argument("--name", required=True, help="Product name")
    verify_cmd.add_argument("--description", required=True, help="Product description")
    verify_cmd.add_argument("--batch", help="Batch number printed on the pack")
    verify_cmd.add_argument("--image", action="append", help="Image file for OCR (repeatable, max 3)")
    verify_cmd.add_argument("--user", help="Record the check in this user's history")
    verify_cmd.set_defaults(handler=_handle_verify)

    history_cmd = subparsers.add_parser("history", help="List a user's recorded checks")
    history_cmd.add_argument("--user", required=True)
    history_cmd.add_argument("--limit", type=int, default=25)
    history_cmd.set_defaults(handler=_handle_history)

    serve_cmd = subparsers.add_parser("serve", help="Run the verification API")
    serve_cmd.add_argument("--host", default="127.0.0.1")
    serve_cmd.add_argument("--port", type=int, default=8001)
    serve_cmd.add_argument("--reload", action="store_true", help="Enable auto-reload (development only)")
    serve_cmd.add_argument("--log-level", default="info")
    serve_cmd.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origins",
        help="Allowed CORS origin (can be provided multiple times, use '*' for any).",
    )
    serve_cmd.set_defaults(handler=_handle_serve)

    args = parser.parse_args(provided)
    code = args.handler(args)
    LOG.info(f"Subcommand '{args.command}' finished with exit code {code}.")
    return code


if __name__ == "__main__":
    sys.exit(main())
