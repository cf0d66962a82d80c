from __future__ import annotations

import atexit
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from flask import Blueprint, Flask, Response, current_app, g, jsonify, request, send_file
from werkzeug.exceptions import HTTPException

from services.db import Database
from services.entities import CHOICES, DESCRIPTORS, EntityDescriptor
from services.exports import ExportError, render_export
from services.invoices import render_invoice_pdf
from services.log import configure_logging
from services.repository import RecordRepository, RepositoryError, ValidationError
from services.security import bearer_token, issue_token, verify_token
from services.settings import SettingsManager
from services.stats import dashboard_stats
from services.users import (
    authenticate_user,
    create_user,
    get_user_by_id,
    mark_user_login,
)

# Paths under /api/ reachable without a bearer token.
PUBLIC_API_PATHS = {
    "/api/auth/register",
    "/api/auth/login",
    "/api/health",
}


@dataclass
class PracticeState:
    settings: SettingsManager
    database: Database
    repositories: Dict[str, RecordRepository]
    token_secret: str
    token_ttl_days: int


def _state() -> PracticeState:
    return current_app.extensions["practice"]


def _repository(name: str) -> RecordRepository:
    return _state().repositories[name]


def error_response(message: str, status: int):
    return jsonify({"success": False, "error": message}), status


def _json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload.")
    return data


api = Blueprint("api", __name__, url_prefix="/api")


# ---- Authentication -----------------------------------------------------
@api.before_app_request
def _require_bearer_token():
    g.current_user = None
    path = request.path.rstrip("/") or "/"
    if not path.startswith("/api/") or path in PUBLIC_API_PATHS:
        return None
    if request.method == "OPTIONS":
        return None

    state = _state()
    token = bearer_token(request.headers.get("Authorization"))
    claims = verify_token(token, state.token_secret) if token else None
    if claims is None:
        return error_response("Unauthorized", 401)
    g.current_user = claims
    return None


@api.post("/auth/register")
def register():
    data = _json_body()
    try:
        user = create_user(
            _state().database,
            email=data.get("email") or "",
            name=data.get("name") or "",
            password=data.get("password") or "",
            role=data.get("role") or "",
        )
    except ValueError as exc:
        # UserExistsError is a ValueError too.
        return error_response(str(exc), 400)
    current_app.logger.info("Registered user %s (%s)", user["email"], user["role"])
    return jsonify({"success": True, "message": "User registered successfully", "user": user}), 201


@api.post("/auth/login")
def login():
    data = _json_body()
    state = _state()
    user = authenticate_user(state.database, data.get("email") or "", data.get("password") or "")
    if user is None:
        return error_response("Invalid email or password", 401)

    token = issue_token(
        {"sub": str(user["id"]), "email": user["email"], "name": user["name"], "role": user["role"]},
        state.token_secret,
        ttl_days=state.token_ttl_days,
    )
    mark_user_login(state.database, user["id"])
    current_app.logger.info("User %s logged in", user["email"])
    return jsonify({"success": True, "token": token, "user": user})


@api.get("/auth/me")
def me():
    try:
        user_id = int(g.current_user.get("sub"))
    except (TypeError, ValueError):
        return error_response("Unauthorized", 401)
    user = get_user_by_id(_state().database, user_id)
    if user is None:
        return error_response("User not found", 404)
    return jsonify({"success": True, "data": user})


# ---- Misc ---------------------------------------------------------------
@api.get("/health")
def health():
    return jsonify({"success": True, "status": "ok"})


@api.get("/options")
def options():
    return jsonify({"success": True, "data": {key: list(values) for key, values in CHOICES.items()}})


@api.get("/dashboard/stats")
def dashboard():
    return jsonify({"success": True, "data": dashboard_stats(_state().database)})


@api.get("/reports/export")
def export_report():
    kind = request.args.get("type") or "customers"
    fmt = request.args.get("format") or "csv"
    try:
        body, mimetype, filename = render_export(_state().repositories, kind, fmt)
    except ExportError as exc:
        return error_response(str(exc), 400)
    return Response(
        body,
        mimetype=mimetype,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@api.get("/invoices/<int:record_id>/pdf")
def invoice_pdf(record_id: int):
    invoice = _repository("invoices").get(record_id)
    buffer, filename = render_invoice_pdf(invoice, _state().settings.get("firm_name"))
    return send_file(buffer, mimetype="application/pdf", as_attachment=True, download_name=filename)


@api.get("/cases/by-customer/<int:customer_id>")
def cases_by_customer(customer_id: int):
    page = _repository("cases").list_for(
        "client_id", customer_id, request.args.get("page"), request.args.get("limit")
    )
    return jsonify(page.to_envelope())


@api.get("/engagements/by-customer/<int:customer_id>")
def engagements_by_customer(customer_id: int):
    page = _repository("engagements").list_for(
        "client_id", customer_id, request.args.get("page"), request.args.get("limit")
    )
    return jsonify(page.to_envelope())


# ---- Generic record routes ----------------------------------------------
def register_entity_routes(blueprint: Blueprint, descriptor: EntityDescriptor) -> None:
    """Expose list/create and get/update/delete for one entity."""
    name = descriptor.name
    title = descriptor.label[:1].upper() + descriptor.label[1:]

    def collection():
        repo = _repository(name)
        if request.method == "POST":
            record = repo.create(_json_body())
            return jsonify({"success": True, "data": record}), 201
        page = repo.list(request.args, request.args.get("page"), request.args.get("limit"))
        return jsonify(page.to_envelope())

    def item(record_id: int):
        repo = _repository(name)
        if request.method == "GET":
            return jsonify({"success": True, "data": repo.get(record_id)})
        if request.method == "DELETE":
            repo.delete(record_id)
            return jsonify({"success": True, "message": f"{title} deleted successfully"})
        record = repo.update(record_id, _json_body())
        return jsonify({"success": True, "data": record})

    blueprint.add_url_rule(
        f"/{name}", endpoint=f"{name}_collection", view_func=collection, methods=["GET", "POST"]
    )
    blueprint.add_url_rule(
        f"/{name}/<int:record_id>",
        endpoint=f"{name}_item",
        view_func=item,
        methods=["GET", "PUT", "PATCH", "DELETE"],
    )


for _descriptor in DESCRIPTORS.values():
    register_entity_routes(api, _descriptor)


# ---- Error handling -----------------------------------------------------
def _handle_repository_error(exc: RepositoryError):
    # Storage failures were already logged with their traceback by the repository.
    return error_response(exc.message, exc.status_code)


def _handle_http_error(exc: HTTPException):
    if request.path.startswith("/api/"):
        return error_response(exc.description or exc.name, exc.code or 500)
    return exc


def _handle_unexpected_error(exc: Exception):
    current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return error_response("An unexpected error occurred. Please try again later", 500)


# ---- Flask setup --------------------------------------------------------
def create_app(
    overrides: Optional[Mapping[str, Any]] = None,
    config_dir: Optional[Path] = None,
) -> Flask:
    settings = SettingsManager(config_dir=config_dir, overrides=overrides)
    configure_logging(settings.get("log_level"), bool(settings.get("log_json")))

    database = Database(settings.database_path)
    database.initialize()
    atexit.register(database.close)

    max_limit = settings.get_int("page_size_max", 100)
    default_limit = settings.get_int("page_size_default", 10)
    repositories = {
        name: RecordRepository(database, descriptor, max_limit=max_limit, default_limit=default_limit)
        for name, descriptor in DESCRIPTORS.items()
    }

    app = Flask(__name__)
    app.json.sort_keys = False
    app.extensions["practice"] = PracticeState(
        settings=settings,
        database=database,
        repositories=repositories,
        token_secret=settings.token_secret(),
        token_ttl_days=settings.get_int("token_ttl_days", 7),
    )

    app.register_blueprint(api)
    app.register_error_handler(RepositoryError, _handle_repository_error)
    app.register_error_handler(HTTPException, _handle_http_error)
    app.register_error_handler(Exception, _handle_unexpected_error)

    app.logger.info("Practice Organizer ready (database %s)", database.path)
    return app


def shutdown_app(app: Flask) -> None:
    """Close the app's database and drop its exit hook, for apps that do not live
    until interpreter exit (tests, reloaders)."""
    database = app.extensions["practice"].database
    database.close()
    atexit.unregister(database.close)


# ---- Entrypoint ---------------------------------------------------------
if __name__ == "__main__":
    application = create_app()
    print("\nURL map:")
    for r in application.url_map.iter_rules():
        methods = ",".join(sorted(m for m in r.methods if m not in {"HEAD", "OPTIONS"}))
        print(f"  {r.rule:40s} [{methods}]")
    print()
    application.run(
        host=os.environ.get("PRACTICE_HOST", "127.0.0.1"),
        port=int(os.environ.get("PRACTICE_PORT", "5000")),
        debug=os.environ.get("PRACTICE_DEBUG") == "1",
    )
