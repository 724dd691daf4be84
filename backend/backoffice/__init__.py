# backend/backoffice/__init__.py
import logging
import time
import uuid

from flask import Flask, g, request

from .config import Config
from .extensions import db, migrate

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.parties import clients_bp, providers_bp
    from .routes.products import products_bp
    from .routes.transactions import transactions_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(clients_bp)
    app.register_blueprint(providers_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(reports_bp)

    @app.before_request
    def start_request_context():
        incoming = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
        g.request_id = incoming[:64] if incoming else uuid.uuid4().hex
        g.request_started_at = time.perf_counter()
        app.logger.debug("Request started id=%s %s %s", g.request_id, request.method, request.path)

    @app.after_request
    def finish_request_context(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        started = getattr(g, "request_started_at", None)
        elapsed_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        app.logger.info(
            "Request finished id=%s %s %s status=%s elapsed_ms=%.1f",
            request_id, request.method, request.path, response.status_code, elapsed_ms,
        )
        return response

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Request-ID"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    @app.teardown_request
    def release_request_context(exc):
        # Runs on success and error paths alike
        if exc is not None:
            app.logger.error("Request failed id=%s: %s", getattr(g, "request_id", None), exc)
        for attr in ("tenant", "current_user", "session_context", "auth_token", "request_id", "request_started_at"):
            g.pop(attr, None)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
