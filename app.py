# backend/app.py
from __future__ import annotations

import logging
import os
from datetime import datetime
from zoneinfo import ZoneInfo

import click
from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_cors import CORS
from sqlalchemy import event

from config import Config
from db import db, migrate
from realtime import socketio
from services.errors import ApiError

# Ensure models are imported so Flask-Migrate sees them
from models.user import User
from models.bus import Bus
from models.route import Route, RouteStop
from models.trip import Trip, TripStop
from models.ticket import Ticket

# Blueprints
from routes.auth import auth_bp
from routes.users import users_bp
from routes.buses import buses_bp
from routes.bus_routes import routes_bp
from routes.trips import trips_bp
from routes.tickets import tickets_bp

# Background tasks / CLI
from tasks.expire_tickets import sweep_expired_tickets


def _utc_offset(tz_name: str) -> str:
    """'Asia/Colombo' → '+05:30' (MySQL wants an offset unless tz tables are loaded)."""
    raw = datetime.now(ZoneInfo(tz_name)).strftime("%z")
    return f"{raw[:3]}:{raw[3:]}"


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)
    for h in app.logger.handlers:
        h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__)

    # Respect reverse proxy headers (scheme / host) for correct URL generation
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)  # type: ignore[arg-type]
    app.config["PREFERRED_URL_SCHEME"] = "https"

    # Load config + init extensions
    app.config.from_object(config_object)
    _configure_logging(app)

    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})
    db.init_app(app)
    migrate.init_app(app, db)
    socketio.init_app(app, cors_allowed_origins=app.config.get("CORS_ORIGINS", "*"))

    # DB connection tweaks: NOW() on MySQL follows the app timezone
    with app.app_context():
        if db.engine.dialect.name == "mysql":
            offset = _utc_offset(app.config["APP_TIMEZONE"])

            @event.listens_for(db.engine, "connect")
            def _set_session_timezone(dbapi_conn, _):
                cur = dbapi_conn.cursor()
                try:
                    cur.execute("SET time_zone = %s", (offset,))
                finally:
                    cur.close()

        # Touch models so Alembic/Flask-Migrate registers them
        _ = (User, Bus, Route, RouteStop, Trip, TripStop, Ticket)

    # Health check
    @app.route("/")
    def health_check():
        return jsonify(status="ok"), 200

    @app.errorhandler(ApiError)
    def handle_api_error(e: ApiError):
        if e.status_code >= 500:
            app.logger.error("[api] %s %s → %s", request.method, request.path, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def handle_404(e):
        return jsonify(error="Not Found", path=request.path), 404

    # Global error handler
    @app.errorhandler(Exception)
    def handle_any_error(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify(error=e.description), e.code
        # storage errors and bugs: log the traceback, never echo it
        db.session.rollback()
        app.logger.exception("[api] unhandled error on %s %s", request.method, request.path)
        return jsonify(error="Internal Server Error"), 500

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(buses_bp)
    app.register_blueprint(routes_bp)
    app.register_blueprint(trips_bp)
    app.register_blueprint(tickets_bp)

    # CLI: cancel pending tickets whose sale window has closed
    @app.cli.command("expire-tickets")
    def expire_tickets_cmd():
        n = sweep_expired_tickets()
        click.echo(f"Expired {n} pending ticket(s).")

    @app.cli.command("create-db")
    def create_db_cmd():
        """Create all tables (dev convenience; use `flask db upgrade` elsewhere)."""
        db.create_all()
        click.echo("Tables created.")

    return app


# Optional local entrypoint (useful for quick dev runs)
if __name__ == "__main__":
    app = create_app()
    # Socket.IO server (falls back to Werkzeug in dev)
    socketio.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "5000")),
        allow_unsafe_werkzeug=True,  # dev convenience
        debug=bool(os.environ.get("FLASK_DEBUG", "")),
    )
