# backend/lounge/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate
from .event_log import EventLog


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Recent warnings/errors, readable at /api/system/logs
    event_log = EventLog(capacity=app.config["EVENT_LOG_CAPACITY"])
    app.logger.addHandler(event_log)
    app.extensions["lounge.event_log"] = event_log

    from .services.notification_service import NotificationHub
    from .services.mobile_money_service import build_provider
    app.extensions["lounge.notifier"] = NotificationHub()
    app.extensions["lounge.mpesa"] = build_provider(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stations import stations_bp
    from .routes.sessions import sessions_bp
    from .routes.payments import payments_bp
    from .routes.splits import splits_bp
    from .routes.customers import customers_bp
    from .routes.games import games_bp
    from .routes.transactions import transactions_bp
    from .routes.stats import stats_bp
    from .routes.reports import reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stations_bp)
    app.register_blueprint(sessions_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(splits_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(games_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(stats_bp)
    app.register_blueprint(reports_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in app.config["CORS_ALLOWED_ORIGINS"]:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
