# backend/poskasir/__init__.py
from flask import Flask, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate
from .logging_config import configure_logging
from .responses import failure, internal_error
from .roles import RoleHierarchy


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .storage import build_storage
    from .services.payment_gateway import build_gateway
    from .tokens import build_token_manager

    app.extensions["roles"] = RoleHierarchy(app.config["ROLE_LEVELS"])
    app.extensions["token_manager"] = build_token_manager(app.config)
    app.extensions["storage"] = build_storage(app.config, app.logger)
    app.extensions["payment_gateway"] = build_gateway(app.config, app.logger)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.users import users_bp
    from .routes.categories import categories_bp
    from .routes.products import products_bp
    from .routes.references import references_bp
    from .routes.orders import orders_bp
    from .routes.reports import reports_bp
    from .routes.activity_logs import activity_logs_bp
    from .routes.settings import settings_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(categories_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(references_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(activity_logs_bp)
    app.register_blueprint(settings_bp)

    allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS") or [])

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            # Session travels in cookies
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    @app.errorhandler(404)
    def not_found(_e):
        return failure("Not found", 404)

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return failure("Method not allowed", 405)

    @app.errorhandler(413)
    def too_large(_e):
        return failure("Request body too large", 413)

    @app.errorhandler(Exception)
    def unhandled(e):
        if isinstance(e, HTTPException):
            return failure(e.name, e.code or 500)
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return internal_error()

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
