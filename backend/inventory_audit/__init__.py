# backend/inventory_audit/__init__.py
from flask import Flask, current_app, jsonify, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .errors import AppError, InternalError
from .extensions import db, migrate


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

    # Register blueprints
    from .routes.system import system_bp
    from .routes.audits import audits_bp
    from .routes.item_details import item_details_bp
    from .routes.purchases import purchases_bp
    from .routes.activity import activity_bp
    from .routes.catalog import catalog_bp
    from .routes.users import users_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(audits_bp)
    app.register_blueprint(item_details_bp)
    app.register_blueprint(purchases_bp)
    app.register_blueprint(activity_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(users_bp)

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        if isinstance(error, HTTPException):
            return error
        db.session.rollback()
        current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        internal = InternalError("Internal server error")
        return jsonify(internal.to_dict()), internal.status_code

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in set(app.config.get("CORS_ALLOWED_ORIGINS", ())):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
