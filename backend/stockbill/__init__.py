# backend/stockbill/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def _engine_options(app: Flask) -> dict:
    """Bound every store call by STORE_TIMEOUT_SECONDS."""
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    timeout = app.config.get("STORE_TIMEOUT_SECONDS", 5)
    options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
    if uri.startswith("sqlite"):
        connect_args = dict(options.get("connect_args") or {})
        connect_args.setdefault("timeout", timeout)
        connect_args.setdefault("check_same_thread", False)
        options["connect_args"] = connect_args
    else:
        options.setdefault("pool_timeout", timeout)
        options.setdefault("pool_pre_ping", True)
    return options


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before db.init_app reads the engine settings
    if test_config:
        app.config.update(test_config)
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.branches import branches_bp
    from .routes.products import products_bp
    from .routes.inventory import inventory_bp
    from .routes.invoices import invoices_bp, billing_bp
    from .routes.payments import payments_bp
    from .routes.users import users_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(branches_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(users_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
