# backend/storefront/__init__.py
import atexit

from flask import Flask, request

from .config import Config
from .extensions import db, migrate, CLIENTS_KEY


def create_app(config_object=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object or Config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # External adapters (POS, payment gateways, courier)
    from .clients import build_clients
    clients = build_clients(app.config)
    app.extensions[CLIENTS_KEY] = clients

    def close_clients():
        for client in clients.values():
            client.close()

    atexit.register(close_clients)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.stock import stock_bp
    from .routes.orders import orders_bp
    from .routes.webhooks import webhooks_bp
    from .routes.catalog import catalog_bp, catalog_admin_bp
    from .routes.admin import admin_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(stock_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(catalog_bp)
    app.register_blueprint(catalog_admin_bp)
    app.register_blueprint(admin_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = set(app.config.get("CORS_ORIGINS") or ())
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Admin-User"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
