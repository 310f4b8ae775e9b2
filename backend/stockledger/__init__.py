# backend/stockledger/__init__.py
from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(test_config=None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)

    # Overrides must land before the engine is created in db.init_app
    if test_config is not None:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.materials import materials_bp, users_bp, user_inventory_bp
    from .routes.issuance import issuance_bp
    from .routes.products import products_bp, structures_bp
    from .routes.manufacturing import product_transfers_bp, manufacturing_bp
    from .routes.invoices import invoices_bp
    from .routes.sequences import sequences_bp, documents_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(materials_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(user_inventory_bp)
    app.register_blueprint(issuance_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(structures_bp)
    app.register_blueprint(product_transfers_bp)
    app.register_blueprint(manufacturing_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(sequences_bp)
    app.register_blueprint(documents_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
