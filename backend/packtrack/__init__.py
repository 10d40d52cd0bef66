# backend/packtrack/__init__.py
import os

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    # Overrides must land before db.init_app binds the engine
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Evidence rows keep absolute paths, so verification works from any CWD
    for key, folder in (("VIDEO_STORAGE_ROOT", "videos"), ("PHOTO_STORAGE_ROOT", "photos")):
        root = app.config.get(key) or os.path.join(app.instance_path, folder)
        app.config[key] = os.path.abspath(root)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.orders import orders_bp
    from .routes.returns import returns_bp
    from .routes.inventory import inventory_bp
    from .routes.evidence import evidence_bp
    from .routes.audit import audit_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(evidence_bp)
    app.register_blueprint(audit_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
