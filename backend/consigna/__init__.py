# backend/consigna/__init__.py
import logging

from flask import Flask

from .config import Config
from .extensions import db, migrate
from .decorators import STORE_EXTENSION_KEY


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    logging.getLogger(app.name).setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # One store handle per app; services receive it explicitly
    from .services.store import StoreHandle
    with app.app_context():
        store = StoreHandle(db.engine, retry_attempts=app.config["TX_RETRY_ATTEMPTS"])
        store.ensure_schema()
    app.extensions[STORE_EXTENSION_KEY] = store

    # Register blueprints
    from .routes.system import system_bp
    from .routes.products import products_bp
    from .routes.sales import sales_bp
    from .routes.consignments import consignments_bp
    from .routes.receivables import receivables_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(consignments_bp)
    app.register_blueprint(receivables_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
