# backend/sportsfest/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, mail, migrate



def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    mail.init_app(app)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.inventory import inventory_bp
    from .routes.carts import carts_bp
    from .routes.orders import orders_bp
    from .routes.payments import payments_bp
    from .routes.invoices import invoices_bp
    from .routes.cleanup import cleanup_bp  # Cron: expired carts, abandoned orders

    app.register_blueprint(system_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(carts_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(cleanup_bp)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
