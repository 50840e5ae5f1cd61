# backend/authgate/__init__.py
from flask import Flask

from .config import Config
from .extensions import db, migrate
from .time_utils import Clock


def create_app(config_overrides: dict | None = None, clock: Clock | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Every time comparison in the auth core reads this clock
    app.extensions["clock"] = clock or Clock()

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.dashboard import dashboard_bp
    from .routes.admin import admin_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(admin_bp)

    # Browser session resolution and anti-forgery checks
    from .middleware import init_session_middleware
    init_session_middleware(app)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
