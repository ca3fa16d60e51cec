"""Application factory for the Lens photography portfolio API."""

from __future__ import annotations

from flask import Flask
from sqlalchemy import inspect

from lens.auth import init_auth
from lens.blueprints.admin import admin_bp
from lens.blueprints.auth import auth_bp
from lens.blueprints.files import files_bp
from lens.blueprints.photos import photos_bp
from lens.blueprints.portfolios import portfolios_bp
from lens.blueprints.upload import upload_bp
from lens.blueprints.users import users_bp
from lens.config import Config
from lens.errors import register_error_handlers
from lens.extensions import db, limiter, migrate
from lens.security import configure_security_headers, validate_input_length

CORE_TABLES = {"user", "portfolio", "photo", "refresh_token"}


def ensure_core_tables() -> None:
    """Create the schema on a fresh database that has not been migrated yet."""
    existing = set(inspect(db.engine).get_table_names())
    if not CORE_TABLES.issubset(existing):
        db.create_all()


def create_app(config_class=Config):
    """Create Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize Flask extensions
    db.init_app(app)
    migrate.init_app(app, db)
    init_auth(app)
    limiter.init_app(app)

    # Ensure models are registered for migrations
    import lens.models  # noqa: F401

    if app.config.get("AUTO_CREATE_TABLES"):
        with app.app_context():
            ensure_core_tables()

    # Configure security
    register_error_handlers(app)
    configure_security_headers(app)
    validate_input_length(app)

    # Register blueprints
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(users_bp, url_prefix="/api/users")
    app.register_blueprint(portfolios_bp, url_prefix="/api/portfolios")
    app.register_blueprint(photos_bp, url_prefix="/api/photos")
    app.register_blueprint(upload_bp, url_prefix="/api/upload")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(files_bp)  # /health and local /uploads

    # Register CLI commands
    from lens.commands import register_commands
    register_commands(app)

    app.logger.info(f"Lens API ready ({app.config.get('ENVIRONMENT')})")
    return app
