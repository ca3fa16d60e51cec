from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager, current_user
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import sqlite3

import bcrypt
from sqlalchemy import event
from sqlalchemy.engine import Engine


def rate_limit_key() -> str:
    """Authenticated callers are limited per account, everyone else per address."""
    if current_user and current_user.is_authenticated:
        return f"user:{current_user.id}"
    return get_remote_address()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # ON DELETE CASCADE is only enforced by SQLite with this pragma
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Application-wide extension instances

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
# Storage and default limits come from RATELIMIT_STORAGE_URI / RATELIMIT_DEFAULT
limiter = Limiter(key_func=rate_limit_key)

__all__ = [
    "db",
    "migrate",
    "login_manager",
    "limiter",
    "bcrypt",
    "rate_limit_key",
]
