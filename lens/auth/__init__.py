"""Request authentication and authorization helpers."""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Iterable, TypeVar, cast

from flask import g, request
from flask_login import current_user, login_required

from lens.errors import AuthError, AuthzError
from lens.extensions import db, login_manager
from lens.models import User, UserRole
from lens.services.tokens import decode_access_token

F = TypeVar("F", bound=Callable[..., Any])

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def get_request_token() -> str | None:
    """Bearer header first, then the access-token cookie."""
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get(ACCESS_COOKIE) or None


def init_auth(app) -> None:
    login_manager.init_app(app)
    # Stateless API: identity comes from the token on every request
    login_manager.session_protection = None

    @login_manager.request_loader
    def load_user_from_request(req):
        token = get_request_token()
        if not token:
            return None
        try:
            claims = decode_access_token(token)
        except AuthError as exc:
            g.auth_error = exc.message
            return None
        user = db.session.get(User, claims["sub"])
        if user is None:
            g.auth_error = "Not authorized, user not found"
            return None
        if not user.is_active:
            g.auth_error = "User account is deactivated"
            return None
        return user

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        raise AuthError(g.get("auth_error") or AuthError.default_message)


def _normalize_roles(roles: Iterable[UserRole | str]) -> set[str]:
    normalized: set[str] = set()
    for role in roles:
        if isinstance(role, UserRole):
            normalized.add(role.value)
        else:
            normalized.add(str(role))
    return normalized


def roles_required(*roles: UserRole | str) -> Callable[[F], F]:
    """Require an authenticated user holding one of the given roles."""

    required = _normalize_roles(roles)

    def decorator(view_func: F) -> F:
        @wraps(view_func)
        @login_required
        def wrapped(*args, **kwargs):
            user_role = (
                current_user.role.value
                if isinstance(current_user.role, UserRole)
                else str(current_user.role)
            )
            if required and user_role not in required:
                raise AuthzError(f"User role {user_role} is not authorized to access this route")
            return view_func(*args, **kwargs)

        return cast(F, wrapped)

    return decorator


def admin_required(view_func: F) -> F:
    return roles_required(UserRole.ADMIN, UserRole.SUPER_ADMIN)(view_func)


def super_admin_required(view_func: F) -> F:
    return roles_required(UserRole.SUPER_ADMIN)(view_func)


def get_current_user() -> User | None:
    """The authenticated user, or None for anonymous requests."""
    if current_user and current_user.is_authenticated:
        return cast(User, current_user._get_current_object())
    return None


def check_ownership(resource: Any, owner_field: str = "user_id", *, allow_staff: bool = False) -> None:
    """Raise AuthzError unless the current user owns ``resource``."""
    user = get_current_user()
    if user is None:
        raise AuthError()
    if getattr(resource, owner_field, None) == user.id:
        return
    if allow_staff and user.is_staff:
        return
    raise AuthzError("Not authorized to access this resource")


__all__ = [
    "ACCESS_COOKIE",
    "REFRESH_COOKIE",
    "init_auth",
    "get_request_token",
    "login_required",
    "roles_required",
    "admin_required",
    "super_admin_required",
    "get_current_user",
    "check_ownership",
]
