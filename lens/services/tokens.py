"""JWT access/refresh token issuing and refresh-token rotation."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from flask import current_app
from sqlalchemy import delete

from lens.errors import AuthError
from lens.extensions import db
from lens.models import RefreshToken, User

JWT_ALG = "HS256"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    access_expires_in: int
    refresh_expires_in: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "Bearer",
            "expires_in": self.access_expires_in,
        }


def create_access_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "username": user.username,
        "email": user.email,
        "role": user.role.value,
        "plan": user.subscription_plan.value,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=current_app.config["JWT_ACCESS_EXPIRES"]),
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=JWT_ALG)


def decode_access_token(token: str) -> dict[str, Any]:
    """Return the claims of a valid access token or raise AuthError."""
    try:
        payload = jwt.decode(token, current_app.config["JWT_SECRET"], algorithms=[JWT_ALG])
    except jwt.ExpiredSignatureError:
        raise AuthError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthError("Not authorized, token failed")
    if payload.get("type") != "access" or not payload.get("sub"):
        raise AuthError("Not authorized, token failed")
    return payload


def _create_refresh_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(seconds=current_app.config["JWT_REFRESH_EXPIRES"])
    jti = uuid.uuid4().hex
    db.session.add(RefreshToken(user_id=user.id, jti=jti, expires_at=expires_at))
    payload = {"sub": user.id, "jti": jti, "type": "refresh", "iat": now, "exp": expires_at}
    return jwt.encode(payload, current_app.config["JWT_REFRESH_SECRET"], algorithm=JWT_ALG)


def _purge_expired(user_id: str) -> None:
    db.session.execute(
        delete(RefreshToken).where(
            RefreshToken.user_id == user_id,
            RefreshToken.expires_at < datetime.now(timezone.utc),
        ).execution_options(synchronize_session=False)
    )


def issue_tokens(user: User) -> TokenPair:
    """Issue a new access/refresh pair and persist the refresh token. Commits."""
    _purge_expired(user.id)
    pair = TokenPair(
        access_token=create_access_token(user),
        refresh_token=_create_refresh_token(user),
        access_expires_in=current_app.config["JWT_ACCESS_EXPIRES"],
        refresh_expires_in=current_app.config["JWT_REFRESH_EXPIRES"],
    )
    db.session.commit()
    return pair


def _decode_refresh_token(token: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(token, current_app.config["JWT_REFRESH_SECRET"], algorithms=[JWT_ALG])
    except jwt.InvalidTokenError:
        raise AuthError("Invalid refresh token")
    if payload.get("type") != "refresh" or not payload.get("jti"):
        raise AuthError("Invalid refresh token")
    return payload


def rotate_refresh_token(token: str | None) -> tuple[User, TokenPair]:
    """Consume a refresh token and issue a new pair.

    The stored row is removed with a single conditional DELETE, so of two
    concurrent refreshes with the same token only one sees a deleted row.
    """
    if not token:
        raise AuthError("Refresh token required")
    payload = _decode_refresh_token(token)

    result = db.session.execute(
        delete(RefreshToken).where(
            RefreshToken.jti == payload["jti"],
            RefreshToken.user_id == payload["sub"],
        ).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise AuthError("Invalid refresh token")

    user = db.session.get(User, payload["sub"])
    if user is None or not user.is_active:
        db.session.commit()
        raise AuthError("Invalid refresh token")

    return user, issue_tokens(user)


def revoke_refresh_token(token: str | None) -> None:
    """Forget a refresh token on logout. Unknown or invalid tokens are ignored."""
    if not token:
        return
    try:
        payload = _decode_refresh_token(token)
    except AuthError:
        return
    db.session.execute(
        delete(RefreshToken)
        .where(RefreshToken.jti == payload["jti"])
        .execution_options(synchronize_session=False)
    )
    db.session.commit()


def revoke_all_refresh_tokens(user: User) -> None:
    db.session.execute(
        delete(RefreshToken)
        .where(RefreshToken.user_id == user.id)
        .execution_options(synchronize_session=False)
    )


__all__ = [
    "TokenPair",
    "create_access_token",
    "decode_access_token",
    "issue_tokens",
    "rotate_refresh_token",
    "revoke_refresh_token",
    "revoke_all_refresh_tokens",
]
