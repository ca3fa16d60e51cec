"""Account authentication endpoints."""

from __future__ import annotations

from flask import Blueprint, current_app, request

from lens.auth import ACCESS_COOKIE, REFRESH_COOKIE, get_current_user, login_required
from lens.blueprints.common.api import get_json, success
from lens.errors import ValidationError
from lens.extensions import limiter
from lens.forms.accounts import (
    ChangePasswordForm,
    DeleteAccountForm,
    LoginForm,
    ProfileForm,
    RegisterForm,
)
from lens.security import auth_rate_limit
from lens.services import tokens, users
from lens.services.portfolios import get_default_portfolio, serialize_portfolio

auth_bp = Blueprint("auth", __name__)


def _with_tokens(response, pair: tokens.TokenPair):
    secure = current_app.config.get("AUTH_COOKIE_SECURE", False)
    response.set_cookie(
        ACCESS_COOKIE, pair.access_token, max_age=pair.access_expires_in,
        httponly=True, secure=secure, samesite="Lax",
    )
    response.set_cookie(
        REFRESH_COOKIE, pair.refresh_token, max_age=pair.refresh_expires_in,
        httponly=True, secure=secure, samesite="Lax", path="/api/auth",
    )
    return response


def _clear_tokens(response):
    response.delete_cookie(ACCESS_COOKIE)
    response.delete_cookie(REFRESH_COOKIE, path="/api/auth")
    return response


def _session_payload(user, pair: tokens.TokenPair) -> dict:
    return {"user": users.serialize_user(user, private=True), **pair.to_dict()}


@auth_bp.post("/register")
@limiter.limit(auth_rate_limit)
def register():
    form = RegisterForm(get_json()).validate_or_raise()
    user = users.create_account(
        username=form.username.data,
        email=form.email.data,
        password=form.password.data,
        first_name=form.first_name.data,
        last_name=form.last_name.data,
    )
    pair = tokens.issue_tokens(user)
    data = _session_payload(user, pair)
    default = get_default_portfolio(user)
    data["default_portfolio"] = serialize_portfolio(default) if default else None

    response, status = success(data, "User registered successfully", 201)
    return _with_tokens(response, pair), status


@auth_bp.post("/login")
@limiter.limit(auth_rate_limit)
def login():
    payload = get_json()
    if not payload.get("identifier"):
        payload["identifier"] = payload.get("email") or payload.get("username")
    form = LoginForm(payload).validate_or_raise()
    user = users.authenticate(form.identifier.data, form.password.data)
    pair = tokens.issue_tokens(user)

    response, status = success(_session_payload(user, pair), "Login successful")
    return _with_tokens(response, pair), status


@auth_bp.post("/refresh")
@limiter.limit(auth_rate_limit)
def refresh():
    token = get_json().get("refresh_token") or request.cookies.get(REFRESH_COOKIE)
    user, pair = tokens.rotate_refresh_token(token)

    response, status = success(_session_payload(user, pair), "Token refreshed")
    return _with_tokens(response, pair), status


@auth_bp.post("/logout")
def logout():
    token = get_json().get("refresh_token") or request.cookies.get(REFRESH_COOKIE)
    tokens.revoke_refresh_token(token)

    response, status = success(message="Logged out successfully")
    return _clear_tokens(response), status


@auth_bp.get("/me")
@login_required
def me():
    user = get_current_user()
    data = users.serialize_user(user, private=True)
    data.update(users.follow_counts(user))
    return success(data)


@auth_bp.put("/me")
@login_required
def update_me():
    form = ProfileForm(get_json()).validate_or_raise()
    user = users.update_profile(get_current_user(), form.changes())
    return success(users.serialize_user(user, private=True), "Profile updated successfully")


@auth_bp.delete("/me")
@login_required
def delete_me():
    form = DeleteAccountForm(get_json()).validate_or_raise()
    user = get_current_user()
    if not user.check_password(form.password.data):
        raise ValidationError.for_field("password", "Password is incorrect")
    users.delete_account(user)

    response, status = success(message="Account deleted successfully")
    return _clear_tokens(response), status


@auth_bp.put("/change-password")
@login_required
def change_password():
    form = ChangePasswordForm(get_json()).validate_or_raise()
    user = get_current_user()
    users.change_password(user, form.current_password.data, form.new_password.data)
    pair = tokens.issue_tokens(user)

    response, status = success(pair.to_dict(), "Password changed successfully")
    return _with_tokens(response, pair), status
