"""User accounts: registration, login, profile, follow graph and role management."""

from __future__ import annotations

from typing import Any

from flask import current_app
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from lens.errors import AuthError, AuthzError, ConflictError, NotFoundError, ValidationError
from lens.extensions import db
from lens.models import (
    ModerationStatus,
    Photo,
    Portfolio,
    SubscriptionPlan,
    ThemePreference,
    User,
    UserRole,
    user_follow,
    utcnow,
)
from lens.security import is_password_strong
from lens.services import LIKE_ESCAPE, contains_pattern
from lens.services.storage import delete_quietly

PROFILE_FIELDS = ("first_name", "last_name", "bio", "website", "location")
PREFERENCE_FIELDS = ("email_notifications", "public_profile")


def _iso(value):
    return value.isoformat() if value else None


def serialize_user_summary(user: User) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "avatar_url": user.avatar_url,
    }


def serialize_user(user: User, *, private: bool = False) -> dict[str, Any]:
    """Public profile; ``private`` adds account fields only the owner or staff may see."""
    data = serialize_user_summary(user)
    data.update({
        "bio": user.bio,
        "website": user.website,
        "location": user.location,
        "is_verified": user.is_verified,
        "stats": {
            "total_photos": user.total_photos,
            "total_views": user.total_views,
            "total_likes": user.total_likes,
        },
        "created_at": _iso(user.created_at),
    })
    if private:
        data.update({
            "email": user.email,
            "role": user.role.value,
            "is_active": user.active,
            "subscription": {
                "plan": user.subscription_plan.value,
                "start_date": _iso(user.subscription_started_at),
                "end_date": _iso(user.subscription_ends_at),
            },
            "preferences": {
                "theme": user.theme.value,
                "email_notifications": user.email_notifications,
                "public_profile": user.public_profile,
            },
            "last_login_at": _iso(user.last_login_at),
        })
    return data


def find_by_identifier(identifier: str) -> User | None:
    """Look a user up by email or (case-insensitive) username."""
    value = identifier.strip().lower()
    return db.session.scalar(
        select(User).where(or_(User.email == value, func.lower(User.username) == value))
    )


def get_user_or_404(user_id: str) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_by_username_or_404(username: str) -> User:
    user = db.session.scalar(select(User).where(func.lower(User.username) == username.lower()))
    if user is None:
        raise NotFoundError("User not found")
    return user


def _ensure_unique(email: str | None = None, username: str | None = None, exclude_id: str | None = None) -> None:
    if email:
        stmt = select(User.id).where(User.email == email)
        if exclude_id:
            stmt = stmt.where(User.id != exclude_id)
        if db.session.scalar(stmt):
            raise ConflictError("Email already exists", errors=[{"field": "email", "message": "Email already exists"}])
    if username:
        stmt = select(User.id).where(func.lower(User.username) == username.lower())
        if exclude_id:
            stmt = stmt.where(User.id != exclude_id)
        if db.session.scalar(stmt):
            raise ConflictError(
                "Username already exists",
                errors=[{"field": "username", "message": "Username already exists"}],
            )


def create_account(
    *,
    username: str,
    email: str,
    password: str,
    role: UserRole = UserRole.USER,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """Create a user together with their default portfolio. Commits."""
    from lens.services.portfolios import create_default_portfolio

    email = email.strip().lower()
    username = username.strip()
    _ensure_unique(email=email, username=username)

    user = User(
        username=username,
        email=email,
        role=role,
        first_name=first_name or None,
        last_name=last_name or None,
        subscription_plan=SubscriptionPlan.FREE,
    )
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.flush()
        create_default_portfolio(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email or username already exists")
    return user


def authenticate(identifier: str, password: str) -> User:
    user = find_by_identifier(identifier)
    if user is None or not user.check_password(password):
        raise AuthError("Invalid credentials")
    if not user.is_active:
        raise AuthError("Account is deactivated")
    user.last_login_at = utcnow()
    db.session.commit()
    return user


def update_profile(user: User, changes: dict[str, Any]) -> User:
    for name in PROFILE_FIELDS:
        if name in changes:
            setattr(user, name, changes[name] or None)
    for name in PREFERENCE_FIELDS:
        if name in changes:
            setattr(user, name, bool(changes[name]))
    if changes.get("theme"):
        user.theme = ThemePreference(changes["theme"])
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    from lens.services.tokens import revoke_all_refresh_tokens

    if not user.check_password(current_password):
        raise ValidationError.for_field("current_password", "Current password is incorrect")
    ok, message = is_password_strong(new_password)
    if not ok:
        raise ValidationError.for_field("new_password", message)
    user.set_password(new_password)
    revoke_all_refresh_tokens(user)
    db.session.commit()


def count_super_admins(*, active_only: bool = False) -> int:
    stmt = select(func.count(User.id)).where(User.role == UserRole.SUPER_ADMIN)
    if active_only:
        stmt = stmt.where(User.active.is_(True))
    return db.session.scalar(stmt) or 0


def ensure_super_admin_remains(
    user: User,
    *,
    new_role: UserRole | None = None,
    deactivate: bool = False,
    delete: bool = False,
) -> None:
    """Reject changes that would leave the platform without a super admin."""
    if user.role != UserRole.SUPER_ADMIN:
        return
    if delete or (new_role is not None and new_role != UserRole.SUPER_ADMIN):
        if count_super_admins() <= 1:
            raise ValidationError("Cannot remove the last super admin")
    if deactivate and user.active and count_super_admins(active_only=True) <= 1:
        raise ValidationError("Cannot deactivate the last active super admin")


def delete_account(user: User) -> int:
    """Delete a user and everything they own, then their stored objects.

    Returns the number of storage objects removed.
    """
    ensure_super_admin_remains(user, delete=True)
    keys = [user.avatar_key]
    for key, thumb in db.session.execute(
        select(Photo.storage_key, Photo.thumbnail_key).where(Photo.user_id == user.id)
    ):
        keys.extend([key, thumb])

    username = user.username
    db.session.delete(user)
    db.session.commit()
    current_app.logger.info(f"Deleted account {username}")

    from lens.services.photos import unreferenced_keys

    return delete_quietly(unreferenced_keys(keys))


def set_role(actor: User, user: User, role: UserRole) -> User:
    ensure_super_admin_remains(user, new_role=role)
    previous = user.role
    user.role = role
    db.session.commit()
    current_app.logger.info(
        f"Role of {user.username} changed from {previous.value} to {role.value} by {actor.username}"
    )
    return user


def set_active(actor: User, user: User, active: bool) -> User:
    if not actor.has_role(UserRole.SUPER_ADMIN) and user.role != UserRole.USER:
        raise AuthzError("Only super admins can change the status of staff accounts")
    if not active:
        if user.id == actor.id:
            raise ValidationError("You cannot deactivate your own account")
        ensure_super_admin_remains(user, deactivate=True)
    user.active = active
    db.session.commit()
    current_app.logger.info(
        f"Account {user.username} {'activated' if active else 'deactivated'} by {actor.username}"
    )
    return user


def toggle_follow(follower: User, target: User) -> bool:
    """Follow ``target`` if not already following, otherwise unfollow. Returns the new state."""
    if follower.id == target.id:
        raise ValidationError("You cannot follow yourself")
    if target in follower.following:
        follower.following.remove(target)
        following = False
    else:
        follower.following.append(target)
        following = True
    db.session.commit()
    return following


def follow_counts(user: User) -> dict[str, int]:
    followers = db.session.scalar(
        select(func.count()).select_from(user_follow).where(user_follow.c.followed_id == user.id)
    )
    following = db.session.scalar(
        select(func.count()).select_from(user_follow).where(user_follow.c.follower_id == user.id)
    )
    return {"followers": followers or 0, "following": following or 0}


def follow_page(user: User, *, followers: bool, page: int, limit: int):
    if followers:
        join_on, match = user_follow.c.follower_id, user_follow.c.followed_id
    else:
        join_on, match = user_follow.c.followed_id, user_follow.c.follower_id
    stmt = (
        select(User)
        .join(user_follow, join_on == User.id)
        .where(match == user.id)
        .order_by(user_follow.c.created_at.desc())
    )
    return db.paginate(stmt, page=page, per_page=limit, error_out=False)


def search_users(term: str | None, *, page: int, limit: int):
    stmt = select(User).where(User.public_profile.is_(True), User.active.is_(True))
    if term:
        pattern = contains_pattern(term)
        stmt = stmt.where(or_(
            User.username.ilike(pattern, escape=LIKE_ESCAPE),
            User.first_name.ilike(pattern, escape=LIKE_ESCAPE),
            User.last_name.ilike(pattern, escape=LIKE_ESCAPE),
            User.bio.ilike(pattern, escape=LIKE_ESCAPE),
        ))
    stmt = stmt.order_by(User.total_views.desc(), User.created_at.desc())
    return db.paginate(stmt, page=page, per_page=limit, error_out=False)


def user_stats(user: User) -> dict[str, Any]:
    photo_counts = dict(
        db.session.execute(
            select(Photo.moderation_status, func.count(Photo.id))
            .where(Photo.user_id == user.id)
            .group_by(Photo.moderation_status)
        ).all()
    )
    totals = db.session.execute(
        select(
            func.coalesce(func.sum(Photo.views), 0),
            func.coalesce(func.sum(Photo.likes), 0),
            func.coalesce(func.sum(Photo.downloads), 0),
        ).where(Photo.user_id == user.id)
    ).one()
    portfolios = db.session.scalar(select(func.count(Portfolio.id)).where(Portfolio.user_id == user.id))
    return {
        "total_photos": user.total_photos,
        "total_portfolios": portfolios or 0,
        "total_views": int(totals[0]),
        "total_likes": int(totals[1]),
        "total_downloads": int(totals[2]),
        "photos_by_status": {
            status.value: photo_counts.get(status, 0) for status in ModerationStatus
        },
        **follow_counts(user),
        "plan": user.subscription_plan.value,
        "limits": plan_limits(user),
    }


def plan_limits(user: User) -> dict[str, int | None]:
    if user.is_pro:
        return {"photos": None, "portfolios": None}
    return {
        "photos": current_app.config["FREE_PLAN_PHOTO_LIMIT"],
        "portfolios": current_app.config["FREE_PLAN_PORTFOLIO_LIMIT"],
    }


__all__ = [
    "serialize_user",
    "serialize_user_summary",
    "find_by_identifier",
    "get_user_or_404",
    "get_by_username_or_404",
    "create_account",
    "authenticate",
    "update_profile",
    "change_password",
    "count_super_admins",
    "ensure_super_admin_remains",
    "delete_account",
    "set_role",
    "set_active",
    "toggle_follow",
    "follow_counts",
    "follow_page",
    "search_users",
    "user_stats",
    "plan_limits",
]
