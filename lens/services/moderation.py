"""Photo moderation and the admin dashboard figures."""

from __future__ import annotations

from datetime import timedelta
from typing import Any

from flask import current_app
from sqlalchemy import func, or_, select

from lens.errors import ValidationError
from lens.extensions import db
from lens.models import ModerationStatus, Photo, PhotoCategory, Portfolio, User, UserRole, utcnow
from lens.services import LIKE_ESCAPE, contains_pattern


def _ensure_pending(photo: Photo) -> None:
    if photo.moderation_status != ModerationStatus.PENDING:
        raise ValidationError(f"Photo has already been reviewed ({photo.moderation_status.value})")


def approve(photo: Photo, reviewer: User, notes: str | None = None) -> Photo:
    _ensure_pending(photo)
    photo.moderation_status = ModerationStatus.APPROVED
    photo.reviewed_by_id = reviewer.id
    photo.reviewed_at = utcnow()
    photo.rejection_reason = None
    photo.review_notes = notes or None
    db.session.commit()
    current_app.logger.info(f"Photo {photo.id} approved by {reviewer.username}")
    return photo


def reject(photo: Photo, reviewer: User, reason: str, notes: str | None = None) -> Photo:
    _ensure_pending(photo)
    photo.moderation_status = ModerationStatus.REJECTED
    photo.reviewed_by_id = reviewer.id
    photo.reviewed_at = utcnow()
    photo.rejection_reason = reason.strip()
    photo.review_notes = notes or None
    db.session.commit()
    current_app.logger.info(f"Photo {photo.id} rejected by {reviewer.username}: {photo.rejection_reason}")
    return photo


def parse_status(value: str) -> ModerationStatus:
    try:
        return ModerationStatus(value)
    except ValueError:
        raise ValidationError.for_field(
            "status", f"Status must be one of: {', '.join(s.value for s in ModerationStatus)}"
        )


def photos_by_status(status: ModerationStatus, *, page: int, limit: int, oldest_first: bool = False):
    order = Photo.created_at.asc() if oldest_first else Photo.created_at.desc()
    stmt = select(Photo).where(Photo.moderation_status == status).order_by(order)
    return db.paginate(stmt, page=page, per_page=limit, error_out=False)


def recent_submissions(*, days: int, page: int, limit: int):
    stmt = (
        select(Photo)
        .where(Photo.created_at >= utcnow() - timedelta(days=days))
        .order_by(Photo.created_at.desc())
    )
    return db.paginate(stmt, page=page, per_page=limit, error_out=False)


def status_counts() -> dict[str, int]:
    rows = db.session.execute(
        select(Photo.moderation_status, func.count(Photo.id)).group_by(Photo.moderation_status)
    ).all()
    counts = {status.value: 0 for status in ModerationStatus}
    for status, count in rows:
        counts[status.value] = count
    counts["total"] = sum(counts.values())
    return counts


def photo_stats() -> dict[str, Any]:
    since = utcnow() - timedelta(days=7)
    by_category = {
        category.value: count
        for category, count in db.session.execute(
            select(Photo.category, func.count(Photo.id)).group_by(Photo.category)
        )
    }
    totals = db.session.execute(
        select(
            func.coalesce(func.sum(Photo.views), 0),
            func.coalesce(func.sum(Photo.likes), 0),
            func.coalesce(func.sum(Photo.downloads), 0),
        )
    ).one()
    return {
        "by_status": status_counts(),
        "by_category": {c.value: by_category.get(c.value, 0) for c in PhotoCategory},
        "uploaded_last_7_days": db.session.scalar(
            select(func.count(Photo.id)).where(Photo.created_at >= since)
        ) or 0,
        "total_views": int(totals[0]),
        "total_likes": int(totals[1]),
        "total_downloads": int(totals[2]),
    }


def user_stats() -> dict[str, Any]:
    since = utcnow() - timedelta(days=7)
    by_role = {
        role.value: count
        for role, count in db.session.execute(select(User.role, func.count(User.id)).group_by(User.role))
    }
    by_plan = {
        plan.value: count
        for plan, count in db.session.execute(
            select(User.subscription_plan, func.count(User.id)).group_by(User.subscription_plan)
        )
    }
    return {
        "total": sum(by_role.values()),
        "active": db.session.scalar(select(func.count(User.id)).where(User.active.is_(True))) or 0,
        "new_last_7_days": db.session.scalar(select(func.count(User.id)).where(User.created_at >= since)) or 0,
        "by_role": {r.value: by_role.get(r.value, 0) for r in UserRole},
        "by_plan": by_plan,
    }


def dashboard() -> dict[str, Any]:
    return {
        "photos": status_counts(),
        "users": user_stats(),
        "portfolios": db.session.scalar(select(func.count(Portfolio.id))) or 0,
    }


def visible_roles(actor: User) -> list[UserRole]:
    """Admins manage plain users; super admins also manage admins."""
    if actor.has_role(UserRole.SUPER_ADMIN):
        return [UserRole.USER, UserRole.ADMIN]
    return [UserRole.USER]


def list_users(actor: User, *, term: str | None, role: str | None, page: int, limit: int):
    roles = visible_roles(actor)
    if role:
        try:
            wanted = UserRole(role)
        except ValueError:
            raise ValidationError.for_field("role", "Invalid role")
        roles = [r for r in roles if r == wanted]
    stmt = select(User).where(User.role.in_(roles))
    if term:
        pattern = contains_pattern(term)
        stmt = stmt.where(or_(
            User.username.ilike(pattern, escape=LIKE_ESCAPE),
            User.email.ilike(pattern, escape=LIKE_ESCAPE),
            User.first_name.ilike(pattern, escape=LIKE_ESCAPE),
            User.last_name.ilike(pattern, escape=LIKE_ESCAPE),
        ))
    stmt = stmt.order_by(User.created_at.desc())
    return db.paginate(stmt, page=page, per_page=limit, error_out=False)


__all__ = [
    "approve",
    "reject",
    "parse_status",
    "photos_by_status",
    "recent_submissions",
    "status_counts",
    "photo_stats",
    "user_stats",
    "dashboard",
    "visible_roles",
    "list_users",
]
