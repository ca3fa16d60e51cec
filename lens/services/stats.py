"""User statistics: in-transaction counter updates and idempotent recomputation."""

from __future__ import annotations

from sqlalchemy import case, func, select, update

from lens.extensions import db
from lens.models import Photo, User


def _shifted(column, delta: int):
    if delta >= 0:
        return column + delta
    # Never let a counter go negative
    return case((column + delta < 0, 0), else_=column + delta)


def adjust_user_stats(user_id: str, *, photos: int = 0, views: int = 0, likes: int = 0) -> None:
    """Shift a user's counters inside the caller's transaction. Does not commit."""
    values = {}
    if photos:
        values["total_photos"] = _shifted(User.total_photos, photos)
    if views:
        values["total_views"] = _shifted(User.total_views, views)
    if likes:
        values["total_likes"] = _shifted(User.total_likes, likes)
    if not values:
        return
    db.session.execute(
        update(User)
        .where(User.id == user_id)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )


def recompute_user_stats(user_id: str | None = None) -> int:
    """Recalculate counters from photo rows. Safe to run any number of times.

    Returns the number of users whose counters changed.
    """
    totals = (
        select(
            Photo.user_id,
            func.count(Photo.id).label("photos"),
            func.coalesce(func.sum(Photo.views), 0).label("views"),
            func.coalesce(func.sum(Photo.likes), 0).label("likes"),
        )
        .group_by(Photo.user_id)
    )
    users_stmt = select(User)
    if user_id:
        totals = totals.where(Photo.user_id == user_id)
        users_stmt = users_stmt.where(User.id == user_id)

    by_user = {row.user_id: row for row in db.session.execute(totals)}
    changed = 0
    for user in db.session.scalars(users_stmt):
        row = by_user.get(user.id)
        expected = (row.photos, int(row.views), int(row.likes)) if row else (0, 0, 0)
        if (user.total_photos, user.total_views, user.total_likes) != expected:
            user.total_photos, user.total_views, user.total_likes = expected
            changed += 1
    db.session.commit()
    return changed


__all__ = ["adjust_user_stats", "recompute_user_stats"]
