"""Public profiles, follow graph and per-user listings."""

from __future__ import annotations

from flask import Blueprint, request

from lens.auth import get_current_user, login_required
from lens.blueprints.common.api import page_args, paginated, success
from lens.errors import AuthzError
from lens.services import users
from lens.services.photos import search_photos, serialize_photo
from lens.services.portfolios import photo_count, search_portfolios, serialize_portfolio

users_bp = Blueprint("users", __name__)


def _visible_profile(username: str):
    """Load a profile, enforcing the public-profile preference for other viewers."""
    user = users.get_by_username_or_404(username)
    viewer = get_current_user()
    is_self = viewer is not None and viewer.id == user.id
    if not is_self and not (viewer is not None and viewer.is_staff):
        if not user.public_profile or not user.active:
            raise AuthzError("This profile is private")
    return user, viewer, is_self


@users_bp.get("/search")
def search():
    page, limit = page_args(20)
    pagination = users.search_users(request.args.get("q"), page=page, limit=limit)
    return success(paginated([users.serialize_user(u) for u in pagination.items], pagination))


@users_bp.get("/me/stats")
@login_required
def my_stats():
    return success(users.user_stats(get_current_user()))


@users_bp.get("/<username>")
def profile(username):
    user, viewer, is_self = _visible_profile(username)
    data = users.serialize_user(user, private=is_self)
    data.update(users.follow_counts(user))
    if viewer is not None and not is_self:
        data["is_following"] = user in viewer.following
    return success(data)


@users_bp.get("/<username>/portfolios")
def portfolios(username):
    user, _viewer, is_self = _visible_profile(username)
    page, limit = page_args()
    pagination = search_portfolios(owner_id=user.id, include_private=is_self, page=page, limit=limit)
    items = [serialize_portfolio(p, photo_count=photo_count(p.id)) for p in pagination.items]
    return success(paginated(items, pagination))


@users_bp.get("/<username>/photos")
def photos(username):
    user, viewer, is_self = _visible_profile(username)
    page, limit = page_args(20)
    pagination = search_photos(
        owner_id=user.id,
        public_only=not is_self,
        category=request.args.get("category"),
        sort=request.args.get("sort", "newest"),
        page=page,
        limit=limit,
    )
    return success(paginated([serialize_photo(p, viewer) for p in pagination.items], pagination))


@users_bp.get("/<username>/followers")
def followers(username):
    user, _viewer, _ = _visible_profile(username)
    page, limit = page_args(20)
    pagination = users.follow_page(user, followers=True, page=page, limit=limit)
    return success(paginated([users.serialize_user_summary(u) for u in pagination.items], pagination))


@users_bp.get("/<username>/following")
def following(username):
    user, _viewer, _ = _visible_profile(username)
    page, limit = page_args(20)
    pagination = users.follow_page(user, followers=False, page=page, limit=limit)
    return success(paginated([users.serialize_user_summary(u) for u in pagination.items], pagination))


@users_bp.post("/<username>/follow")
@login_required
def follow(username):
    target = users.get_by_username_or_404(username)
    now_following = users.toggle_follow(get_current_user(), target)
    message = f"Now following {target.username}" if now_following else f"Unfollowed {target.username}"
    return success({"following": now_following, **users.follow_counts(target)}, message)
