"""Portfolio creation, default handling, search, duplication and analytics."""

from __future__ import annotations

import re
import time
from typing import Any

from flask import current_app
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from lens.errors import ConflictError, NotFoundError, QuotaError, ValidationError
from lens.extensions import db
from lens.models import (
    DEFAULT_PORTFOLIO_SETTINGS,
    DEFAULT_PORTFOLIO_THEME,
    LayoutType,
    Photo,
    PhotoCategory,
    Portfolio,
    PortfolioTag,
    User,
    normalize_tags,
    utcnow,
)
from lens.services import LIKE_ESCAPE, contains_pattern
from lens.services.stats import adjust_user_stats
from lens.services.users import serialize_user_summary

DEFAULT_PORTFOLIO_TITLE = "My Photos"
DEFAULT_PORTFOLIO_DESCRIPTION = "My default photo collection"
# Static routes under /api/portfolios
RESERVED_SLUGS = {"my", "default"}

SIMPLE_FIELDS = (
    "title",
    "description",
    "is_public",
    "custom_domain",
    "seo_title",
    "seo_description",
    "layout_columns",
    "layout_spacing",
)


def slugify(text: str) -> str:
    """Lower-case, keep `[a-z0-9 -]`, whitespace to dashes, collapse dashes."""
    slug = re.sub(r'[^a-z0-9\s-]', '', (text or '').lower())
    slug = re.sub(r'\s+', '-', slug.strip())
    slug = re.sub(r'-+', '-', slug)
    return slug.strip('-')


def unique_slug(base: str, exclude_id: str | None = None) -> str:
    base = slugify(base)[:140] or "portfolio"
    slug = base
    counter = 2
    while True:
        stmt = select(Portfolio.id).where(Portfolio.slug == slug)
        if exclude_id:
            stmt = stmt.where(Portfolio.id != exclude_id)
        if slug not in RESERVED_SLUGS and db.session.scalar(stmt) is None:
            return slug
        slug = f"{base}-{counter}"
        counter += 1


def _iso(value):
    return value.isoformat() if value else None


def serialize_portfolio(portfolio: Portfolio, *, photos: list[dict] | None = None, photo_count: int | None = None) -> dict[str, Any]:
    data = {
        "id": portfolio.id,
        "title": portfolio.title,
        "description": portfolio.description,
        "slug": portfolio.slug,
        "is_public": portfolio.is_public,
        "is_default": portfolio.is_default,
        "cover_photo_id": portfolio.cover_photo_id,
        "layout": {
            "type": portfolio.layout_type.value,
            "columns": portfolio.layout_columns,
            "spacing": portfolio.layout_spacing,
        },
        "theme": {**DEFAULT_PORTFOLIO_THEME, **(portfolio.theme or {})},
        "settings": {**DEFAULT_PORTFOLIO_SETTINGS, **(portfolio.settings or {})},
        "custom_domain": portfolio.custom_domain,
        "seo": {
            "title": portfolio.seo_title,
            "description": portfolio.seo_description,
            "keywords": portfolio.seo_keywords or [],
        },
        "category": portfolio.category.value,
        "tags": portfolio.tags,
        "analytics": {
            "total_views": portfolio.total_views,
            "unique_views": portfolio.unique_views,
            "last_viewed_at": _iso(portfolio.last_viewed_at),
        },
        "owner": serialize_user_summary(portfolio.owner),
        "created_at": _iso(portfolio.created_at),
        "updated_at": _iso(portfolio.updated_at),
    }
    if photo_count is not None:
        data["photo_count"] = photo_count
    if photos is not None:
        data["photos"] = photos
    return data


def get_portfolio_or_404(portfolio_id: str) -> Portfolio:
    portfolio = db.session.get(Portfolio, portfolio_id)
    if portfolio is None:
        raise NotFoundError("Portfolio not found")
    return portfolio


def get_by_slug_or_404(slug: str) -> Portfolio:
    portfolio = db.session.scalar(select(Portfolio).where(Portfolio.slug == slug))
    if portfolio is None:
        raise NotFoundError("Portfolio not found")
    return portfolio


def count_for_user(user_id: str) -> int:
    return db.session.scalar(select(func.count(Portfolio.id)).where(Portfolio.user_id == user_id)) or 0


def photo_count(portfolio_id: str) -> int:
    return db.session.scalar(select(func.count(Photo.id)).where(Photo.portfolio_id == portfolio_id)) or 0


def assert_portfolio_quota(user: User) -> None:
    if user.is_pro:
        return
    limit = current_app.config["FREE_PLAN_PORTFOLIO_LIMIT"]
    if count_for_user(user.id) >= limit:
        raise QuotaError(f"Free plan allows up to {limit} portfolios. Upgrade to Pro for unlimited portfolios.")


def _clear_default(user_id: str, keep_id: str | None = None) -> None:
    stmt = update(Portfolio).where(Portfolio.user_id == user_id, Portfolio.is_default.is_(True))
    if keep_id:
        stmt = stmt.where(Portfolio.id != keep_id)
    db.session.execute(stmt.values(is_default=False).execution_options(synchronize_session="fetch"))


def _apply_changes(portfolio: Portfolio, changes: dict[str, Any]) -> None:
    for name in SIMPLE_FIELDS:
        if name in changes:
            value = changes[name]
            if isinstance(value, str):
                value = value.strip() or None
            if name == "title" and not value:
                raise ValidationError.for_field("title", "Portfolio title is required")
            setattr(portfolio, name, value)
    if changes.get("layout_type"):
        portfolio.layout_type = LayoutType(changes["layout_type"])
    if changes.get("category"):
        portfolio.category = PhotoCategory(changes["category"])
    if "theme" in changes:
        portfolio.theme = {**(portfolio.theme or DEFAULT_PORTFOLIO_THEME), **_pick(changes["theme"], DEFAULT_PORTFOLIO_THEME)}
    if "settings" in changes:
        portfolio.settings = {
            **(portfolio.settings or DEFAULT_PORTFOLIO_SETTINGS),
            **{k: bool(v) for k, v in _pick(changes["settings"], DEFAULT_PORTFOLIO_SETTINGS).items()},
        }
    if "seo_keywords" in changes:
        portfolio.seo_keywords = normalize_tags(changes["seo_keywords"])
    if "tags" in changes:
        portfolio.tags = changes["tags"]
    if "cover_photo_id" in changes:
        cover_id = changes["cover_photo_id"] or None
        if cover_id and db.session.scalar(
            select(Photo.id).where(Photo.id == cover_id, Photo.portfolio_id == portfolio.id)
        ) is None:
            raise ValidationError.for_field("cover_photo_id", "Cover photo must belong to this portfolio")
        portfolio.cover_photo_id = cover_id


def _pick(values: dict | None, allowed: dict) -> dict:
    """Keep only known keys of a theme/settings object."""
    return {k: v for k, v in (values or {}).items() if k in allowed}


def _conflict_for(error: IntegrityError) -> ConflictError:
    """Name the unique constraint a concurrent portfolio write ran into."""
    if "slug" in str(error.orig).lower():
        return ConflictError(
            "A portfolio with this slug already exists, please retry",
            errors=[{"field": "slug", "message": "Slug already exists"}],
        )
    return ConflictError("Default portfolio was changed concurrently, please retry")


def _commit_portfolio() -> None:
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise _conflict_for(e)


def create_portfolio(user: User, changes: dict[str, Any]) -> Portfolio:
    assert_portfolio_quota(user)
    portfolio = Portfolio(user_id=user.id, owner=user, title=changes.get("title") or "")
    portfolio.slug = unique_slug(changes.get("title") or "")
    _apply_changes(portfolio, changes)
    db.session.add(portfolio)
    if changes.get("is_default"):
        # the new row joins the commit, so a slug clash is mapped there too
        with db.session.no_autoflush:
            _clear_default(user.id)
        portfolio.is_default = True
    _commit_portfolio()
    return portfolio


def create_default_portfolio(user: User) -> Portfolio:
    """Default portfolio created at registration. Flushes, the caller commits."""
    portfolio = Portfolio(
        user_id=user.id,
        owner=user,
        title=DEFAULT_PORTFOLIO_TITLE,
        description=DEFAULT_PORTFOLIO_DESCRIPTION,
        slug=unique_slug(f"{user.username}-photos"),
        is_public=True,
        is_default=True,
    )
    db.session.add(portfolio)
    db.session.flush()
    return portfolio


def get_default_portfolio(user: User) -> Portfolio | None:
    return db.session.scalar(
        select(Portfolio).where(Portfolio.user_id == user.id, Portfolio.is_default.is_(True))
    )


def get_or_create_default(user: User) -> Portfolio:
    portfolio = get_default_portfolio(user)
    if portfolio is None:
        try:
            portfolio = create_default_portfolio(user)
        except IntegrityError as e:
            db.session.rollback()
            raise _conflict_for(e)
        _commit_portfolio()
    return portfolio


def set_default(portfolio: Portfolio) -> Portfolio:
    """Make ``portfolio`` the owner's only default.

    Both updates run in one transaction and the partial unique index on
    (user_id) WHERE is_default guarantees a single default even when two
    requests race; the loser gets ConflictError.
    """
    try:
        _clear_default(portfolio.user_id, keep_id=portfolio.id)
        db.session.execute(
            update(Portfolio)
            .where(Portfolio.id == portfolio.id)
            .values(is_default=True)
            .execution_options(synchronize_session="fetch")
        )
    except IntegrityError as e:
        db.session.rollback()
        raise _conflict_for(e)
    _commit_portfolio()
    db.session.refresh(portfolio)
    return portfolio


def update_portfolio(portfolio: Portfolio, changes: dict[str, Any]) -> Portfolio:
    _apply_changes(portfolio, changes)
    if changes.get("is_default") and not portfolio.is_default:
        db.session.flush()
        return set_default(portfolio)
    if "is_default" in changes and not changes["is_default"] and portfolio.is_default:
        raise ValidationError.for_field("is_default", "Set another portfolio as default instead")
    db.session.commit()
    return portfolio


def delete_portfolio(portfolio: Portfolio) -> int:
    """Delete a portfolio and its photos. Returns the number of stored objects removed."""
    from lens.services.photos import unreferenced_keys
    from lens.services.storage import delete_quietly

    if portfolio.is_default:
        raise ValidationError("Cannot delete your default portfolio")
    rows = db.session.execute(
        select(Photo.storage_key, Photo.thumbnail_key, Photo.views, Photo.likes)
        .where(Photo.portfolio_id == portfolio.id)
    ).all()
    keys = [key for row in rows for key in (row.storage_key, row.thumbnail_key)]

    adjust_user_stats(
        portfolio.user_id,
        photos=-len(rows),
        views=-sum(row.views for row in rows),
        likes=-sum(row.likes for row in rows),
    )
    db.session.delete(portfolio)
    db.session.commit()
    return delete_quietly(unreferenced_keys(keys))


def duplicate_portfolio(portfolio: Portfolio, user: User) -> Portfolio:
    """Copy a portfolio and its photo records; stored objects are shared, not copied."""
    from lens.services.photos import assert_photo_quota

    assert_portfolio_quota(user)
    photos = list(portfolio.photos)
    assert_photo_quota(user, adding=len(photos))

    copy = Portfolio(
        user_id=user.id,
        owner=user,
        title=f"{portfolio.title} (Copy)"[:100],
        description=portfolio.description,
        slug=unique_slug(f"{portfolio.slug}-copy-{int(time.time() * 1000)}"),
        is_public=False,
        is_default=False,
        layout_type=portfolio.layout_type,
        layout_columns=portfolio.layout_columns,
        layout_spacing=portfolio.layout_spacing,
        theme=dict(portfolio.theme or {}),
        settings=dict(portfolio.settings or {}),
        seo_title=portfolio.seo_title,
        seo_description=portfolio.seo_description,
        seo_keywords=list(portfolio.seo_keywords or []),
        category=portfolio.category,
    )
    copy.tags = portfolio.tags
    db.session.add(copy)

    copy_columns = (
        "title", "description", "alt_text", "url", "storage_key", "thumbnail_url",
        "thumbnail_key", "width", "height", "format", "file_size", "exif", "color_palette",
        "category", "is_public", "position", "allow_download", "show_metadata",
        "moderation_status", "reviewed_by_id", "reviewed_at", "rejection_reason", "review_notes",
    )
    for photo in photos:
        clone = Photo(user_id=user.id, owner=user, portfolio=copy)
        for column in copy_columns:
            setattr(clone, column, getattr(photo, column))
        clone.tags = photo.tags
        db.session.add(clone)

    adjust_user_stats(user.id, photos=len(photos))
    _commit_portfolio()
    return copy


def record_view(portfolio: Portfolio, viewer: User | None) -> None:
    if viewer is not None and viewer.id == portfolio.user_id:
        return
    db.session.execute(
        update(Portfolio)
        .where(Portfolio.id == portfolio.id)
        .values(total_views=Portfolio.total_views + 1, last_viewed_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(portfolio)


def analytics(portfolio: Portfolio) -> dict[str, Any]:
    totals = db.session.execute(
        select(
            func.count(Photo.id),
            func.coalesce(func.sum(Photo.views), 0),
            func.coalesce(func.sum(Photo.likes), 0),
            func.coalesce(func.sum(Photo.downloads), 0),
            func.coalesce(func.sum(Photo.shares), 0),
        ).where(Photo.portfolio_id == portfolio.id)
    ).one()
    top = db.session.scalars(
        select(Photo).where(Photo.portfolio_id == portfolio.id).order_by(Photo.views.desc()).limit(5)
    ).all()
    return {
        "portfolio": {
            "total_views": portfolio.total_views,
            "unique_views": portfolio.unique_views,
            "last_viewed_at": _iso(portfolio.last_viewed_at),
        },
        "photos": {
            "count": totals[0],
            "total_views": int(totals[1]),
            "total_likes": int(totals[2]),
            "total_downloads": int(totals[3]),
            "total_shares": int(totals[4]),
        },
        "top_photos": [
            {"id": p.id, "title": p.title, "views": p.views, "likes": p.likes, "thumbnail_url": p.thumbnail_url}
            for p in top
        ],
    }


def search_portfolios(
    *,
    term: str | None = None,
    category: str | None = None,
    tags: list[str] | None = None,
    owner_id: str | None = None,
    include_private: bool = False,
    sort: str = "newest",
    page: int = 1,
    limit: int = 12,
):
    stmt = select(Portfolio)
    if not include_private:
        stmt = stmt.where(Portfolio.is_public.is_(True))
    if owner_id:
        stmt = stmt.where(Portfolio.user_id == owner_id)
    if category:
        try:
            stmt = stmt.where(Portfolio.category == PhotoCategory(category))
        except ValueError:
            raise ValidationError.for_field("category", "Invalid category")
    wanted = normalize_tags(tags)
    if wanted:
        stmt = stmt.where(Portfolio.tag_links.any(PortfolioTag.name.in_(wanted)))
    if term:
        pattern = contains_pattern(term)
        stmt = stmt.where(or_(
            Portfolio.title.ilike(pattern, escape=LIKE_ESCAPE),
            Portfolio.description.ilike(pattern, escape=LIKE_ESCAPE),
            Portfolio.tag_links.any(PortfolioTag.name.ilike(pattern, escape=LIKE_ESCAPE)),
        ))
    if sort == "oldest":
        stmt = stmt.order_by(Portfolio.created_at.asc())
    elif sort in ("popular", "trending"):
        stmt = stmt.order_by(Portfolio.total_views.desc(), Portfolio.created_at.desc())
    else:
        stmt = stmt.order_by(Portfolio.is_default.desc(), Portfolio.created_at.desc()) if owner_id else stmt.order_by(Portfolio.created_at.desc())
    return db.paginate(stmt, page=page, per_page=limit, error_out=False)


__all__ = [
    "slugify",
    "unique_slug",
    "serialize_portfolio",
    "get_portfolio_or_404",
    "get_by_slug_or_404",
    "count_for_user",
    "photo_count",
    "assert_portfolio_quota",
    "create_portfolio",
    "create_default_portfolio",
    "get_default_portfolio",
    "get_or_create_default",
    "set_default",
    "update_portfolio",
    "delete_portfolio",
    "duplicate_portfolio",
    "record_view",
    "analytics",
    "search_portfolios",
]
