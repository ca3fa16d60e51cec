"""Photo records: uploads through the image pipeline, search, engagement counters."""

from __future__ import annotations

from datetime import timedelta, timezone
from typing import Any, Iterable

from flask import current_app
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError

from lens.errors import AuthzError, NotFoundError, QuotaError, StorageError, ValidationError
from lens.extensions import db
from lens.models import (
    ModerationStatus,
    Photo,
    PhotoCategory,
    PhotoTag,
    Portfolio,
    User,
    normalize_tags,
    utcnow,
)
from lens.services import LIKE_ESCAPE, contains_pattern
from lens.services.imaging import ProcessedImage, process_image
from lens.services.portfolios import get_or_create_default
from lens.services.stats import adjust_user_stats
from lens.services.storage import build_key, delete_quietly, get_storage, thumbnail_key_for
from lens.services.users import serialize_user_summary

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
}

SORTS = ("newest", "oldest", "popular", "trending")

EDITABLE_FIELDS = (
    "title",
    "description",
    "alt_text",
    "is_public",
    "is_featured",
    "allow_download",
    "show_metadata",
    "position",
)


def _iso(value):
    return value.isoformat() if value else None


def serialize_photo(photo: Photo, viewer: User | None = None) -> dict[str, Any]:
    is_owner = viewer is not None and viewer.id == photo.user_id
    privileged = is_owner or (viewer is not None and viewer.is_staff)
    data = {
        "id": photo.id,
        "title": photo.title,
        "description": photo.description,
        "alt_text": photo.alt_text,
        "url": photo.url,
        "thumbnail_url": photo.thumbnail_url,
        "width": photo.width,
        "height": photo.height,
        "format": photo.format,
        "file_size": photo.file_size,
        "tags": photo.tags,
        "category": photo.category.value,
        "is_public": photo.is_public,
        "is_featured": photo.is_featured,
        "position": photo.position,
        "color_palette": photo.color_palette or [],
        "settings": {
            "allow_download": photo.allow_download,
            "show_metadata": photo.show_metadata,
        },
        "analytics": {
            "views": photo.views,
            "likes": photo.likes,
            "downloads": photo.downloads,
            "shares": photo.shares,
        },
        "portfolio_id": photo.portfolio_id,
        "owner": serialize_user_summary(photo.owner),
        "created_at": _iso(photo.created_at),
        "updated_at": _iso(photo.updated_at),
    }
    if photo.show_metadata or privileged:
        data["exif"] = photo.exif
    if privileged:
        data["storage_key"] = photo.storage_key
        data["thumbnail_key"] = photo.thumbnail_key
        data["moderation"] = {
            "status": photo.moderation_status.value,
            "reviewed_by": photo.reviewed_by_id,
            "reviewed_at": _iso(photo.reviewed_at),
            "reason": photo.rejection_reason,
            "notes": photo.review_notes if viewer.is_staff else None,
        }
    return data


def get_photo_or_404(photo_id: str) -> Photo:
    photo = db.session.get(Photo, photo_id)
    if photo is None:
        raise NotFoundError("Photo not found")
    return photo


def get_visible_photo(photo_id: str, viewer: User | None) -> Photo:
    """Fetch a photo the viewer may see; hidden photos are 403 for everyone but owner and staff."""
    photo = get_photo_or_404(photo_id)
    if not photo.can_view(viewer):
        raise AuthzError("Access denied")
    return photo


def assert_photo_quota(user: User, adding: int = 1) -> None:
    if user.is_pro:
        return
    limit = current_app.config["FREE_PLAN_PHOTO_LIMIT"]
    current = db.session.scalar(select(func.count(Photo.id)).where(Photo.user_id == user.id)) or 0
    if current + adding > limit:
        raise QuotaError(f"Free plan allows up to {limit} photos. Upgrade to Pro for unlimited uploads.")


def resolve_portfolio(user: User, portfolio_id: str | None) -> Portfolio:
    """The user's portfolio with the given id, or their default portfolio."""
    if not portfolio_id:
        return get_or_create_default(user)
    portfolio = db.session.get(Portfolio, portfolio_id)
    if portfolio is None:
        raise NotFoundError("Portfolio not found")
    if portfolio.user_id != user.id:
        raise AuthzError("Not authorized to add photos to this portfolio")
    return portfolio


def validate_upload(filename: str | None, content_type: str | None, size: int) -> str:
    """Check type and size of an uploaded file, returning its extension."""
    allowed = current_app.config["ALLOWED_IMAGE_TYPES"]
    if not content_type or content_type not in allowed:
        raise ValidationError.for_field(
            "image", f"Invalid file type. Allowed types: {', '.join(allowed)}"
        )
    max_size = current_app.config["MAX_FILE_SIZE"]
    if size == 0:
        raise ValidationError.for_field("image", "File is empty")
    if size > max_size:
        raise ValidationError.for_field(
            "image", f"File too large. Maximum size is {max_size // (1024 * 1024)}MB"
        )
    return EXTENSIONS.get(content_type, "jpg")


def upload_processed(processed: ProcessedImage, owner_id: str, category: str = "photos") -> dict[str, str | None]:
    """Upload the main image then its thumbnail; a failed thumbnail removes the main object."""
    storage = get_storage()
    key = build_key(category, owner_id, "jpg")
    thumb_key = thumbnail_key_for(key)
    metadata = {"owner": owner_id}

    main = storage.put(processed.main, key, processed.content_type, metadata)
    try:
        thumb = storage.put(processed.thumbnail, thumb_key, processed.content_type, metadata)
    except StorageError:
        delete_quietly([main.key])
        raise
    return {
        "url": main.url,
        "storage_key": main.key,
        "thumbnail_url": thumb.url,
        "thumbnail_key": thumb.key,
    }


def _initial_status(user: User) -> ModerationStatus:
    if current_app.config.get("PHOTO_AUTO_APPROVE") or user.is_staff:
        return ModerationStatus.APPROVED
    return ModerationStatus.PENDING


def create_photo(
    user: User,
    data: bytes,
    *,
    filename: str | None,
    content_type: str | None,
    fields: dict[str, Any],
) -> Photo:
    """Validate, process, store and persist one uploaded image.

    Order matters: nothing is written to storage until processing succeeded,
    and stored objects are removed again if the database write fails.
    """
    validate_upload(filename, content_type, len(data))
    assert_photo_quota(user)
    portfolio = resolve_portfolio(user, fields.get("portfolio_id"))

    processed = process_image(data)
    stored = upload_processed(processed, user.id)

    title = (fields.get("title") or "").strip() or _title_from_filename(filename)
    photo = Photo(
        user_id=user.id,
        owner=user,
        portfolio=portfolio,
        title=title[:100],
        description=(fields.get("description") or "").strip() or None,
        alt_text=((fields.get("alt_text") or "").strip() or title or f"Photo by {user.username}")[:125],
        width=processed.metadata["width"],
        height=processed.metadata["height"],
        format=processed.metadata["original_format"] or "jpeg",
        file_size=processed.metadata["original_size"],
        exif=processed.metadata["exif"],
        color_palette=processed.color_palette,
        category=PhotoCategory(fields["category"]) if fields.get("category") else PhotoCategory.OTHER,
        is_public=fields.get("is_public", True),
        position=_next_position(portfolio.id),
        moderation_status=_initial_status(user),
        **stored,
    )
    photo.tags = fields.get("tags")
    try:
        db.session.add(photo)
        db.session.flush()
        adjust_user_stats(user.id, photos=1)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        delete_quietly([stored["storage_key"], stored["thumbnail_key"]])
        raise
    return photo


def _title_from_filename(filename: str | None) -> str:
    if not filename:
        return "Untitled"
    stem = filename.rsplit("/", 1)[-1].rsplit(".", 1)[0]
    return stem.replace("_", " ").replace("-", " ").strip() or "Untitled"


def _next_position(portfolio_id: str) -> int:
    current = db.session.scalar(select(func.max(Photo.position)).where(Photo.portfolio_id == portfolio_id))
    return 0 if current is None else current + 1


def update_photo(photo: Photo, changes: dict[str, Any], editor: User) -> Photo:
    for name in EDITABLE_FIELDS:
        if name in changes:
            value = changes[name]
            if isinstance(value, str):
                value = value.strip() or None
            if name == "title" and not value:
                raise ValidationError.for_field("title", "Title is required")
            if name == "is_featured" and not editor.is_staff:
                raise AuthzError("Only staff can feature photos")
            setattr(photo, name, value)
    if changes.get("category"):
        photo.category = PhotoCategory(changes["category"])
    if "tags" in changes:
        photo.tags = changes["tags"]
    if changes.get("portfolio_id") and changes["portfolio_id"] != photo.portfolio_id:
        target = resolve_portfolio(photo.owner, changes["portfolio_id"])
        photo.portfolio = target
        photo.position = _next_position(target.id)
    db.session.commit()
    return photo


def unreferenced_keys(keys: Iterable[str | None]) -> list[str]:
    """Keys no remaining photo points at; duplicated portfolios share objects."""
    candidates = [key for key in keys if key]
    if not candidates:
        return []
    still_used = set(db.session.scalars(select(Photo.storage_key).where(Photo.storage_key.in_(candidates))))
    still_used.update(db.session.scalars(select(Photo.thumbnail_key).where(Photo.thumbnail_key.in_(candidates))))
    return [key for key in candidates if key not in still_used]


def delete_photo(photo: Photo) -> int:
    """Delete the record, then its stored objects best-effort. Returns objects removed."""
    keys = photo.storage_keys()
    db.session.execute(
        update(Portfolio)
        .where(Portfolio.cover_photo_id == photo.id)
        .values(cover_photo_id=None)
        .execution_options(synchronize_session=False)
    )
    adjust_user_stats(photo.user_id, photos=-1, views=-photo.views, likes=-photo.likes)
    db.session.delete(photo)
    db.session.commit()
    return delete_quietly(unreferenced_keys(keys))


def _bump(photo: Photo, column: str, *, owner_field: str | None = None) -> None:
    values = {column: getattr(Photo, column) + 1}
    if column == "views":
        values["last_viewed_at"] = utcnow()
    db.session.execute(
        update(Photo).where(Photo.id == photo.id).values(**values).execution_options(synchronize_session=False)
    )
    if owner_field:
        adjust_user_stats(photo.user_id, **{owner_field: 1})
    db.session.commit()
    db.session.refresh(photo)


def record_view(photo: Photo, viewer: User | None) -> None:
    """Count a view unless the owner is looking at their own photo."""
    if viewer is not None and viewer.id == photo.user_id:
        return
    _bump(photo, "views", owner_field="views")


def like(photo: Photo) -> int:
    _bump(photo, "likes", owner_field="likes")
    return photo.likes


def record_download(photo: Photo, viewer: User | None) -> str:
    """Count a download and return a time-limited URL, falling back to the stored URL."""
    is_owner = viewer is not None and viewer.id == photo.user_id
    if not photo.allow_download and not is_owner:
        raise AuthzError("Downloads are disabled for this photo")
    _bump(photo, "downloads")
    try:
        return get_storage().presigned_download(photo.storage_key)
    except StorageError:
        current_app.logger.warning(f"Falling back to stored URL for download of photo {photo.id}")
        return photo.url


def record_share(photo: Photo) -> str:
    _bump(photo, "shares")
    return f"{current_app.config['FRONTEND_URL'].rstrip('/')}/photo/{photo.id}"


def presigned_urls(photo: Photo) -> dict[str, str | None]:
    storage = get_storage()
    try:
        url = storage.presigned_download(photo.storage_key)
    except StorageError:
        current_app.logger.warning(f"Falling back to stored URL for photo {photo.id}")
        url = photo.url
    thumbnail_url = photo.thumbnail_url
    if photo.thumbnail_key:
        try:
            thumbnail_url = storage.presigned_download(photo.thumbnail_key)
        except StorageError:
            current_app.logger.warning(f"Falling back to stored thumbnail URL for photo {photo.id}")
    return {"url": url, "thumbnail_url": thumbnail_url}


def photo_analytics(photo: Photo) -> dict[str, Any]:
    age_days = max((utcnow() - _aware(photo.created_at)).days, 1)
    return {
        "views": photo.views,
        "likes": photo.likes,
        "downloads": photo.downloads,
        "shares": photo.shares,
        "last_viewed_at": _iso(photo.last_viewed_at),
        "views_per_day": round(photo.views / age_days, 2),
        "engagement_rate": round((photo.likes + photo.downloads + photo.shares) / photo.views * 100, 2)
        if photo.views else 0,
    }


def _aware(value):
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def reorder(user: User, portfolio_id: str, photo_ids: list[str]) -> int:
    portfolio = resolve_portfolio(user, portfolio_id)
    photos = {
        p.id: p for p in db.session.scalars(
            select(Photo).where(Photo.portfolio_id == portfolio.id, Photo.id.in_(photo_ids))
        )
    }
    missing = [pid for pid in photo_ids if pid not in photos]
    if missing:
        raise ValidationError.for_field("photo_ids", f"Photos not in this portfolio: {', '.join(missing)}")
    for position, photo_id in enumerate(photo_ids):
        photos[photo_id].position = position
    db.session.commit()
    return len(photo_ids)


def search_photos(
    *,
    term: str | None = None,
    category: str | None = None,
    tags: list[str] | None = None,
    owner_id: str | None = None,
    portfolio_id: str | None = None,
    public_only: bool = True,
    featured: bool | None = None,
    days: int | None = None,
    sort: str = "newest",
    page: int = 1,
    limit: int = 12,
):
    """Filter, sort and paginate photos. ``public_only`` restricts to public, approved photos."""
    stmt = select(Photo)
    if public_only:
        stmt = stmt.where(Photo.is_public.is_(True), Photo.moderation_status == ModerationStatus.APPROVED)
    if owner_id:
        stmt = stmt.where(Photo.user_id == owner_id)
    if portfolio_id:
        stmt = stmt.where(Photo.portfolio_id == portfolio_id)
    if featured is not None:
        stmt = stmt.where(Photo.is_featured.is_(featured))
    if days:
        stmt = stmt.where(Photo.created_at >= utcnow() - timedelta(days=days))
    if category:
        try:
            stmt = stmt.where(Photo.category == PhotoCategory(category))
        except ValueError:
            raise ValidationError.for_field("category", "Invalid category")
    wanted = normalize_tags(tags)
    if wanted:
        stmt = stmt.where(Photo.tag_links.any(PhotoTag.name.in_(wanted)))
    if term:
        pattern = contains_pattern(term)
        stmt = stmt.where(or_(
            Photo.title.ilike(pattern, escape=LIKE_ESCAPE),
            Photo.description.ilike(pattern, escape=LIKE_ESCAPE),
            Photo.tag_links.any(PhotoTag.name.ilike(pattern, escape=LIKE_ESCAPE)),
        ))
    if sort not in SORTS:
        raise ValidationError.for_field("sort", f"sort must be one of: {', '.join(SORTS)}")
    if sort == "oldest":
        stmt = stmt.order_by(Photo.created_at.asc())
    elif sort == "popular":
        stmt = stmt.order_by(Photo.views.desc())
    elif sort == "trending":
        stmt = stmt.order_by(Photo.views.desc(), Photo.created_at.desc())
    elif portfolio_id:
        stmt = stmt.order_by(Photo.position.asc(), Photo.created_at.desc())
    else:
        stmt = stmt.order_by(Photo.created_at.desc())
    return db.paginate(stmt, page=page, per_page=limit, error_out=False)


__all__ = [
    "serialize_photo",
    "get_photo_or_404",
    "get_visible_photo",
    "assert_photo_quota",
    "resolve_portfolio",
    "validate_upload",
    "upload_processed",
    "create_photo",
    "update_photo",
    "unreferenced_keys",
    "delete_photo",
    "record_view",
    "like",
    "record_download",
    "record_share",
    "presigned_urls",
    "photo_analytics",
    "reorder",
    "search_photos",
]
