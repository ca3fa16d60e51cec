"""Photo browsing, editing and engagement endpoints."""

from __future__ import annotations

from flask import Blueprint, request

from lens.auth import check_ownership, get_current_user, login_required
from lens.blueprints.common.api import get_json, int_arg, list_arg, page_args, paginated, success
from lens.blueprints.upload import upload_single_from_request
from lens.extensions import limiter
from lens.forms.photos import PhotoForm, ReorderForm
from lens.security import upload_rate_limit
from lens.services import photos

photos_bp = Blueprint("photos", __name__)


def _listing(**filters):
    page, limit = page_args(20)
    pagination = photos.search_photos(page=page, limit=limit, **filters)
    viewer = get_current_user()
    return success(paginated([photos.serialize_photo(p, viewer) for p in pagination.items], pagination))


@photos_bp.get("")
def list_public():
    return _listing(
        term=request.args.get("q") or request.args.get("search"),
        category=request.args.get("category"),
        tags=list_arg("tags"),
        owner_id=request.args.get("user"),
        sort=request.args.get("sort", "newest"),
    )


@photos_bp.post("")
@login_required
@limiter.limit(upload_rate_limit)
def create():
    return upload_single_from_request()


@photos_bp.get("/my")
@login_required
def mine():
    return _listing(
        owner_id=get_current_user().id,
        public_only=False,
        portfolio_id=request.args.get("portfolio"),
        term=request.args.get("q"),
        category=request.args.get("category"),
        tags=list_arg("tags"),
        sort=request.args.get("sort", "newest"),
    )


@photos_bp.get("/featured")
def featured():
    return _listing(featured=True, days=int_arg("days", 7, 1, 365), sort="newest")


@photos_bp.get("/trending")
def trending():
    return _listing(days=int_arg("days", 7, 1, 365), sort="trending")


@photos_bp.put("/reorder")
@login_required
def reorder():
    form = ReorderForm(get_json()).validate_or_raise()
    count = photos.reorder(get_current_user(), form.portfolio_id.data, form.photo_ids.data)
    return success({"updated": count}, "Photos reordered successfully")


@photos_bp.get("/<photo_id>")
def detail(photo_id):
    viewer = get_current_user()
    photo = photos.get_visible_photo(photo_id, viewer)
    photos.record_view(photo, viewer)
    return success(photos.serialize_photo(photo, viewer))


@photos_bp.put("/<photo_id>")
@login_required
def update(photo_id):
    photo = photos.get_photo_or_404(photo_id)
    check_ownership(photo)
    form = PhotoForm(get_json()).validate_or_raise()
    user = get_current_user()
    photo = photos.update_photo(photo, form.changes(), user)
    return success(photos.serialize_photo(photo, user), "Photo updated successfully")


@photos_bp.delete("/<photo_id>")
@login_required
def delete(photo_id):
    photo = photos.get_photo_or_404(photo_id)
    check_ownership(photo)
    photos.delete_photo(photo)
    return success(message="Photo deleted successfully")


@photos_bp.post("/<photo_id>/like")
@login_required
def like(photo_id):
    photo = photos.get_visible_photo(photo_id, get_current_user())
    return success({"likes": photos.like(photo)}, "Photo liked")


@photos_bp.post("/<photo_id>/download")
def download(photo_id):
    viewer = get_current_user()
    photo = photos.get_visible_photo(photo_id, viewer)
    url = photos.record_download(photo, viewer)
    return success({"download_url": url, "downloads": photo.downloads})


@photos_bp.post("/<photo_id>/share")
def share(photo_id):
    photo = photos.get_visible_photo(photo_id, get_current_user())
    url = photos.record_share(photo)
    return success({"share_url": url, "shares": photo.shares})


@photos_bp.get("/<photo_id>/analytics")
@login_required
def analytics(photo_id):
    photo = photos.get_photo_or_404(photo_id)
    check_ownership(photo)
    return success(photos.photo_analytics(photo))


@photos_bp.get("/<photo_id>/presigned-url")
def presigned_url(photo_id):
    photo = photos.get_visible_photo(photo_id, get_current_user())
    return success(photos.presigned_urls(photo))
