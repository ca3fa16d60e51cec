"""Upload endpoints: server-side processed uploads and presigned client uploads."""

from __future__ import annotations

from flask import Blueprint, current_app, request

from lens.auth import check_ownership, get_current_user, login_required
from lens.blueprints.common.api import get_json, success
from lens.errors import AuthzError, LensError, ValidationError
from lens.extensions import db, limiter
from lens.forms.photos import DownloadUrlForm, PhotoUploadForm, PresignedUploadForm
from lens.models import Photo
from lens.security import upload_rate_limit
from lens.services import photos
from lens.services.imaging import process_avatar
from lens.services.storage import build_key, delete_quietly, get_storage
from lens.services.users import plan_limits, serialize_user

upload_bp = Blueprint("upload", __name__)


def _upload_fields() -> dict:
    return PhotoUploadForm(request.form).validate_or_raise().changes()


def upload_single_from_request():
    """Handle a multipart request carrying one image in `image` (or `photo`)."""
    file = request.files.get("image") or request.files.get("photo")
    if file is None or not file.filename:
        raise ValidationError.for_field("image", "No image file provided")
    user = get_current_user()
    photo = photos.create_photo(
        user,
        file.read(),
        filename=file.filename,
        content_type=file.mimetype,
        fields=_upload_fields(),
    )
    return success(photos.serialize_photo(photo, user), "Photo uploaded successfully", 201)


@upload_bp.post("/photo")
@login_required
@limiter.limit(upload_rate_limit)
def upload_photo():
    return upload_single_from_request()


@upload_bp.post("/photos")
@login_required
@limiter.limit(upload_rate_limit)
def upload_photos():
    files = [f for f in request.files.getlist("images") or request.files.getlist("photos") if f.filename]
    if not files:
        raise ValidationError.for_field("images", "No image files provided")
    max_files = current_app.config["MAX_FILES_PER_REQUEST"]
    if len(files) > max_files:
        raise ValidationError.for_field("images", f"Too many files. Maximum is {max_files} per request")

    user = get_current_user()
    fields = _upload_fields()
    uploaded, failed = [], []
    for file in files:
        try:
            photo = photos.create_photo(
                user,
                file.read(),
                filename=file.filename,
                content_type=file.mimetype,
                fields={**fields, "title": fields.get("title") if len(files) == 1 else None},
            )
        except LensError as e:
            failed.append({"filename": file.filename, "message": e.message})
            continue
        uploaded.append(photos.serialize_photo(photo, user))

    if not uploaded:
        raise ValidationError("No photos were uploaded", errors=[
            {"field": item["filename"], "message": item["message"]} for item in failed
        ])
    data = {"uploaded": uploaded, "failed": failed}
    return success(data, f"{len(uploaded)} photo(s) uploaded successfully", 201)


@upload_bp.post("/avatar")
@login_required
@limiter.limit(upload_rate_limit)
def upload_avatar():
    file = request.files.get("avatar") or request.files.get("image")
    if file is None or not file.filename:
        raise ValidationError.for_field("avatar", "No image file provided")
    data = file.read()
    photos.validate_upload(file.filename, file.mimetype, len(data))

    user = get_current_user()
    stored = get_storage().put(process_avatar(data), build_key("avatars", user.id, "jpg"), "image/jpeg")
    previous = user.avatar_key
    user.avatar_url, user.avatar_key = stored.url, stored.key
    db.session.commit()
    delete_quietly([previous])
    return success(serialize_user(user, private=True), "Avatar updated successfully")


@upload_bp.delete("/photo/<photo_id>")
@login_required
def delete_photo(photo_id):
    photo = photos.get_photo_or_404(photo_id)
    check_ownership(photo)
    photos.delete_photo(photo)
    return success(message="Photo deleted successfully")


@upload_bp.post("/presigned-url")
@login_required
def presigned_upload_url():
    form = PresignedUploadForm(get_json()).validate_or_raise()
    allowed = current_app.config["ALLOWED_IMAGE_TYPES"]
    if form.content_type.data not in allowed:
        raise ValidationError.for_field("content_type", f"Invalid file type. Allowed types: {', '.join(allowed)}")
    user = get_current_user()
    if (form.folder.data or "photos") == "photos":
        photos.assert_photo_quota(user)

    storage = get_storage()
    key = build_key(form.folder.data or "photos", user.id, filename=form.filename.data)
    ttl = current_app.config["PRESIGNED_URL_TTL"]
    return success({
        "upload_url": storage.presigned_upload(key, form.content_type.data, ttl),
        "key": key,
        "public_url": storage.public_url(key),
        "expires_in": ttl,
    })


@upload_bp.post("/download-url")
@login_required
def presigned_download_url():
    form = DownloadUrlForm(get_json()).validate_or_raise()
    user = get_current_user()
    key = form.key.data
    parts = key.split("/")
    owns_key = len(parts) > 3 and parts[2] == user.id
    if not owns_key and not user.is_staff:
        photo = db.session.query(Photo).filter(
            (Photo.storage_key == key) | (Photo.thumbnail_key == key)
        ).first()
        if photo is None or not photo.can_view(user):
            raise AuthzError("Not authorized to access this file")
    ttl = form.expires_in.data or current_app.config["PRESIGNED_URL_TTL"]
    return success({"download_url": get_storage().presigned_download(key, ttl), "expires_in": ttl})


@upload_bp.get("/limits")
@login_required
def limits():
    user = get_current_user()
    from lens.services.portfolios import count_for_user

    limits = plan_limits(user)
    return success({
        "plan": user.subscription_plan.value,
        "photos": {"used": user.total_photos, "limit": limits["photos"]},
        "portfolios": {"used": count_for_user(user.id), "limit": limits["portfolios"]},
        "max_file_size": current_app.config["MAX_FILE_SIZE"],
        "max_files_per_request": current_app.config["MAX_FILES_PER_REQUEST"],
    })


@upload_bp.get("/config")
def config():
    cfg = current_app.config
    return success({
        "allowed_types": cfg["ALLOWED_IMAGE_TYPES"],
        "max_file_size": cfg["MAX_FILE_SIZE"],
        "max_files_per_request": cfg["MAX_FILES_PER_REQUEST"],
        "image": {
            "max_width": cfg["IMAGE_MAX_WIDTH"],
            "max_height": cfg["IMAGE_MAX_HEIGHT"],
            "thumbnail_size": cfg["THUMBNAIL_SIZE"],
        },
        "storage": get_storage().name,
        "presigned_url_ttl": cfg["PRESIGNED_URL_TTL"],
    })
