"""Admin endpoints: photo moderation, platform statistics and account management."""

from __future__ import annotations

from flask import Blueprint, request

from lens.auth import admin_required, get_current_user, super_admin_required
from lens.blueprints.common.api import bool_arg, get_json, int_arg, page_args, paginated, success
from lens.errors import AuthzError, NotFoundError, ValidationError
from lens.forms.accounts import RoleForm, StaffAccountForm
from lens.forms.moderation import ApproveForm, RejectForm
from lens.models import UserRole
from lens.services import moderation, photos, users
from lens.services.queue import get_queue_service
from lens.services.stats import recompute_user_stats

admin_bp = Blueprint("admin", __name__)


def _photo_page(pagination):
    reviewer = get_current_user()
    return success(paginated([photos.serialize_photo(p, reviewer) for p in pagination.items], pagination))


def _managed_user(user_id: str):
    """Look up an account the current admin is allowed to manage."""
    actor = get_current_user()
    user = users.get_user_or_404(user_id)
    if user.role not in moderation.visible_roles(actor) and user.id != actor.id:
        raise AuthzError("Not authorized to manage this account")
    return actor, user


@admin_bp.get("/dashboard")
@admin_required
def dashboard():
    return success(moderation.dashboard())


@admin_bp.get("/photos/pending")
@admin_required
def pending_photos():
    page, limit = page_args(20)
    return _photo_page(
        moderation.photos_by_status(
            moderation.parse_status("pending"), page=page, limit=limit, oldest_first=True
        )
    )


@admin_bp.get("/photos/status/<status>")
@admin_required
def photos_by_status(status):
    page, limit = page_args(20)
    return _photo_page(moderation.photos_by_status(moderation.parse_status(status), page=page, limit=limit))


@admin_bp.get("/photos/recent")
@admin_required
def recent_photos():
    page, limit = page_args(20)
    return _photo_page(moderation.recent_submissions(days=int_arg("days", 7, 1, 365), page=page, limit=limit))


@admin_bp.get("/photos/stats")
@admin_required
def moderation_counts():
    return success(moderation.status_counts())


@admin_bp.get("/photos/<photo_id>")
@admin_required
def photo_detail(photo_id):
    photo = photos.get_photo_or_404(photo_id)
    data = photos.serialize_photo(photo, get_current_user())
    data["owner"] = users.serialize_user_summary(photo.owner)
    return success(data)


@admin_bp.get("/photos/<photo_id>/image")
@admin_required
def photo_image(photo_id):
    return success(photos.presigned_urls(photos.get_photo_or_404(photo_id)))


@admin_bp.post("/photos/<photo_id>/approve")
@admin_required
def approve_photo(photo_id):
    form = ApproveForm(get_json()).validate_or_raise()
    reviewer = get_current_user()
    photo = moderation.approve(photos.get_photo_or_404(photo_id), reviewer, form.notes.data)
    return success(photos.serialize_photo(photo, reviewer), "Photo approved")


@admin_bp.post("/photos/<photo_id>/reject")
@admin_required
def reject_photo(photo_id):
    form = RejectForm(get_json()).validate_or_raise()
    reviewer = get_current_user()
    photo = moderation.reject(photos.get_photo_or_404(photo_id), reviewer, form.reason.data, form.notes.data)
    return success(photos.serialize_photo(photo, reviewer), "Photo rejected")


@admin_bp.delete("/photos/<photo_id>")
@super_admin_required
def delete_photo(photo_id):
    photos.delete_photo(photos.get_photo_or_404(photo_id))
    return success(message="Photo deleted successfully")


@admin_bp.get("/stats/photos")
@admin_required
def photo_stats():
    return success(moderation.photo_stats())


@admin_bp.get("/stats/users")
@admin_required
def user_stats():
    return success(moderation.user_stats())


@admin_bp.get("/users")
@admin_required
def list_users():
    page, limit = page_args(20)
    pagination = moderation.list_users(
        get_current_user(),
        term=request.args.get("q") or request.args.get("search"),
        role=request.args.get("role"),
        page=page,
        limit=limit,
    )
    return success(paginated([users.serialize_user(u, private=True) for u in pagination.items], pagination))


@admin_bp.post("/users")
@super_admin_required
def create_staff():
    form = StaffAccountForm(get_json()).validate_or_raise()
    user = users.create_account(
        username=form.username.data,
        email=form.email.data,
        password=form.password.data,
        role=UserRole(form.role.data or UserRole.ADMIN.value),
        first_name=form.first_name.data,
        last_name=form.last_name.data,
    )
    return success(users.serialize_user(user, private=True), "Account created successfully", 201)


@admin_bp.put("/users/<user_id>/role")
@super_admin_required
def change_role(user_id):
    form = RoleForm(get_json()).validate_or_raise()
    user = users.set_role(get_current_user(), users.get_user_or_404(user_id), UserRole(form.role.data))
    return success(users.serialize_user(user, private=True), "Role updated successfully")


@admin_bp.put("/users/<user_id>/status")
@admin_required
def change_status(user_id):
    actor, user = _managed_user(user_id)
    payload = get_json()
    active = payload.get("is_active")
    if active is None:
        active = not user.active
    elif not isinstance(active, bool):
        raise ValidationError.for_field("is_active", "is_active must be a boolean")
    user = users.set_active(actor, user, active)
    message = "User activated" if user.active else "User deactivated"
    return success(users.serialize_user(user, private=True), message)


@admin_bp.delete("/users/<user_id>")
@super_admin_required
def delete_user(user_id):
    user = users.get_user_or_404(user_id)
    if user.role == UserRole.SUPER_ADMIN:
        raise AuthzError("Super admin accounts cannot be deleted here")
    users.delete_account(user)
    return success(message="User deleted successfully")


@admin_bp.post("/fix-stats")
@super_admin_required
def fix_stats():
    if bool_arg("background"):
        job = get_queue_service().enqueue_stats_recompute()
        return success({"job_id": job.id}, "Stats recompute queued", 202)
    changed = recompute_user_stats()
    return success({"updated": changed}, "User stats recomputed")


@admin_bp.get("/jobs/<job_id>")
@super_admin_required
def job_status(job_id):
    status = get_queue_service().get_job_status(job_id)
    if status is None:
        raise NotFoundError("Job not found")
    return success(status)
