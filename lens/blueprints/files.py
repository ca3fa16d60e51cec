"""Serve and accept objects held by the local storage fallback, plus the health check."""

from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, abort, current_app, jsonify, request, send_file

from lens.blueprints.common.api import success
from lens.errors import AuthzError, ValidationError
from lens.services.storage import LocalStorage, get_storage

files_bp = Blueprint("files", __name__)


def _local_storage() -> LocalStorage:
    storage = get_storage()
    if not isinstance(storage, LocalStorage):
        abort(404)
    return storage


@files_bp.get("/uploads/<path:key>")
def serve_upload(key):
    storage = _local_storage()
    token = request.args.get("token")
    if token:
        storage.verify(token, key, "get")
    path = storage.path_for(key)
    if not path.is_file():
        abort(404)
    return send_file(path, max_age=31536000)


@files_bp.put("/uploads/<path:key>")
def receive_upload(key):
    storage = _local_storage()
    token = request.args.get("token")
    if not token:
        raise AuthzError("Upload signature required")
    claims = storage.verify(token, key, "put")
    content_type = request.mimetype
    if claims.get("ct") and content_type != claims["ct"]:
        raise ValidationError.for_field("content_type", "Content type does not match the signed upload")
    data = request.get_data()
    if not data:
        raise ValidationError("File is empty")
    if len(data) > current_app.config["MAX_FILE_SIZE"]:
        raise ValidationError("File too large")
    stored = storage.put(data, key, content_type)
    return success({"key": stored.key, "url": stored.url, "etag": stored.etag}, "File uploaded")


@files_bp.get("/health")
def health():
    return jsonify({
        "success": True,
        "status": "OK",
        "message": "Photography Portfolio API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": current_app.config.get("ENVIRONMENT", "development"),
    })
