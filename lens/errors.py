"""Error types and the JSON error envelope."""

from __future__ import annotations

from typing import Any

from flask import current_app, jsonify
from werkzeug.exceptions import HTTPException


class LensError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    default_message = "Server error"

    def __init__(self, message: str | None = None, errors: list[dict[str, str]] | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "message": self.message}
        if self.errors:
            payload["errors"] = self.errors
        return payload


class ValidationError(LensError):
    status_code = 400
    default_message = "Validation failed"

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(message, errors=[{"field": field, "message": message}])


class AuthError(LensError):
    status_code = 401
    default_message = "Not authorized, no token"


class AuthzError(LensError):
    status_code = 403
    default_message = "Access denied"


class QuotaError(LensError):
    status_code = 403
    default_message = "Plan limit reached"


class NotFoundError(LensError):
    status_code = 404
    default_message = "Resource not found"


class ConflictError(LensError):
    status_code = 409
    default_message = "Resource already exists"


class StorageError(LensError):
    default_message = "Storage operation failed"


class ProcessingError(LensError):
    default_message = "Image processing failed"


def register_error_handlers(app) -> None:
    """Render every error through the same `{success, message, errors}` envelope."""

    @app.errorhandler(LensError)
    def handle_lens_error(error: LensError):
        if error.status_code >= 500:
            current_app.logger.error(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        message = error.description or error.name
        if error.code == 404:
            message = "Route not found"
        elif error.code == 429:
            message = "Too many requests, please try again later"
        return jsonify({"success": False, "message": message}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        current_app.logger.exception(f"Unhandled error: {error}")
        return jsonify({"success": False, "message": "Server error"}), 500


__all__ = [
    "LensError",
    "ValidationError",
    "AuthError",
    "AuthzError",
    "QuotaError",
    "NotFoundError",
    "ConflictError",
    "StorageError",
    "ProcessingError",
    "register_error_handlers",
]
