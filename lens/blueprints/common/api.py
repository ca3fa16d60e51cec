"""Response envelope and request parsing helpers."""

from __future__ import annotations

from typing import Any

from flask import jsonify, request

from lens.errors import ValidationError

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100


def success(data: Any = None, message: str | None = None, status: int = 200, **extra: Any):
    """Build a `{success, message?, data?}` response."""
    payload: dict[str, Any] = {"success": True}
    if message:
        payload["message"] = message
    if data is not None:
        payload["data"] = data
    payload.update(extra)
    return jsonify(payload), status


def get_json() -> dict[str, Any]:
    """Request body as a dict; an empty or missing body is an empty dict."""
    data = request.get_json(silent=True)
    if data is None:
        if request.data and request.mimetype == "application/json":
            raise ValidationError("Malformed JSON body")
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def _int_arg(name: str, default: int, minimum: int, maximum: int | None = None) -> int:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError.for_field(name, f"{name} must be an integer")
    if value < minimum or (maximum is not None and value > maximum):
        bound = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise ValidationError.for_field(name, f"{name} must be {bound}")
    return value


def page_args(default_limit: int = DEFAULT_PAGE_SIZE) -> tuple[int, int]:
    page = _int_arg("page", 1, 1)
    limit = _int_arg("limit", default_limit, 1, MAX_PAGE_SIZE)
    return page, limit


def int_arg(name: str, default: int, minimum: int = 0, maximum: int | None = None) -> int:
    return _int_arg(name, default, minimum, maximum)


def list_arg(name: str) -> list[str]:
    """Comma separated or repeated query parameter."""
    values: list[str] = []
    for raw in request.args.getlist(name):
        values.extend(part.strip() for part in raw.split(",") if part.strip())
    return values


def bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.lower() in ("1", "true", "yes")


def paginated(items: list[Any], pagination) -> dict[str, Any]:
    return {
        "items": items,
        "pagination": {
            "page": pagination.page,
            "limit": pagination.per_page,
            "total": pagination.total,
            "pages": pagination.pages,
        },
    }


__all__ = [
    "success",
    "get_json",
    "page_args",
    "int_arg",
    "list_arg",
    "bool_arg",
    "paginated",
]
