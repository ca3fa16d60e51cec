"""WTForms plumbing for JSON and multipart API payloads."""

from __future__ import annotations

import json
from typing import Any, Mapping

from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict
from wtforms import BooleanField, Field

from lens.errors import ValidationError


def _to_multidict(payload: Mapping[str, Any]) -> MultiDict:
    items = []
    for key, value in payload.items():
        if value is None:
            continue
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        items.append((key, value))
    return MultiDict(items)


class FlagField(BooleanField):
    """Boolean field that understands JSON booleans and multipart strings."""

    false_values = (False, "false", "False", "0", "", "off", "no")


class StringListField(Field):
    """Accepts a JSON list, a JSON-encoded list string or a comma separated string."""

    def _value(self) -> str:
        return ",".join(self.data or [])

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        raw = valuelist[0]
        if isinstance(raw, str):
            stripped = raw.strip()
            if stripped.startswith("["):
                try:
                    raw = json.loads(stripped)
                except ValueError:
                    raise ValueError("Must be a list of strings")
            else:
                raw = [part for part in stripped.split(",")]
        if not isinstance(raw, (list, tuple)) or not all(isinstance(t, str) for t in raw):
            raise ValueError("Must be a list of strings")
        self.data = [t.strip() for t in raw if t.strip()]


class JSONObjectField(Field):
    """Passes a JSON object through unchanged."""

    def process_formdata(self, valuelist):
        if not valuelist:
            return
        if not isinstance(valuelist[0], dict):
            raise ValueError("Must be an object")
        self.data = valuelist[0]


class APIForm(FlaskForm):
    """Base form for API payloads; CSRF does not apply to bearer-token requests."""

    class Meta:
        csrf = False

    def __init__(self, payload: Mapping[str, Any] | MultiDict | None = None, **kwargs):
        payload = payload or {}
        self._provided = set(payload.keys())
        formdata = payload if isinstance(payload, MultiDict) else _to_multidict(payload)
        super().__init__(formdata=formdata, **kwargs)

    def field_errors(self) -> list[dict[str, str]]:
        errors = []
        for name, messages in self.errors.items():
            for message in messages:
                errors.append({"field": name, "message": message})
        return errors

    def validate_or_raise(self) -> "APIForm":
        if not self.validate():
            errors = self.field_errors()
            raise ValidationError(errors=errors)
        return self

    def changes(self) -> dict[str, Any]:
        """Validated values for the fields present in the payload."""
        return {
            name: field.data
            for name, field in self._fields.items()
            if name in self._provided
        }


__all__ = ["APIForm", "FlagField", "StringListField", "JSONObjectField"]
