"""
Marshall model types (dataclasses) to OpenAPI 3 schema dicts.
Single source of truth: schemas are derived from herdalert.models, not duplicated.
"""
from __future__ import annotations

import dataclasses
import typing
from typing import Any, get_args, get_origin

from herdalert import models
from herdalert.presentation import Toast


_SCALARS = {str: "string", bool: "boolean", int: "integer", float: "number"}


def _field_schema(typ: Any, refs: dict[type, str]) -> dict[str, Any]:
    """Schema for one model field; dataclasses listed in refs become $refs."""
    args = get_args(typ)
    if type(None) in args:
        inner = next(a for a in args if a is not type(None))
        return {**_field_schema(inner, refs), "nullable": True}
    if get_origin(typ) is dict:
        return {"type": "object", "additionalProperties": True}
    if typ in refs:
        return {"$ref": f"#/components/schemas/{refs[typ]}"}
    return {"type": _SCALARS.get(typ, "object")}


def _model_schema(cls: type, refs: dict[type, str]) -> dict[str, Any]:
    hints = typing.get_type_hints(cls)
    out: dict[str, Any] = {
        "type": "object",
        "properties": {f.name: _field_schema(hints[f.name], refs) for f in dataclasses.fields(cls)},
    }
    required = [f.name for f in dataclasses.fields(cls)
                if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING]
    if required:
        out["required"] = required
    if cls.__doc__:
        out["description"] = cls.__doc__.strip().splitlines()[0]
    return out


# Dependencies first. API name may differ from class name.
MODEL_ORDER: list[tuple[type, str]] = [
    (models.Alert, "Alert"),
    (models.Notification, "Notification"),
    (Toast, "Toast"),
    (models.ClientSettings, "Settings"),
]
REF_MAP: dict[type, str] = {cls: name for cls, name in MODEL_ORDER}

ALERT_EXAMPLE = {
    "type": "MRL_VIOLATION",
    "severity": "critical",
    "title": "MRL Violation Detected",
    "message": "Animal Bessie has exceeded MRL limits",
    "data": {"animalId": "A-102", "drugName": "Oxytetracycline", "exceededBy": "12%"},
    "action": {"type": "navigate", "url": "/farmer/mrl-compliance"},
    "timestamp": "2024-05-02T08:15:00.000Z",
    "recipient": "farmer",
}


def schemas_from_models() -> dict[str, dict[str, Any]]:
    """Return OpenAPI components/schemas dict keyed by schema name, derived from models."""
    out: dict[str, dict[str, Any]] = {}
    for cls, name in MODEL_ORDER:
        out[name] = _model_schema(cls, REF_MAP)

    # On the wire extra payload fields sit next to type/severity/title/message.
    alert = out["Alert"]
    alert["properties"].pop("extra", None)
    alert["properties"]["severity"]["enum"] = list(get_args(models.Severity))
    alert["additionalProperties"] = True
    alert["example"] = ALERT_EXAMPLE

    # Toast.to_dict() nests the styling fields.
    toast = out["Toast"]
    style_fields = ("background", "color", "border_radius", "padding")
    toast["properties"]["style"] = {
        "type": "object",
        "properties": {k: toast["properties"].pop(k) for k in style_fields},
    }
    return out


def snapshot_schema() -> dict[str, Any]:
    """GET /notifications response."""
    return {
        "type": "object",
        "properties": {
            "notifications": {"type": "array", "items": {"$ref": "#/components/schemas/Notification"}},
            "unread_count": {"type": "integer"},
            "is_connected": {"type": "boolean"},
            "phase": {"type": "string", "enum": list(get_args(models.StorePhase))},
        },
    }


def status_schema() -> dict[str, Any]:
    """GET /status response."""
    return {
        "type": "object",
        "properties": {
            "server_url": {"type": "string"},
            "connection": {"type": "string", "enum": list(get_args(models.ConnectionState))},
            "retry_attempts": {"type": "integer"},
            "is_connected": {"type": "boolean"},
            "phase": {"type": "string", "enum": list(get_args(models.StorePhase))},
            "unread_count": {"type": "integer"},
        },
    }
