"""Shared serialization and validation utilities for JSON documents and to_dict / from_dict."""

from __future__ import annotations

import json
from collections.abc import Mapping
from enum import Enum
from pathlib import Path

from imgfetch.digest import Digest


def to_plain_data(value: object) -> object:
    """Recursively normalize containers, digests and paths into JSON-compatible values."""
    if isinstance(value, Enum):
        return to_plain_data(value.value)
    if isinstance(value, (Digest, Path)):
        return str(value)
    if isinstance(value, Mapping):
        return {str(to_plain_data(key)): to_plain_data(item) for key, item in value.items()}
    if isinstance(value, (tuple, list)):
        return [to_plain_data(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((to_plain_data(item) for item in value), key=str)
    return value


def decode_json_object(data: bytes, *, what: str) -> dict[str, object]:
    """Decode ``data`` as a JSON object."""
    try:
        decoded = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        msg = f"{what} is not valid JSON: {exc}"
        raise ValueError(msg) from exc
    return as_str_object_dict(decoded, field_name=what)


def as_str_object_dict(value: object, *, field_name: str) -> dict[str, object]:
    """Validate and normalize a mapping value into ``dict[str, object]``."""
    if not isinstance(value, Mapping):
        msg = f"{field_name} must be a mapping."
        raise TypeError(msg)
    return {str(key): item for key, item in value.items()}


def require_string(value: object, *, field_name: str) -> str:
    """Validate a required, non-empty string field."""
    if not isinstance(value, str) or not value:
        msg = f"{field_name} must be a non-empty string."
        raise TypeError(msg)
    return value


def require_digest(value: object, *, field_name: str) -> Digest:
    """Validate a required digest string field."""
    text = require_string(value, field_name=field_name)
    try:
        return Digest.parse(text)
    except ValueError as exc:
        msg = f"{field_name} is not a valid digest: {exc}"
        raise ValueError(msg) from exc


def object_list(value: object, *, field_name: str) -> list[dict[str, object]]:
    """Validate an optional sequence of JSON objects."""
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        msg = f"{field_name} must be a sequence of objects."
        raise TypeError(msg)
    return [as_str_object_dict(item, field_name=f"{field_name}[{index}]") for index, item in enumerate(value)]


def string_tuple(value: object, *, field_name: str) -> tuple[str, ...]:
    """Validate and normalize an optional sequence of strings into ``tuple[str, ...]``."""
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        msg = f"{field_name} must be a sequence of strings."
        raise TypeError(msg)

    result: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            msg = f"{field_name}[{index}] must be a string."
            raise TypeError(msg)
        result.append(item)
    return tuple(result)
