"""Identifier parsing at the system boundary.

Ids reach the engine as plain strings, integers, UUIDs or wrapped
reference objects (``{"_id": ...}``, ``{"userId": ...}``).  They are
parsed exactly once, here, into an ``EntityRef`` (users) or a ``UUID``
(requests).  Code past the boundary compares ``EntityRef`` values and
never re-parses.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from uuid import UUID

from app.core.errors import RequestInputError

_WRAPPER_KEYS = ("_id", "id", "userId", "user_id", "value")
_MAX_DEPTH = 3


@dataclass(frozen=True, slots=True)
class EntityRef:
    """Normalized identifier of a user or other directory entity."""

    value: str

    @classmethod
    def parse(cls, raw: object) -> EntityRef:
        return cls(_unwrap(raw, depth=0))

    def __str__(self) -> str:
        return self.value


def _unwrap(raw: object, depth: int) -> str:
    if depth > _MAX_DEPTH:
        raise RequestInputError("Identifier is nested too deeply")
    if isinstance(raw, EntityRef):
        return raw.value
    if isinstance(raw, UUID):
        return str(raw)
    if isinstance(raw, bool):
        raise RequestInputError("Identifier must not be a boolean")
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise RequestInputError("Identifier must be a non-empty string")
        return text
    if isinstance(raw, Mapping):
        for key in _WRAPPER_KEYS:
            if key in raw and raw[key] is not None:
                return _unwrap(raw[key], depth + 1)
        raise RequestInputError(
            f"Reference object has none of the keys {list(_WRAPPER_KEYS)}"
        )
    raise RequestInputError(f"Unsupported identifier type {type(raw).__name__!r}")


def parse_request_id(raw: object) -> UUID:
    """Return the request id in *raw* as a ``UUID``."""
    if isinstance(raw, UUID):
        return raw
    text = _unwrap(raw, depth=0)
    try:
        return UUID(text)
    except ValueError as exc:
        raise RequestInputError(f"Invalid request id {text!r}") from exc
