"""Input payloads for submit and act.

Payload validation is a precondition check: it runs before any
authorization and raises ``RequestInputError``; it never produces a
denial.  Dates that arrive without a timezone are taken as UTC.
"""
from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from app.core.clock import as_utc
from app.core.constants import ACTION_EDIT, ACTION_RESCHEDULE
from app.core.errors import RequestInputError

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _check_time(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if not _TIME_RE.match(value):
        raise ValueError(f"Invalid time {value!r}; expected HH:MM")
    return value


def _non_blank(value: str, field_name: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{field_name} must not be empty")
    return value


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

class RequestPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str
    scheduled_date: datetime
    start_time: str | None = None
    end_time: str | None = None
    description: str | None = None
    contact_email: str | None = None
    contact_phone: str | None = None
    details: dict[str, Any] | None = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        return _non_blank(value, "title")

    @field_validator("scheduled_date")
    @classmethod
    def scheduled_date_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def valid_time(cls, value: str | None) -> str | None:
        return _check_time(value)

    @model_validator(mode="after")
    def window_in_order(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    def to_details(self) -> dict[str, Any]:
        """Free-form columns stored in ``review_requests.details``."""
        details = dict(self.details or {})
        for key in ("description", "contact_email", "contact_phone"):
            value = getattr(self, key)
            if value is not None:
                details[key] = value
        return details


class LocationTags(BaseModel):
    model_config = ConfigDict(extra="forbid")

    location_id: str
    organization_type: str | None = None
    request_type: str = "event"

    @field_validator("location_id")
    @classmethod
    def location_not_blank(cls, value: str) -> str:
        return _non_blank(value, "location_id")

    @field_validator("organization_type")
    @classmethod
    def organization_stripped(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class DecisionPayload(BaseModel):
    """Optional note for accept/reject/confirm/decline/cancel/delete."""

    model_config = ConfigDict(extra="forbid")

    note: str | None = None


class ReschedulePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    proposed_date: datetime
    note: str
    start_time: str | None = None
    end_time: str | None = None

    @field_validator("proposed_date")
    @classmethod
    def proposed_date_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator("note")
    @classmethod
    def note_not_blank(cls, value: str) -> str:
        return _non_blank(value, "note")

    @field_validator("start_time", "end_time")
    @classmethod
    def valid_time(cls, value: str | None) -> str | None:
        return _check_time(value)


class EditPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    scheduled_date: datetime | None = None
    start_time: str | None = None
    end_time: str | None = None
    details: dict[str, Any] | None = None
    note: str | None = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str | None) -> str | None:
        return None if value is None else _non_blank(value, "title")

    @field_validator("scheduled_date")
    @classmethod
    def scheduled_date_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def valid_time(cls, value: str | None) -> str | None:
        return _check_time(value)

    @model_validator(mode="after")
    def has_changes(self):
        if not self.changes():
            raise ValueError("edit requires at least one changed field")
        return self

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude={"note"})


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _describe(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"])
        parts.append(f"{loc}: {error['msg']}" if loc else error["msg"])
    return "; ".join(parts)


def parse_model(model: type[BaseModel], raw: BaseModel | Mapping[str, Any] | None) -> BaseModel:
    """Validate *raw* as *model*, raising ``RequestInputError`` on failure."""
    if isinstance(raw, model):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    try:
        return model.model_validate(dict(raw or {}))
    except ValidationError as exc:
        raise RequestInputError(f"Invalid {model.__name__}: {_describe(exc)}") from exc
    except TypeError as exc:
        raise RequestInputError(f"Invalid {model.__name__}: {exc}") from exc


def parse_action_payload(action: str, raw: BaseModel | Mapping[str, Any] | None) -> BaseModel:
    if action == ACTION_RESCHEDULE:
        if raw is None:
            raise RequestInputError("reschedule requires proposed_date and note")
        return parse_model(ReschedulePayload, raw)
    if action == ACTION_EDIT:
        if raw is None:
            raise RequestInputError("edit requires at least one changed field")
        return parse_model(EditPayload, raw)
    return parse_model(DecisionPayload, raw)


def ensure_future(value: datetime, now: datetime, field_name: str) -> None:
    if as_utc(value) <= now:
        raise RequestInputError(f"{field_name} must be in the future")
