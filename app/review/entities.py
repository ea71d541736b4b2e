"""Value objects shared by the validator, resolver and executor."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.core.clock import as_utc
from app.core.constants import SYSTEM_ACTOR_ID
from app.core.identifiers import EntityRef

SIDE_REQUESTER = "requester"
SIDE_REVIEWER = "reviewer"


@dataclass(frozen=True, slots=True)
class ActorSnapshot:
    """Who acted, with the role and authority they held at that moment."""

    user: EntityRef
    role: str | None
    authority: int

    @classmethod
    def system(cls) -> ActorSnapshot:
        return cls(user=EntityRef(SYSTEM_ACTOR_ID), role="system", authority=0)

    def to_json(self) -> dict[str, Any]:
        return {"user_id": self.user.value, "role": self.role, "authority": self.authority}

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ActorSnapshot:
        return cls(
            user=EntityRef.parse(data["user_id"]),
            role=data.get("role"),
            authority=int(data.get("authority") or 0),
        )


@dataclass(frozen=True, slots=True)
class RescheduleProposal:
    proposed_date: datetime
    note: str
    proposed_at: datetime
    proposed_by: ActorSnapshot
    side: str
    start_time: str | None = None
    end_time: str | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "proposed_date": self.proposed_date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "note": self.note,
            "proposed_at": self.proposed_at.isoformat(),
            "proposed_by": self.proposed_by.to_json(),
            "side": self.side,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> RescheduleProposal | None:
        if not data:
            return None
        return cls(
            proposed_date=as_utc(datetime.fromisoformat(data["proposed_date"])),
            note=data.get("note") or "",
            proposed_at=as_utc(datetime.fromisoformat(data["proposed_at"])),
            proposed_by=ActorSnapshot.from_json(data["proposed_by"]),
            side=data["side"],
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
        )


@dataclass(frozen=True, slots=True)
class ReviewerCandidate:
    """An active user the directory offers as a potential reviewer."""

    user: EntityRef
    role: str | None
    authority: int
    organization_type: str | None
    coverage_location_ids: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class EligibleReviewer:
    user: EntityRef
    role: str | None
    authority: int
    organization_type: str | None
    discovered_at: datetime


@dataclass(frozen=True, slots=True)
class Decision:
    """Outcome of validating one action.  Denials carry a readable reason."""

    allowed: bool
    reason: str
    edge: str | None = None
    target_status: str | None = None
    claims: bool = False

    @classmethod
    def deny(cls, reason: str) -> Decision:
        return cls(allowed=False, reason=reason)


@dataclass
class ActionResult:
    """What ``act()`` reports back.

    ``degraded`` is set when the state change committed but a publish or
    notify hook failed; ``warnings`` says which.
    """

    request: Any
    allowed: bool
    reason: str
    degraded: bool = False
    warnings: list[str] = field(default_factory=list)
    derived_item_ref: str | None = None
