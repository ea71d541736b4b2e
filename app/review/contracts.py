"""Collaborator contracts consumed by the workflow engine.

The engine never queries users, roles, permissions or locations itself.
It is handed objects satisfying these protocols; ``app.directory`` ships
SQLAlchemy-backed ones and tests use in-memory fakes.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from app.core.identifiers import EntityRef
from app.review.authority import RoleGrant
from app.review.entities import ActorSnapshot, ReviewerCandidate


class IdentitySource(Protocol):
    def get_authority(self, user: EntityRef, now: datetime) -> int:
        """Live effective authority of *user*."""
        ...

    def get_active_role_grants(self, user: EntityRef, now: datetime) -> list[RoleGrant]:
        ...


class PermissionSource(Protocol):
    def has_capability(
        self,
        user: EntityRef,
        resource: str,
        verb: str,
        scope: str | None = None,
    ) -> bool:
        """Whether *user* holds ``resource.verb`` at *scope* or system-wide."""
        ...


class CoverageSource(Protocol):
    def is_location_covered(self, location_id: str, coverage_location_id: str) -> bool:
        """Whether a coverage grant on *coverage_location_id* includes *location_id*."""
        ...


class ReviewerDirectory(Protocol):
    def list_candidates(
        self,
        min_authority: int,
        max_authority: int | None,
        now: datetime,
    ) -> list[ReviewerCandidate]:
        """Active users whose live authority falls in the band (inclusive)."""
        ...


class PublishHook(Protocol):
    def on_approved(self, request: Any) -> str | None:
        """Publish the derived work item; return its reference.

        Called on every entry into ``approved`` (including re-approval
        after a reschedule) and after every edit of an approved request.
        Implementations must upsert: when ``request.derived_item_ref`` is
        set, update that item instead of creating another.
        """
        ...


class NotifyHook(Protocol):
    def on_transition(self, request: Any, action: str, actor: ActorSnapshot) -> None:
        ...
