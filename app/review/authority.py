"""Authority model.

A user's effective authority is the highest authority among their
active, unexpired role grants.  It is recomputed at action time; the
``users.authority_display`` column is a display copy and is never read
here.
"""
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from app.core.clock import as_utc
from app.core.constants import (
    AUTHORITY_BASIC_USER,
    AUTHORITY_CEILING,
    AUTHORITY_COORDINATOR,
    AUTHORITY_OPERATIONAL_ADMIN,
    AUTHORITY_REVIEWER_TIER,
    AUTHORITY_STAKEHOLDER,
    AUTHORITY_SYSTEM_ADMIN,
)


@dataclass(frozen=True, slots=True)
class RoleGrant:
    role_code: str
    authority: int
    is_active: bool = True
    expires_at: datetime | None = None

    def is_current(self, now: datetime) -> bool:
        if not self.is_active:
            return False
        expires_at = as_utc(self.expires_at)
        return expires_at is None or expires_at > now


def current_grants(grants: Iterable[RoleGrant], now: datetime) -> list[RoleGrant]:
    """Active, unexpired grants, highest authority first."""
    live = [g for g in grants if g.is_current(now)]
    return sorted(live, key=lambda g: (-g.authority, g.role_code))


def effective_authority(grants: Iterable[RoleGrant], now: datetime) -> int:
    live = current_grants(grants, now)
    if not live:
        return AUTHORITY_BASIC_USER
    return live[0].authority


def primary_role(grants: Iterable[RoleGrant], now: datetime) -> str | None:
    """Role code of the highest current grant, used for actor snapshots."""
    live = current_grants(grants, now)
    return live[0].role_code if live else None


def is_ceiling(authority: int) -> bool:
    """The ceiling tier bypasses hierarchy and jurisdiction checks."""
    return authority >= AUTHORITY_CEILING


def uses_review_vocabulary(authority: int) -> bool:
    """Reviewer tier and above say accept/reject; below it, confirm/decline."""
    return authority >= AUTHORITY_REVIEWER_TIER


def tier_label(authority: int) -> str:
    if authority >= AUTHORITY_SYSTEM_ADMIN:
        return "system-admin"
    if authority >= AUTHORITY_OPERATIONAL_ADMIN:
        return "operational-admin"
    if authority >= AUTHORITY_COORDINATOR:
        return "coordinator"
    if authority >= AUTHORITY_STAKEHOLDER:
        return "stakeholder"
    return "basic-user"
