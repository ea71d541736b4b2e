"""Directory provisioning: roles, users, grants and locations.

Used by ``scripts/seed_demo.py`` and the test fixtures.  Each role comes
with a default capability set; callers may scope it to a location.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db.models import CapabilityGrant, CoverageGrant, Location, Role, UserAccount, UserRoleGrant
from app.db.repositories import LocationRepository, UserRepository
from app.review.roles import RESOURCE_EVENT, RESOURCE_REQUEST, ROLE_AUTHORITY, authority_for_role

logger = logging.getLogger(__name__)

ROLE_NAMES: dict[str, str] = {
    "system-admin": "System Administrator",
    "operational-admin": "Operational Administrator",
    "coordinator": "Coordinator",
    "stakeholder": "Stakeholder",
    "basic-user": "Basic User",
}

DEFAULT_ROLE_CAPABILITIES: dict[str, tuple[tuple[str, str], ...]] = {
    "system-admin": (
        (RESOURCE_REQUEST, "read"),
        (RESOURCE_REQUEST, "delete"),
    ),
    "operational-admin": (
        (RESOURCE_REQUEST, "read"),
        (RESOURCE_REQUEST, "review"),
        (RESOURCE_REQUEST, "reschedule"),
        (RESOURCE_REQUEST, "cancel"),
        (RESOURCE_REQUEST, "update"),
        (RESOURCE_REQUEST, "delete"),
        (RESOURCE_EVENT, "update"),
    ),
    "coordinator": (
        (RESOURCE_REQUEST, "read"),
        (RESOURCE_REQUEST, "review"),
        (RESOURCE_REQUEST, "reschedule"),
        (RESOURCE_REQUEST, "cancel"),
        (RESOURCE_REQUEST, "update"),
        (RESOURCE_EVENT, "update"),
    ),
    "stakeholder": (
        (RESOURCE_REQUEST, "read"),
        (RESOURCE_REQUEST, "confirm"),
        (RESOURCE_REQUEST, "decline"),
        (RESOURCE_REQUEST, "reschedule"),
        (RESOURCE_REQUEST, "cancel"),
        (RESOURCE_REQUEST, "update"),
    ),
    "basic-user": (
        (RESOURCE_REQUEST, "read"),
        (RESOURCE_REQUEST, "confirm"),
        (RESOURCE_REQUEST, "decline"),
        (RESOURCE_REQUEST, "cancel"),
    ),
}


def ensure_roles(db: Session) -> None:
    """Insert the role catalogue if missing."""
    for code, authority in ROLE_AUTHORITY.items():
        if db.get(Role, code) is None:
            db.add(Role(code=code, name=ROLE_NAMES[code], authority=authority))
    db.flush()


def add_location(db: Session, location_id: str, name: str, kind: str, parent_id: str | None = None) -> Location:
    return LocationRepository(db).create(location_id=location_id, name=name, kind=kind, parent_id=parent_id)


def add_user(
    db: Session,
    user_id: str,
    role_code: str | None,
    *,
    organization_type: str | None = None,
    coverage: Iterable[str] = (),
    capability_scope: str | None = None,
    capabilities: Iterable[tuple[str, str]] | None = None,
    is_active: bool = True,
    role_expires_at: datetime | None = None,
    display_name: str | None = None,
) -> UserAccount:
    """Create a user with one role grant, its default capabilities and coverage."""
    user = UserRepository(db).create(
        user_id=user_id,
        display_name=display_name or user_id,
        organization_type=organization_type,
        is_active=is_active,
        authority_display=authority_for_role(role_code) if role_code else None,
    )

    if role_code is not None:
        grant_role(db, user_id, role_code, expires_at=role_expires_at)
        if capabilities is None:
            capabilities = DEFAULT_ROLE_CAPABILITIES[role_code]
    for resource, verb in capabilities or ():
        db.add(CapabilityGrant(user_id=user_id, resource=resource, verb=verb, location_id=capability_scope))
    for location_id in coverage:
        db.add(CoverageGrant(user_id=user_id, location_id=location_id, is_active=True))
    db.flush()
    logger.debug("Provisioned user=%s role=%s", user_id, role_code)
    return user


def grant_role(
    db: Session,
    user_id: str,
    role_code: str,
    *,
    expires_at: datetime | None = None,
) -> UserRoleGrant:
    authority_for_role(role_code)
    grant = UserRoleGrant(user_id=user_id, role_code=role_code, is_active=True, expires_at=expires_at)
    db.add(grant)
    db.flush()
    return grant


def revoke_role(db: Session, user_id: str, role_code: str) -> None:
    """Deactivate a grant.  Takes effect on the user's next action."""
    stmt = select(UserRoleGrant).where(
        UserRoleGrant.user_id == user_id,
        UserRoleGrant.role_code == role_code,
    )
    for grant in db.execute(stmt).scalars():
        grant.is_active = False
    db.flush()
