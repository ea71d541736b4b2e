"""SQLAlchemy-backed identity, permission, coverage and reviewer directory.

These read the directory tables (``users``, ``user_role_grants``,
``capability_grants``, ``locations``, ``coverage_grants``).  Database
failures surface as ``CollaboratorError`` so callers can tell an outage
from a denial.
"""
from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.errors import CollaboratorError
from app.core.identifiers import EntityRef
from app.db.models import CapabilityGrant, CoverageGrant, UserAccount, UserRoleGrant
from app.db.repositories import LocationRepository
from app.review.authority import RoleGrant, current_grants, effective_authority, primary_role
from app.review.entities import ReviewerCandidate

logger = logging.getLogger(__name__)


def _role_grants(rows: list[UserRoleGrant]) -> list[RoleGrant]:
    return [
        RoleGrant(
            role_code=row.role_code,
            authority=row.role.authority,
            is_active=row.is_active,
            expires_at=row.expires_at,
        )
        for row in rows
    ]


class SqlIdentitySource:
    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def get_active_role_grants(self, user: EntityRef, now: datetime) -> list[RoleGrant]:
        """Current grants of an active user; inactive or unknown users have none."""
        try:
            account = self.db.execute(
                select(UserAccount)
                .where(UserAccount.user_id == user.value)
                .options(selectinload(UserAccount.role_grants).selectinload(UserRoleGrant.role))
            ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise CollaboratorError(f"Identity lookup failed for user {user}") from exc
        if account is None or not account.is_active:
            return []
        return current_grants(_role_grants(account.role_grants), now)

    def get_authority(self, user: EntityRef, now: datetime) -> int:
        return effective_authority(self.get_active_role_grants(user, now), now)


class SqlCoverageSource:
    """Coverage of a unit includes the unit itself and its direct children."""

    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def parent_of(self, location_id: str) -> str | None:
        try:
            location = LocationRepository(self.db).get(location_id)
        except SQLAlchemyError as exc:
            raise CollaboratorError(f"Location lookup failed for {location_id}") from exc
        return location.parent_id if location is not None else None

    def is_location_covered(self, location_id: str, coverage_location_id: str) -> bool:
        if location_id == coverage_location_id:
            return True
        return self.parent_of(location_id) == coverage_location_id


class SqlPermissionSource:
    """Capability grants match system-wide, at the location, or at its parent."""

    def __init__(self, db_session: Session, coverage: SqlCoverageSource | None = None) -> None:
        self.db = db_session
        self.coverage = coverage or SqlCoverageSource(db_session)

    def has_capability(
        self,
        user: EntityRef,
        resource: str,
        verb: str,
        scope: str | None = None,
    ) -> bool:
        scopes = [CapabilityGrant.location_id.is_(None)]
        if scope is not None:
            scopes.append(CapabilityGrant.location_id == scope)
            parent = self.coverage.parent_of(scope)
            if parent is not None:
                scopes.append(CapabilityGrant.location_id == parent)
        stmt = (
            select(CapabilityGrant.id)
            .join(UserAccount, UserAccount.user_id == CapabilityGrant.user_id)
            .where(
                CapabilityGrant.user_id == user.value,
                CapabilityGrant.resource == resource,
                CapabilityGrant.verb == verb,
                UserAccount.is_active.is_(True),
                or_(*scopes),
            )
            .limit(1)
        )
        try:
            return self.db.execute(stmt).first() is not None
        except SQLAlchemyError as exc:
            raise CollaboratorError(f"Permission lookup failed for user {user}") from exc


class SqlReviewerDirectory:
    def __init__(self, db_session: Session) -> None:
        self.db = db_session

    def list_candidates(
        self,
        min_authority: int,
        max_authority: int | None,
        now: datetime,
    ) -> list[ReviewerCandidate]:
        stmt = (
            select(UserAccount)
            .where(UserAccount.is_active.is_(True))
            .options(
                selectinload(UserAccount.role_grants).selectinload(UserRoleGrant.role),
                selectinload(UserAccount.coverage_grants),
            )
            .order_by(UserAccount.user_id)
        )
        try:
            accounts = list(self.db.execute(stmt).scalars().all())
        except SQLAlchemyError as exc:
            raise CollaboratorError("Reviewer directory lookup failed") from exc

        candidates: list[ReviewerCandidate] = []
        for account in accounts:
            grants = _role_grants(account.role_grants)
            authority = effective_authority(grants, now)
            if authority < min_authority:
                continue
            if max_authority is not None and authority > max_authority:
                continue
            coverage: list[CoverageGrant] = [g for g in account.coverage_grants if g.is_active]
            candidates.append(
                ReviewerCandidate(
                    user=EntityRef(account.user_id),
                    role=primary_role(grants, now),
                    authority=authority,
                    organization_type=account.organization_type,
                    coverage_location_ids=tuple(g.location_id for g in coverage),
                )
            )
        logger.debug(
            "Reviewer directory: %d candidates in band %s-%s", len(candidates), min_authority, max_authority,
        )
        return candidates
