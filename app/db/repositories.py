from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app.db import models

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id: Any) -> ModelT | None:
        return self.db.get(self.model, entity_id)

    def list(self, limit: int = 100, offset: int = 0) -> list[ModelT]:
        stmt = select(self.model).offset(offset).limit(limit)
        return list(self.db.execute(stmt).scalars().all())


class UserRepository(BaseRepository[models.UserAccount]):
    model = models.UserAccount


class LocationRepository(BaseRepository[models.Location]):
    model = models.Location


class ReviewRequestRepository(BaseRepository[models.ReviewRequest]):
    model = models.ReviewRequest

    def reload(self, request_id: UUID) -> models.ReviewRequest | None:
        """Return the request with fresh column values, bypassing the identity map."""
        stmt = (
            select(models.ReviewRequest)
            .where(models.ReviewRequest.request_id == request_id)
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def conditional_update(
        self,
        request_id: UUID,
        *,
        expected_version: int,
        expected_status: str,
        claimant_id: str | None,
        now: datetime,
        values: dict[str, Any],
    ) -> bool:
        """Apply *values* only if the row still matches what the caller read.

        The guard checks ``version`` and ``status``; when *claimant_id* is
        given it also requires the claim to be free, already held by the
        claimant, or expired.  Returns ``False`` when no row matched.
        """
        request = models.ReviewRequest
        stmt = update(request).where(
            request.request_id == request_id,
            request.version == expected_version,
            request.status == expected_status,
        )
        if claimant_id is not None:
            stmt = stmt.where(
                or_(
                    request.claimed_by_id.is_(None),
                    request.claimed_by_id == claimant_id,
                    request.claim_expires_at <= now,
                )
            )
        stmt = stmt.values(version=request.version + 1, **values).execution_options(
            synchronize_session=False
        )
        result = self.db.execute(stmt)
        return result.rowcount == 1

    def list_by_status(self, status: str, limit: int = 500) -> list[models.ReviewRequest]:
        stmt = (
            select(models.ReviewRequest)
            .where(models.ReviewRequest.status == status)
            .order_by(models.ReviewRequest.created_at.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_involving(self, user_id: str, status: str | None = None) -> list[models.ReviewRequest]:
        """Requests where *user_id* is requester, reviewer, claimant or eligible."""
        request = models.ReviewRequest
        eligible = select(models.EligibleReviewerEntry.request_id).where(
            models.EligibleReviewerEntry.user_id == user_id
        )
        stmt = select(request).where(
            or_(
                request.requester_id == user_id,
                request.reviewer_id == user_id,
                request.claimed_by_id == user_id,
                request.request_id.in_(eligible),
            )
        )
        if status is not None:
            stmt = stmt.where(request.status == status)
        return list(self.db.execute(stmt.order_by(request.created_at.asc())).scalars().all())

    def list_all(self, status: str | None = None) -> list[models.ReviewRequest]:
        stmt = select(models.ReviewRequest)
        if status is not None:
            stmt = stmt.where(models.ReviewRequest.status == status)
        return list(self.db.execute(stmt.order_by(models.ReviewRequest.created_at.asc())).scalars().all())

    def set_derived_item_ref(self, request_id: UUID, ref: str) -> None:
        """Store the published work item reference.  Does not bump the version."""
        stmt = (
            update(models.ReviewRequest)
            .where(models.ReviewRequest.request_id == request_id)
            .values(derived_item_ref=ref)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)
