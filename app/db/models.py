from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    event,
    func,
    text as sql_text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


# ---------------------------------------------------------------------------
# Directory: users, roles, capabilities, locations, coverage
# ---------------------------------------------------------------------------


class UserAccount(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(256), nullable=True)
    organization_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=sql_text("true"))
    # Display copy only; validation recomputes authority from role grants.
    authority_display: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    role_grants: Mapped[list[UserRoleGrant]] = relationship(back_populates="user")
    capability_grants: Mapped[list[CapabilityGrant]] = relationship(back_populates="user")
    coverage_grants: Mapped[list[CoverageGrant]] = relationship(back_populates="user")


class Role(Base):
    __tablename__ = "roles"

    code: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    authority: Mapped[int] = mapped_column(Integer, nullable=False)


class UserRoleGrant(Base):
    __tablename__ = "user_role_grants"
    __table_args__ = (UniqueConstraint("user_id", "role_code", name="uq_user_role_grants_user_role"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    role_code: Mapped[str] = mapped_column(ForeignKey("roles.code", ondelete="CASCADE"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=sql_text("true"))
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    user: Mapped[UserAccount] = relationship(back_populates="role_grants")
    role: Mapped[Role] = relationship()


class Location(Base):
    """Province, district or municipality.  ``parent_id`` points one level up."""

    __tablename__ = "locations"

    location_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(256), nullable=False)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(
        ForeignKey("locations.location_id", ondelete="SET NULL"), nullable=True,
    )


class CapabilityGrant(Base):
    """``resource.verb`` permission, scoped to a location or system-wide when unscoped."""

    __tablename__ = "capability_grants"
    __table_args__ = (Index("ix_capability_grants_user_resource_verb", "user_id", "resource", "verb"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    resource: Mapped[str] = mapped_column(String(64), nullable=False)
    verb: Mapped[str] = mapped_column(String(64), nullable=False)
    location_id: Mapped[str | None] = mapped_column(
        ForeignKey("locations.location_id", ondelete="CASCADE"), nullable=True,
    )

    user: Mapped[UserAccount] = relationship(back_populates="capability_grants")


class CoverageGrant(Base):
    """A reviewer's coverage of one location unit (district or municipality)."""

    __tablename__ = "coverage_grants"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    location_id: Mapped[str] = mapped_column(ForeignKey("locations.location_id", ondelete="CASCADE"), nullable=False)
    coverage_area: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=sql_text("true"))

    user: Mapped[UserAccount] = relationship(back_populates="coverage_grants")


# ---------------------------------------------------------------------------
# Review requests
# ---------------------------------------------------------------------------


class ReviewRequest(Base):
    """One approval request moving through the review workflow.

    ``status`` and every column below it are written only by the
    ``TransitionExecutor`` through a version-guarded conditional update.
    ``requester_authority`` is frozen at submission.
    """

    __tablename__ = "review_requests"

    request_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default=sql_text("1"))
    request_type: Mapped[str] = mapped_column(String(32), nullable=False, default="event", server_default=sql_text("'event'"))
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    scheduled_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    start_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    end_time: Mapped[str | None] = mapped_column(String(16), nullable=True)
    location_id: Mapped[str] = mapped_column(String(64), nullable=False)
    organization_type: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="pending-review", server_default=sql_text("'pending-review'"), index=True,
    )

    requester_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    requester_role: Mapped[str | None] = mapped_column(String(64), nullable=True)
    requester_authority: Mapped[int] = mapped_column(Integer, nullable=False)

    reviewer_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewer_role: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewer_assignment_rule: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewer_auto_assigned: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sql_text("true"),
    )
    reviewer_assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewer_overridden_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewer_overridden_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reschedule_proposal: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    last_action: Mapped[str | None] = mapped_column(String(32), nullable=True)
    last_action_actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_action_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    claimed_by_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    claim_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    active_responder_side: Mapped[str | None] = mapped_column(String(16), nullable=True)
    active_responder_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    derived_item_ref: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    eligible_reviewers: Mapped[list[EligibleReviewerEntry]] = relationship(
        back_populates="request", order_by="EligibleReviewerEntry.position",
    )
    status_history: Mapped[list[StatusHistoryEntry]] = relationship(
        back_populates="request", order_by="StatusHistoryEntry.id",
    )
    decisions: Mapped[list[DecisionEntry]] = relationship(
        back_populates="request", order_by="DecisionEntry.id",
    )


class EligibleReviewerEntry(Base):
    """Member of a request's eligible reviewer set, computed once at submission."""

    __tablename__ = "request_eligible_reviewers"
    __table_args__ = (UniqueConstraint("request_id", "user_id", name="uq_request_eligible_reviewers_request_user"),)

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("review_requests.request_id", ondelete="CASCADE"), nullable=False,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[str | None] = mapped_column(String(64), nullable=True)
    authority: Mapped[int] = mapped_column(Integer, nullable=False)
    organization_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    discovered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    request: Mapped[ReviewRequest] = relationship(back_populates="eligible_reviewers")


class StatusHistoryEntry(Base):
    """Append-only status trail.  Rows are immutable once flushed."""

    __tablename__ = "request_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("review_requests.request_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_role: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_authority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    immutable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sql_text("true"),
    )

    request: Mapped[ReviewRequest] = relationship(back_populates="status_history")


class DecisionEntry(Base):
    """Append-only decision trail (accept, reschedule, claim, ...)."""

    __tablename__ = "request_decisions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[UUID] = mapped_column(
        ForeignKey("review_requests.request_id", ondelete="CASCADE"), nullable=False, index=True,
    )
    decision_type: Mapped[str] = mapped_column(String(32), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_role: Mapped[str | None] = mapped_column(String(64), nullable=True)
    actor_authority: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payload: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    immutable: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=sql_text("true"),
    )

    request: Mapped[ReviewRequest] = relationship(back_populates="decisions")


def _reject_history_mutation(mapper, connection, target) -> None:
    raise ValueError(f"{type(target).__name__} rows are append-only")


for _history_model in (StatusHistoryEntry, DecisionEntry):
    event.listen(_history_model, "before_update", _reject_history_mutation)
    event.listen(_history_model, "before_delete", _reject_history_mutation)
