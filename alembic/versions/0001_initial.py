"""Initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("display_name", sa.String(length=256), nullable=True),
        sa.Column("organization_type", sa.String(length=64), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("authority_display", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "roles",
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("authority", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("code"),
    )

    op.create_table(
        "user_role_grants",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("role_code", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["role_code"], ["roles.code"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "role_code", name="uq_user_role_grants_user_role"),
    )

    op.create_table(
        "locations",
        sa.Column("location_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("parent_id", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["parent_id"], ["locations.location_id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("location_id"),
    )

    op.create_table(
        "capability_grants",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("resource", sa.String(length=64), nullable=False),
        sa.Column("verb", sa.String(length=64), nullable=False),
        sa.Column("location_id", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.location_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_capability_grants_user_resource_verb",
        "capability_grants",
        ["user_id", "resource", "verb"],
    )

    op.create_table(
        "coverage_grants",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("location_id", sa.String(length=64), nullable=False),
        sa.Column("coverage_area", sa.String(length=128), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["location_id"], ["locations.location_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "review_requests",
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("request_type", sa.String(length=32), server_default=sa.text("'event'"), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("start_time", sa.String(length=16), nullable=True),
        sa.Column("end_time", sa.String(length=16), nullable=True),
        sa.Column("location_id", sa.String(length=64), nullable=False),
        sa.Column("organization_type", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=32), server_default=sa.text("'pending-review'"), nullable=False),
        sa.Column("requester_id", sa.String(length=64), nullable=False),
        sa.Column("requester_role", sa.String(length=64), nullable=True),
        sa.Column("requester_authority", sa.Integer(), nullable=False),
        sa.Column("reviewer_id", sa.String(length=64), nullable=True),
        sa.Column("reviewer_role", sa.String(length=64), nullable=True),
        sa.Column("reviewer_assignment_rule", sa.String(length=64), nullable=True),
        sa.Column("reviewer_auto_assigned", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("reviewer_assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewer_overridden_by", sa.String(length=64), nullable=True),
        sa.Column("reviewer_overridden_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reschedule_proposal", sa.JSON(), nullable=True),
        sa.Column("last_action", sa.String(length=32), nullable=True),
        sa.Column("last_action_actor_id", sa.String(length=64), nullable=True),
        sa.Column("last_action_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claimed_by_id", sa.String(length=64), nullable=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("claim_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("active_responder_side", sa.String(length=16), nullable=True),
        sa.Column("active_responder_id", sa.String(length=64), nullable=True),
        sa.Column("derived_item_ref", sa.String(length=256), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("request_id"),
    )
    op.create_index("ix_review_requests_status", "review_requests", ["status"])
    op.create_index("ix_review_requests_requester_id", "review_requests", ["requester_id"])
    op.create_index("ix_review_requests_claimed_by_id", "review_requests", ["claimed_by_id"])

    op.create_table(
        "request_eligible_reviewers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("role", sa.String(length=64), nullable=True),
        sa.Column("authority", sa.Integer(), nullable=False),
        sa.Column("organization_type", sa.String(length=64), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("discovered_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["request_id"], ["review_requests.request_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("request_id", "user_id", name="uq_request_eligible_reviewers_request_user"),
    )
    op.create_index("ix_request_eligible_reviewers_user_id", "request_eligible_reviewers", ["user_id"])

    op.create_table(
        "request_status_history",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("actor_role", sa.String(length=64), nullable=True),
        sa.Column("actor_authority", sa.Integer(), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("changed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("immutable", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.ForeignKeyConstraint(["request_id"], ["review_requests.request_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_request_status_history_request_id", "request_status_history", ["request_id"])

    op.create_table(
        "request_decisions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("request_id", sa.Uuid(), nullable=False),
        sa.Column("decision_type", sa.String(length=32), nullable=False),
        sa.Column("actor_id", sa.String(length=64), nullable=False),
        sa.Column("actor_role", sa.String(length=64), nullable=True),
        sa.Column("actor_authority", sa.Integer(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("immutable", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.ForeignKeyConstraint(["request_id"], ["review_requests.request_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_request_decisions_request_id", "request_decisions", ["request_id"])


def downgrade() -> None:
    op.drop_index("ix_request_decisions_request_id", table_name="request_decisions")
    op.drop_table("request_decisions")
    op.drop_index("ix_request_status_history_request_id", table_name="request_status_history")
    op.drop_table("request_status_history")
    op.drop_index("ix_request_eligible_reviewers_user_id", table_name="request_eligible_reviewers")
    op.drop_table("request_eligible_reviewers")
    op.drop_index("ix_review_requests_claimed_by_id", table_name="review_requests")
    op.drop_index("ix_review_requests_requester_id", table_name="review_requests")
    op.drop_index("ix_review_requests_status", table_name="review_requests")
    op.drop_table("review_requests")
    op.drop_table("coverage_grants")
    op.drop_index("ix_capability_grants_user_resource_verb", table_name="capability_grants")
    op.drop_table("capability_grants")
    op.drop_table("locations")
    op.drop_table("user_role_grants")
    op.drop_table("roles")
    op.drop_table("users")
