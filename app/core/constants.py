"""Request states, actions, authority tiers and assignment rules.

Authority tiers
---------------
SYSTEM_ADMIN       100  ceiling tier; bypasses hierarchy and jurisdiction
OPERATIONAL_ADMIN   80  sees every request
COORDINATOR         60  the reviewer tier (accept/reject vocabulary)
STAKEHOLDER         30  requests and negotiates (confirm/decline vocabulary)
BASIC_USER          20  default when no active role grant exists
"""
from __future__ import annotations

# ---------------------------------------------------------------------------
# Request states
# ---------------------------------------------------------------------------

STATE_PENDING_REVIEW = "pending-review"
STATE_REVIEW_ACCEPTED = "review-accepted"
STATE_REVIEW_REJECTED = "review-rejected"
STATE_REVIEW_RESCHEDULED = "review-rescheduled"
STATE_APPROVED = "approved"
STATE_REJECTED = "rejected"
STATE_CANCELLED = "cancelled"
STATE_COMPLETED = "completed"
STATE_EXPIRED_REVIEW = "expired-review"
STATE_CLOSED = "closed"

VALID_STATES: frozenset[str] = frozenset({
    STATE_PENDING_REVIEW,
    STATE_REVIEW_ACCEPTED,
    STATE_REVIEW_REJECTED,
    STATE_REVIEW_RESCHEDULED,
    STATE_APPROVED,
    STATE_REJECTED,
    STATE_CANCELLED,
    STATE_COMPLETED,
    STATE_EXPIRED_REVIEW,
    STATE_CLOSED,
})

STATUS_LABELS: dict[str, str] = {
    STATE_PENDING_REVIEW: "Waiting for Review",
    STATE_REVIEW_ACCEPTED: "Review Accepted",
    STATE_REVIEW_REJECTED: "Review Rejected",
    STATE_REVIEW_RESCHEDULED: "Reschedule Proposed",
    STATE_APPROVED: "Approved",
    STATE_REJECTED: "Rejected",
    STATE_CANCELLED: "Cancelled",
    STATE_COMPLETED: "Completed",
    STATE_EXPIRED_REVIEW: "Reschedule Expired",
    STATE_CLOSED: "Closed",
}

# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

ACTION_VIEW = "view"
ACTION_ACCEPT = "accept"
ACTION_REJECT = "reject"
ACTION_RESCHEDULE = "reschedule"
ACTION_CONFIRM = "confirm"
ACTION_DECLINE = "decline"
ACTION_CANCEL = "cancel"
ACTION_EDIT = "edit"
ACTION_DELETE = "delete"

VALID_ACTIONS: frozenset[str] = frozenset({
    ACTION_VIEW,
    ACTION_ACCEPT,
    ACTION_REJECT,
    ACTION_RESCHEDULE,
    ACTION_CONFIRM,
    ACTION_DECLINE,
    ACTION_CANCEL,
    ACTION_EDIT,
    ACTION_DELETE,
})

# Order in which available actions are reported.
ACTION_ORDER: tuple[str, ...] = (
    ACTION_VIEW,
    ACTION_ACCEPT,
    ACTION_CONFIRM,
    ACTION_REJECT,
    ACTION_DECLINE,
    ACTION_RESCHEDULE,
    ACTION_EDIT,
    ACTION_CANCEL,
    ACTION_DELETE,
)

# ---------------------------------------------------------------------------
# Authority tiers
# ---------------------------------------------------------------------------

AUTHORITY_SYSTEM_ADMIN = 100
AUTHORITY_OPERATIONAL_ADMIN = 80
AUTHORITY_COORDINATOR = 60
AUTHORITY_STAKEHOLDER = 30
AUTHORITY_BASIC_USER = 20

AUTHORITY_CEILING = AUTHORITY_SYSTEM_ADMIN
AUTHORITY_REVIEWER_TIER = AUTHORITY_COORDINATOR

# ---------------------------------------------------------------------------
# Reviewer assignment rules
# ---------------------------------------------------------------------------

RULE_STAKEHOLDER_TO_COORDINATOR = "stakeholder-to-coordinator"
RULE_COORDINATOR_TO_ADMIN = "coordinator-to-admin"
RULE_ADMIN_TO_COORDINATOR = "admin-to-coordinator"
RULE_AUTO_ASSIGNED = "auto-assigned"
RULE_MANUAL = "manual"
RULE_FALLBACK = "fallback"

# Rules under which the assigned reviewer set may act on a requester of
# higher authority than their own.
OVERRIDE_ASSIGNMENT_RULES: frozenset[str] = frozenset({
    RULE_ADMIN_TO_COORDINATOR,
    RULE_MANUAL,
})

SYSTEM_ACTOR_ID = "system"
