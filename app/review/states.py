"""Request state machine.

    pending-review ─accept─▶ approved          (review-accepted with a confirmation step)
                   ─reject─▶ rejected          (review-rejected with a confirmation step)
                   ─reschedule─▶ review-rescheduled ◀─┐
                   ─cancel─▶ cancelled                │ counter-proposal
    review-rescheduled ─accept/confirm─▶ approved     │
                       ─reject/decline─▶ rejected     │
                       ─reschedule───────────────────┘
    approved ─reschedule─▶ review-rescheduled, ─cancel─▶ cancelled
    rejected / cancelled / completed / expired-review ─delete─▶ closed

Transitions are keyed by *edge*, not action: ``accept`` and ``confirm``
are the same ``approve`` edge, ``reject`` and ``decline`` the same
``refuse`` edge.  Which verb an actor uses depends on their authority
tier, not on the edge.
"""
from __future__ import annotations

from app.core.constants import (
    ACTION_ACCEPT,
    ACTION_CANCEL,
    ACTION_CONFIRM,
    ACTION_DECLINE,
    ACTION_DELETE,
    ACTION_EDIT,
    ACTION_REJECT,
    ACTION_RESCHEDULE,
    STATE_APPROVED,
    STATE_CANCELLED,
    STATE_CLOSED,
    STATE_COMPLETED,
    STATE_EXPIRED_REVIEW,
    STATE_PENDING_REVIEW,
    STATE_REJECTED,
    STATE_REVIEW_ACCEPTED,
    STATE_REVIEW_REJECTED,
    STATE_REVIEW_RESCHEDULED,
)
from app.review.entities import SIDE_REQUESTER, SIDE_REVIEWER, RescheduleProposal

EDGE_APPROVE = "approve"
EDGE_REFUSE = "refuse"
EDGE_RESCHEDULE = "reschedule"
EDGE_CANCEL = "cancel"
EDGE_EDIT = "edit"
EDGE_DELETE = "delete"

ACTION_EDGES: dict[str, str] = {
    ACTION_ACCEPT: EDGE_APPROVE,
    ACTION_CONFIRM: EDGE_APPROVE,
    ACTION_REJECT: EDGE_REFUSE,
    ACTION_DECLINE: EDGE_REFUSE,
    ACTION_RESCHEDULE: EDGE_RESCHEDULE,
    ACTION_CANCEL: EDGE_CANCEL,
    ACTION_EDIT: EDGE_EDIT,
    ACTION_DELETE: EDGE_DELETE,
}

# Allowed edges: current_status → {edge: next status}
_TRANSITIONS: dict[str, dict[str, str]] = {
    STATE_PENDING_REVIEW: {
        EDGE_APPROVE: STATE_APPROVED,
        EDGE_REFUSE: STATE_REJECTED,
        EDGE_RESCHEDULE: STATE_REVIEW_RESCHEDULED,
        EDGE_CANCEL: STATE_CANCELLED,
        EDGE_EDIT: STATE_PENDING_REVIEW,
    },
    STATE_REVIEW_ACCEPTED: {
        EDGE_APPROVE: STATE_APPROVED,
        EDGE_REFUSE: STATE_REJECTED,
        EDGE_CANCEL: STATE_CANCELLED,
    },
    STATE_REVIEW_REJECTED: {
        # The requester acknowledges the rejection either way.
        EDGE_APPROVE: STATE_REJECTED,
        EDGE_REFUSE: STATE_REJECTED,
    },
    STATE_REVIEW_RESCHEDULED: {
        EDGE_APPROVE: STATE_APPROVED,
        EDGE_REFUSE: STATE_REJECTED,
        EDGE_RESCHEDULE: STATE_REVIEW_RESCHEDULED,
        EDGE_CANCEL: STATE_CANCELLED,
    },
    STATE_APPROVED: {
        EDGE_RESCHEDULE: STATE_REVIEW_RESCHEDULED,
        EDGE_CANCEL: STATE_CANCELLED,
        EDGE_EDIT: STATE_APPROVED,
    },
    STATE_REJECTED: {EDGE_DELETE: STATE_CLOSED},
    STATE_CANCELLED: {EDGE_DELETE: STATE_CLOSED},
    STATE_COMPLETED: {EDGE_DELETE: STATE_CLOSED},
    STATE_EXPIRED_REVIEW: {EDGE_DELETE: STATE_CLOSED},
    STATE_CLOSED: {},
}

# With a confirmation step the reviewer's first decision waits for the requester.
_CONFIRMATION_OVERRIDES: dict[str, dict[str, str]] = {
    STATE_PENDING_REVIEW: {
        EDGE_APPROVE: STATE_REVIEW_ACCEPTED,
        EDGE_REFUSE: STATE_REVIEW_REJECTED,
    },
}

TERMINAL_STATES: frozenset[str] = frozenset({
    STATE_REJECTED,
    STATE_CANCELLED,
    STATE_COMPLETED,
    STATE_EXPIRED_REVIEW,
    STATE_CLOSED,
})

# States with exactly one active responder.
NEGOTIATION_STATES: frozenset[str] = frozenset({
    STATE_REVIEW_RESCHEDULED,
    STATE_REVIEW_ACCEPTED,
    STATE_REVIEW_REJECTED,
})

# States in which the requester answers the reviewer's decision.
CONFIRMATION_STATES: frozenset[str] = frozenset({
    STATE_REVIEW_ACCEPTED,
    STATE_REVIEW_REJECTED,
})

EDITABLE_STATES: frozenset[str] = frozenset({STATE_PENDING_REVIEW, STATE_APPROVED})

# Once any of these appears in the history, nothing may be confirmed into approval.
REFUSAL_STATES: frozenset[str] = frozenset({
    STATE_REVIEW_REJECTED,
    STATE_REJECTED,
    STATE_CANCELLED,
})

APPROVAL_TARGETS: frozenset[str] = frozenset({STATE_APPROVED, STATE_REVIEW_ACCEPTED})


class RequestStateMachine:
    """Edge table lookups plus the active-responder rule."""

    def __init__(self, require_confirmation_step: bool = False) -> None:
        self.require_confirmation_step = require_confirmation_step
        table = {state: dict(edges) for state, edges in _TRANSITIONS.items()}
        if require_confirmation_step:
            for state, edges in _CONFIRMATION_OVERRIDES.items():
                table[state].update(edges)
        self._table = table

    @staticmethod
    def edge_for(action: str) -> str | None:
        return ACTION_EDGES.get(action)

    def can_transition(self, current_status: str, action: str) -> bool:
        """Return whether *action* is a legal edge from *current_status*."""
        edge = self.edge_for(action)
        return edge is not None and edge in self._table.get(current_status, {})

    def next_state(self, current_status: str, action: str) -> str | None:
        edge = self.edge_for(action)
        if edge is None:
            return None
        return self._table.get(current_status, {}).get(edge)

    @staticmethod
    def is_terminal(status: str) -> bool:
        return status in TERMINAL_STATES

    @staticmethod
    def is_negotiation(status: str) -> bool:
        return status in NEGOTIATION_STATES

    @staticmethod
    def active_side(status: str, proposal: RescheduleProposal | None) -> str | None:
        """Which party must move next, or ``None`` when either may initiate.

        In ``review-rescheduled`` it is the side that did *not* make the
        standing proposal; in the confirmation states it is the requester;
        in ``pending-review`` it is the reviewer side.
        """
        if status == STATE_PENDING_REVIEW:
            return SIDE_REVIEWER
        if status in CONFIRMATION_STATES:
            return SIDE_REQUESTER
        if status == STATE_REVIEW_RESCHEDULED:
            if proposal is not None and proposal.side == SIDE_REVIEWER:
                return SIDE_REQUESTER
            return SIDE_REVIEWER
        return None
