"""Action validator.

``validate()`` decides whether one actor may perform one action on one
request.  Checks run in a fixed order and stop at the first failure:

    0. visibility and vocabulary (accept/reject vs confirm/decline)
    1. claim exclusivity
    2. state legality
    3. self-review guard
    4. active-responder guard
    5. reviewer-side participation
    6. capability at location scope
    7. authority hierarchy (unless an override assignment names the actor)
    8. action-specific refinements

Claim exclusivity comes before state legality so that a reviewer who lost
the race is told who holds the request rather than that the state moved.

Terminal requests admit only ``delete``; even ``view`` is denied there.
Reading a terminal request goes through ``WorkflowEngine.view_request``,
which checks visibility alone.

Denials are returned, never raised.  ``available_actions()`` runs the
same checks for every action, so it cannot disagree with ``act()``.
"""
from __future__ import annotations

from app.core.clock import Clock, utcnow
from app.core.constants import (
    ACTION_ACCEPT,
    ACTION_CANCEL,
    ACTION_CONFIRM,
    ACTION_DECLINE,
    ACTION_DELETE,
    ACTION_EDIT,
    ACTION_ORDER,
    ACTION_REJECT,
    ACTION_RESCHEDULE,
    ACTION_VIEW,
    OVERRIDE_ASSIGNMENT_RULES,
    STATE_APPROVED,
    VALID_ACTIONS,
)
from app.review.authority import is_ceiling, uses_review_vocabulary
from app.review.contracts import PermissionSource
from app.review.coordinators import CoordinatorResolver
from app.review.entities import SIDE_REQUESTER, SIDE_REVIEWER, ActorSnapshot, Decision, RescheduleProposal
from app.review.roles import APPROVED_EDIT_CAPABILITY, required_capability
from app.review.states import (
    APPROVAL_TARGETS,
    EDGE_APPROVE,
    EDITABLE_STATES,
    REFUSAL_STATES,
    RequestStateMachine,
)

# Review-type actions: the ones a requester may not take on their own request.
REVIEW_ACTIONS: frozenset[str] = frozenset({
    ACTION_ACCEPT,
    ACTION_REJECT,
    ACTION_CONFIRM,
    ACTION_DECLINE,
    ACTION_RESCHEDULE,
})

# Reviewer-side writes that claim an unclaimed request.
CLAIMING_ACTIONS: frozenset[str] = REVIEW_ACTIONS | {ACTION_EDIT}

_REVIEWER_VOCABULARY = frozenset({ACTION_ACCEPT, ACTION_REJECT})
_REQUESTER_VOCABULARY = frozenset({ACTION_CONFIRM, ACTION_DECLINE})


class ActionValidator:
    def __init__(
        self,
        state_machine: RequestStateMachine,
        resolver: CoordinatorResolver,
        permissions: PermissionSource,
        clock: Clock = utcnow,
    ) -> None:
        self.state_machine = state_machine
        self.resolver = resolver
        self.permissions = permissions
        self.clock = clock

    def validate(
        self,
        actor: ActorSnapshot,
        action: str,
        request,
        location_context: str | None = None,
    ) -> Decision:
        """Return whether *actor* may perform *action* on *request*, with a reason."""
        now = self.clock()
        if action not in VALID_ACTIONS:
            return Decision.deny(f"Unknown action {action!r}")

        user_id = actor.user.value
        is_requester = user_id == request.requester_id
        ceiling = is_ceiling(actor.authority)
        status = request.status

        # 0. visibility and vocabulary
        if not self.resolver.can_view(actor, request):
            return Decision.deny("Actor cannot view this request")
        if action == ACTION_VIEW:
            if self.state_machine.is_terminal(status):
                return Decision.deny(f"Request is {status}; only delete is allowed")
            return Decision(allowed=True, reason="Visible")
        if action in _REVIEWER_VOCABULARY and not uses_review_vocabulary(actor.authority):
            return Decision.deny(f"Actors below the reviewer tier use confirm/decline, not {action}")
        if action in _REQUESTER_VOCABULARY and uses_review_vocabulary(actor.authority):
            return Decision.deny(f"Reviewer-tier actors use accept/reject, not {action}")

        reviewer_side = not is_requester
        holder = self.resolver.claim_holder(request, now)
        outranks = self.resolver.outranks_claim(actor, request)

        # 1. claim exclusivity
        if (
            reviewer_side
            and not self.state_machine.is_terminal(status)
            and action != ACTION_DELETE
            and holder is not None
            and holder != user_id
            and not outranks
            and not ceiling
        ):
            return Decision.deny(f"Request already claimed by {holder}")

        # 2. state legality
        if self.state_machine.is_terminal(status) and action != ACTION_DELETE:
            return Decision.deny(f"Request is {status}; only delete is allowed")
        if action == ACTION_EDIT and status not in EDITABLE_STATES:
            return Decision.deny(f"Cannot edit a request in status {status!r}")
        if not self.state_machine.can_transition(status, action):
            return Decision.deny(f"Action {action!r} is not allowed from status {status!r}")
        target_status = self.state_machine.next_state(status, action)

        proposal = RescheduleProposal.from_json(request.reschedule_proposal)
        active_side = self.state_machine.active_side(status, proposal)

        # 3. self-review guard
        if is_requester and action in REVIEW_ACTIONS:
            requester_turn = self.state_machine.is_negotiation(status) and active_side == SIDE_REQUESTER
            reopening = status == STATE_APPROVED and action == ACTION_RESCHEDULE
            if not (requester_turn or reopening):
                return Decision.deny("Requesters cannot review their own request")

        # 4. active-responder guard
        if self.state_machine.is_negotiation(status):
            actor_side = SIDE_REQUESTER if is_requester else SIDE_REVIEWER
            if actor_side != active_side:
                return Decision.deny(f"Waiting for the {active_side} to respond")
            if request.last_action_actor_id == user_id:
                return Decision.deny("Waiting for another party to respond to your last action")

        # 5. reviewer-side participation
        if reviewer_side and action in CLAIMING_ACTIONS and not ceiling:
            if not (holder == user_id or self.resolver.is_participant(user_id, request) or outranks):
                return Decision.deny("Actor is not an eligible reviewer for this request")

        # 6. capability
        if not ceiling:
            if action == ACTION_EDIT and status == STATE_APPROVED:
                resource, verbs = APPROVED_EDIT_CAPABILITY
            else:
                resource, verbs = required_capability(action)
            scope = location_context or request.location_id
            if not any(self.permissions.has_capability(actor.user, resource, verb, scope) for verb in verbs):
                return Decision.deny(f"Actor lacks {resource}.{verbs[0]} capability for location {scope}")

        # 7. authority hierarchy
        if reviewer_side and not ceiling and actor.authority < request.requester_authority:
            if not self._override_names(user_id, request):
                return Decision.deny(
                    f"Actor authority {actor.authority} is below requester authority "
                    f"{request.requester_authority}"
                )

        # 8. refinements
        edge = self.state_machine.edge_for(action)
        if edge == EDGE_APPROVE and target_status in APPROVAL_TARGETS:
            if any(entry.status in REFUSAL_STATES for entry in request.status_history):
                return Decision.deny("Request was rejected or cancelled earlier and cannot be approved")
        if action == ACTION_CANCEL and not (is_requester or ceiling):
            return Decision.deny("Only the requester can cancel this request")

        claims = reviewer_side and action in CLAIMING_ACTIONS and holder is None and not outranks
        return Decision(
            allowed=True,
            reason="Allowed",
            edge=edge,
            target_status=target_status,
            claims=claims,
        )

    def available_actions(self, actor: ActorSnapshot, request) -> list[str]:
        """Actions *actor* may take now; empty when the request is not visible."""
        if not self.resolver.can_view(actor, request):
            return []
        return [
            action for action in ACTION_ORDER
            if self.validate(actor, action, request).allowed
        ]

    def _override_names(self, user_id: str, request) -> bool:
        if request.reviewer_assignment_rule not in OVERRIDE_ASSIGNMENT_RULES:
            return False
        return self.resolver.is_participant(user_id, request)
