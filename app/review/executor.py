"""Transition executor: the only writer of request state.

Every write is one conditional ``UPDATE`` guarded on the version and
status that were read (and, for reviewer-side writes, on the claim still
being free or held by the actor).  A guard miss raises ``ConflictError``
and nothing is written.  History rows go into the same transaction.

Publish and notify hooks run after commit.  Their failures are logged
and reported as a degraded result; the committed transition stands.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.audit.audit_log import record_decision, record_status_change
from app.audit.events import DECISION_CLAIM, DECISION_OVERRIDE, DECISION_RELEASE
from app.core.clock import Clock, utcnow
from app.core.constants import (
    ACTION_EDIT,
    ACTION_RESCHEDULE,
    RULE_MANUAL,
    STATE_APPROVED,
    STATE_PENDING_REVIEW,
)
from app.core.errors import ConflictError
from app.db.models import ReviewRequest
from app.db.repositories import ReviewRequestRepository
from app.review.contracts import NotifyHook, PublishHook
from app.review.entities import (
    SIDE_REQUESTER,
    SIDE_REVIEWER,
    ActionResult,
    ActorSnapshot,
    Decision,
    RescheduleProposal,
)
from app.review.payloads import EditPayload, ReschedulePayload
from app.review.states import EDGE_APPROVE, EDGE_CANCEL, EDGE_REFUSE, RequestStateMachine

logger = logging.getLogger(__name__)


def responder_for(
    side: str | None,
    status: str,
    requester_id: str,
    claimed_by_id: str | None,
    reviewer_id: str | None,
) -> str | None:
    """Id of the single active responder, or ``None`` for a broadcast reviewer side."""
    if side == SIDE_REQUESTER:
        return requester_id
    if side == SIDE_REVIEWER:
        if claimed_by_id is not None:
            return claimed_by_id
        if status != STATE_PENDING_REVIEW:
            return reviewer_id
    return None


class TransitionExecutor:
    def __init__(
        self,
        db_session: Session,
        state_machine: RequestStateMachine,
        publish_hook: PublishHook,
        notify_hook: NotifyHook,
        claim_ttl: timedelta,
        clock: Clock = utcnow,
    ) -> None:
        self.db = db_session
        self.requests = ReviewRequestRepository(db_session)
        self.state_machine = state_machine
        self.publish_hook = publish_hook
        self.notify_hook = notify_hook
        self.claim_ttl = claim_ttl
        self.clock = clock

    # -- actions ------------------------------------------------------------

    def execute(
        self,
        request: ReviewRequest,
        actor: ActorSnapshot,
        action: str,
        decision: Decision,
        payload: BaseModel | None = None,
    ) -> ActionResult:
        """Apply a validated *action* and commit.  Raises ``ConflictError`` on a lost race."""
        now = self.clock()
        request_id = request.request_id
        from_status = request.status
        target = decision.target_status or from_status
        user_id = actor.user.value
        is_requester = user_id == request.requester_id
        note = getattr(payload, "note", None)

        values: dict[str, Any] = {
            "status": target,
            "last_action": action,
            "last_action_actor_id": user_id,
            "last_action_at": now,
        }
        claimed_by_id = request.claimed_by_id
        if decision.claims:
            claimed_by_id = user_id
            values.update(self._claim_values(request, actor, now))

        proposal = RescheduleProposal.from_json(request.reschedule_proposal)
        decision_payload: dict[str, Any] = {"from_status": from_status, "to_status": target}

        if action == ACTION_RESCHEDULE and isinstance(payload, ReschedulePayload):
            proposal = RescheduleProposal(
                proposed_date=payload.proposed_date,
                note=payload.note,
                proposed_at=now,
                proposed_by=actor,
                side=SIDE_REQUESTER if is_requester else SIDE_REVIEWER,
                start_time=payload.start_time,
                end_time=payload.end_time,
            )
            values["reschedule_proposal"] = proposal.to_json()
            decision_payload["proposal"] = proposal.to_json()
        elif decision.edge == EDGE_APPROVE and target == STATE_APPROVED:
            if proposal is not None:
                values.update(
                    scheduled_date=proposal.proposed_date,
                    start_time=proposal.start_time or request.start_time,
                    end_time=proposal.end_time or request.end_time,
                )
                decision_payload["agreed_date"] = proposal.proposed_date.isoformat()
            values["reschedule_proposal"] = None
            proposal = None
        elif decision.edge in (EDGE_REFUSE, EDGE_CANCEL):
            values["reschedule_proposal"] = None
            proposal = None
        elif action == ACTION_EDIT and isinstance(payload, EditPayload):
            changes = payload.changes()
            if "details" in changes:
                changes["details"] = {**(request.details or {}), **changes["details"]}
            values.update(changes)
            decision_payload["changed_fields"] = sorted(changes)

        if note:
            decision_payload["note"] = note

        side = self.state_machine.active_side(target, proposal)
        values["active_responder_side"] = side
        values["active_responder_id"] = responder_for(
            side, target, request.requester_id, claimed_by_id, values.get("reviewer_id", request.reviewer_id),
        )

        guard_claim = decision.claims or (claimed_by_id == user_id and not is_requester)
        self._write(request, now, values, claimant_id=user_id if guard_claim else None)

        if decision.claims:
            self._record_claim(request_id, actor, now)
        if target != from_status or action == ACTION_EDIT:
            record_status_change(self.db, request_id, target, actor, now, note=note)
        record_decision(self.db, request_id, action, actor, now, payload=decision_payload)
        self.db.commit()

        logger.info(
            "Transition: request=%s action=%s actor=%s %s -> %s",
            request_id, action, user_id, from_status, target,
        )

        request = self.refresh(request)
        warnings: list[str] = []
        derived_item_ref = None
        # Re-approval after a reschedule and edits of an approved request republish.
        if target == STATE_APPROVED and (from_status != STATE_APPROVED or action == ACTION_EDIT):
            derived_item_ref = self._publish(request, warnings)
        self.notify(request, action, actor, warnings)

        return ActionResult(
            request=request,
            allowed=True,
            reason=decision.reason,
            degraded=bool(warnings),
            warnings=warnings,
            derived_item_ref=derived_item_ref or request.derived_item_ref,
        )

    def release(self, request: ReviewRequest, actor: ActorSnapshot, decision: Decision) -> ActionResult:
        """Clear the claim so other eligible reviewers regain write access."""
        now = self.clock()
        holder = request.claimed_by_id
        side = request.active_responder_side
        values = {
            "claimed_by_id": None,
            "claimed_at": None,
            "claim_expires_at": None,
            "active_responder_id": responder_for(
                side, request.status, request.requester_id, None, request.reviewer_id,
            ),
        }
        self._write(request, now, values, claimant_id=None)
        record_decision(
            self.db, request.request_id, DECISION_RELEASE, actor, now,
            payload={"released_claim_of": holder},
        )
        self.db.commit()
        logger.info("Claim released: request=%s actor=%s holder=%s", request.request_id, actor.user, holder)

        request = self.refresh(request)
        warnings: list[str] = []
        self.notify(request, DECISION_RELEASE, actor, warnings)
        return ActionResult(
            request=request, allowed=True, reason=decision.reason,
            degraded=bool(warnings), warnings=warnings,
        )

    def claim(self, request: ReviewRequest, actor: ActorSnapshot, decision: Decision) -> ActionResult:
        """Take or renew the claim without moving the request."""
        now = self.clock()
        user_id = actor.user.value
        values = self._claim_values(request, actor, now)
        values["active_responder_id"] = responder_for(
            request.active_responder_side, request.status, request.requester_id, user_id, user_id,
        )
        self._write(request, now, values, claimant_id=user_id)
        self._record_claim(request.request_id, actor, now)
        self.db.commit()
        logger.info("Claimed: request=%s actor=%s", request.request_id, actor.user)

        request = self.refresh(request)
        warnings: list[str] = []
        self.notify(request, DECISION_CLAIM, actor, warnings)
        return ActionResult(
            request=request, allowed=True, reason=decision.reason,
            degraded=bool(warnings), warnings=warnings,
        )

    def override_reviewer(
        self,
        request: ReviewRequest,
        admin: ActorSnapshot,
        reviewer_id: str,
        decision: Decision,
    ) -> ActionResult:
        """Assign *reviewer_id* under the ``manual`` rule.

        A claim held by anyone else is dropped so the new assignment can act.
        """
        now = self.clock()
        entry = next(e for e in request.eligible_reviewers if e.user_id == reviewer_id)
        holder = request.claimed_by_id
        previous = request.reviewer_id
        values: dict[str, Any] = {
            "reviewer_id": reviewer_id,
            "reviewer_role": entry.role,
            "reviewer_assignment_rule": RULE_MANUAL,
            "reviewer_auto_assigned": False,
            "reviewer_assigned_at": now,
            "reviewer_overridden_by": admin.user.value,
            "reviewer_overridden_at": now,
        }
        dropped = holder is not None and holder != reviewer_id
        if dropped:
            values.update(claimed_by_id=None, claimed_at=None, claim_expires_at=None)
        values["active_responder_id"] = responder_for(
            request.active_responder_side, request.status, request.requester_id,
            None if dropped else holder, reviewer_id,
        )
        self._write(request, now, values, claimant_id=None)

        payload: dict[str, Any] = {"from_reviewer": previous, "to_reviewer": reviewer_id}
        if dropped:
            payload["released_claim_of"] = holder
        record_decision(self.db, request.request_id, DECISION_OVERRIDE, admin, now, payload=payload)
        self.db.commit()
        logger.info(
            "Reviewer overridden: request=%s admin=%s from=%s to=%s",
            request.request_id, admin.user, previous, reviewer_id,
        )

        request = self.refresh(request)
        warnings: list[str] = []
        self.notify(request, DECISION_OVERRIDE, admin, warnings)
        return ActionResult(
            request=request, allowed=True, reason=decision.reason,
            degraded=bool(warnings), warnings=warnings,
        )

    def apply_system_transition(
        self,
        request: ReviewRequest,
        target: str,
        decision_type: str,
        actor: ActorSnapshot,
        note: str | None = None,
    ) -> bool:
        """Move *request* to *target* on behalf of the system.

        Returns ``False`` and writes nothing when the row changed since it
        was read, so a sweep never overwrites a live response.
        """
        now = self.clock()
        from_status = request.status
        values = {
            "status": target,
            "last_action": decision_type,
            "last_action_actor_id": actor.user.value,
            "last_action_at": now,
            "active_responder_side": None,
            "active_responder_id": None,
        }
        try:
            self._write(request, now, values, claimant_id=None)
        except ConflictError:
            self.db.rollback()
            return False
        record_status_change(self.db, request.request_id, target, actor, now, note=note)
        record_decision(
            self.db, request.request_id, decision_type, actor, now,
            payload={"from_status": from_status, "to_status": target},
        )
        self.db.commit()
        self.refresh(request)
        return True

    # -- hooks --------------------------------------------------------------

    def notify(self, request: ReviewRequest, action: str, actor: ActorSnapshot, warnings: list[str]) -> None:
        try:
            self.notify_hook.on_transition(request, action, actor)
        except Exception as exc:
            logger.warning("Notify hook failed for request=%s action=%s", request.request_id, action, exc_info=True)
            warnings.append(f"notify hook failed: {type(exc).__name__}")

    def _publish(self, request: ReviewRequest, warnings: list[str]) -> str | None:
        try:
            ref = self.publish_hook.on_approved(request)
        except Exception as exc:
            logger.warning("Publish hook failed for request=%s", request.request_id, exc_info=True)
            warnings.append(f"publish hook failed: {type(exc).__name__}")
            return None
        if ref:
            self.requests.set_derived_item_ref(request.request_id, str(ref))
            self.db.commit()
            self.refresh(request)
        return ref

    # -- internals ----------------------------------------------------------

    def _claim_values(self, request: ReviewRequest, actor: ActorSnapshot, now: datetime) -> dict[str, Any]:
        user_id = actor.user.value
        values: dict[str, Any] = {
            "claimed_by_id": user_id,
            "claimed_at": now,
            "claim_expires_at": now + self.claim_ttl,
            "reviewer_id": user_id,
            "reviewer_role": actor.role,
        }
        if user_id != request.reviewer_id:
            values.update(reviewer_overridden_by=user_id, reviewer_overridden_at=now)
        return values

    def _record_claim(self, request_id, actor: ActorSnapshot, now: datetime) -> None:
        record_decision(
            self.db, request_id, DECISION_CLAIM, actor, now,
            payload={"expires_at": (now + self.claim_ttl).isoformat()},
        )

    def _write(
        self,
        request: ReviewRequest,
        now: datetime,
        values: dict[str, Any],
        claimant_id: str | None,
    ) -> None:
        ok = self.requests.conditional_update(
            request.request_id,
            expected_version=request.version,
            expected_status=request.status,
            claimant_id=claimant_id,
            now=now,
            values=values,
        )
        if not ok:
            logger.warning(
                "Conditional write lost: request=%s version=%s status=%s",
                request.request_id, request.version, request.status,
            )
            raise ConflictError(
                f"Request {request.request_id} changed concurrently; re-read and retry"
            )

    def refresh(self, request: ReviewRequest) -> ReviewRequest:
        self.db.expire(request)
        return self.requests.reload(request.request_id)

