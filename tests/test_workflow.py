"""Tests for app/review/workflow.py: end-to-end request lifecycles."""
from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

import pytest

from app.audit.audit_log import get_decision_history, get_status_history
from app.core.clock import as_utc
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
    RULE_FALLBACK,
    RULE_MANUAL,
    RULE_STAKEHOLDER_TO_COORDINATOR,
    STATE_APPROVED,
    STATE_CANCELLED,
    STATE_CLOSED,
    STATE_PENDING_REVIEW,
    STATE_REJECTED,
    STATE_REVIEW_ACCEPTED,
    STATE_REVIEW_REJECTED,
    STATE_REVIEW_RESCHEDULED,
)
from app.core.errors import RequestInputError, RequestNotFoundError
from app.core.settings import Settings
from app.directory.provisioning import add_user, grant_role, revoke_role
from app.review.coordinators import ResolverConfig, RoutingRule
from app.review.entities import SIDE_REQUESTER, SIDE_REVIEWER
from app.review.workflow import WorkflowEngine


def _statuses(db, request_id):
    return [entry.status for entry in get_status_history(db, request_id)]


def _decisions(db, request_id):
    return [entry.decision_type for entry in get_decision_history(db, request_id)]


# ===========================================================================
# Submission
# ===========================================================================

class TestSubmit:
    def test_submit_resolves_reviewers_once(self, engine, submit, db_session, hooks):
        request = submit()

        assert request.status == STATE_PENDING_REVIEW
        assert request.version == 1
        assert request.requester_authority == 30
        assert request.requester_role == "stakeholder"
        assert request.reviewer_assignment_rule == RULE_STAKEHOLDER_TO_COORDINATOR
        assert request.reviewer_id == "coord-a1"
        assert [e.user_id for e in request.eligible_reviewers] == ["coord-a1", "coord-a2"]
        assert request.active_responder_side == SIDE_REVIEWER
        assert request.active_responder_id is None
        assert _statuses(db_session, request.request_id) == [STATE_PENDING_REVIEW]
        assert _decisions(db_session, request.request_id) == ["submit"]
        assert hooks.notify.calls == [(str(request.request_id), "submit", "stakeholder-1")]

    def test_single_reviewer_is_active_responder(self, submit):
        request = submit(location_id="M3")
        assert request.reviewer_assignment_rule == RULE_FALLBACK
        assert request.active_responder_id == "sysadmin"

    def test_contact_details_kept_in_details(self, submit):
        request = submit(contact_email="org@example.com", description="Annual drive")
        assert request.details == {"contact_email": "org@example.com", "description": "Annual drive"}

    def test_past_date_rejected(self, submit):
        with pytest.raises(RequestInputError, match="scheduled_date must be in the future"):
            submit(days=-1)

    def test_missing_location_rejected(self, engine, clock):
        with pytest.raises(RequestInputError):
            engine.submit(
                engine.capture_actor("stakeholder-1"),
                {"title": "Drive", "scheduled_date": clock() + timedelta(days=3)},
                {},
            )

    def test_eligible_set_not_recomputed(self, engine, submit, db_session):
        request = submit()
        add_user(db_session, "coord-new", "coordinator", organization_type="A", coverage=["M1"])
        db_session.commit()

        reloaded = engine.get_request(request.request_id)
        assert [e.user_id for e in reloaded.eligible_reviewers] == ["coord-a1", "coord-a2"]
        assert not engine.act("coord-new", request.request_id, ACTION_ACCEPT).allowed


# ===========================================================================
# Review and claims
# ===========================================================================

class TestReview:
    def test_accept_approves_and_publishes(self, engine, submit, db_session, hooks):
        request = submit()
        result = engine.act("coord-a1", request.request_id, ACTION_ACCEPT, {"note": "Looks good"})

        assert result.allowed
        assert not result.degraded
        assert result.request.status == STATE_APPROVED
        assert result.request.claimed_by_id == "coord-a1"
        assert result.request.version == 2
        assert result.derived_item_ref == f"event-{request.request_id}"
        assert result.request.derived_item_ref == f"event-{request.request_id}"
        assert hooks.publish.published == [str(request.request_id)]
        assert _statuses(db_session, request.request_id) == [STATE_PENDING_REVIEW, STATE_APPROVED]
        assert _decisions(db_session, request.request_id) == ["submit", "claim", "accept"]

    def test_reject_is_terminal(self, engine, submit):
        request = submit()
        result = engine.act("coord-a2", request.request_id, ACTION_REJECT)
        assert result.request.status == STATE_REJECTED
        assert engine.get_available_actions("coord-a2", request.request_id) == []

    def test_first_action_claims_for_peers(self, engine, submit, proposal):
        request = submit()
        engine.act("coord-a1", request.request_id, ACTION_RESCHEDULE, proposal())

        result = engine.act("coord-a2", request.request_id, ACTION_REJECT)
        assert not result.allowed
        assert result.reason == "Request already claimed by coord-a1"
        assert engine.get_available_actions("coord-a2", request.request_id) == [ACTION_VIEW]

    def test_claim_expires(self, engine, submit, clock):
        request = submit()
        engine.act("coord-a1", request.request_id, ACTION_EDIT, {"title": "Blood drive (updated)"})
        clock.advance(hours=25)

        result = engine.act("coord-a2", request.request_id, ACTION_ACCEPT)
        assert result.allowed
        assert result.request.claimed_by_id == "coord-a2"
        assert result.request.reviewer_overridden_by == "coord-a2"

    def test_outsider_cannot_act(self, engine, submit):
        request = submit()
        result = engine.act("coord-b1", request.request_id, ACTION_ACCEPT)
        assert result.reason == "Actor cannot view this request"
        assert engine.get_available_actions("coord-b1", request.request_id) == []

    def test_ceiling_acts_over_claim(self, engine, submit):
        request = submit()
        engine.act("coord-a1", request.request_id, ACTION_EDIT, {"title": "Claimed"})
        result = engine.act("sysadmin", request.request_id, ACTION_ACCEPT)
        assert result.allowed
        assert result.request.claimed_by_id == "coord-a1"

    def test_denial_writes_nothing(self, engine, submit, db_session):
        request = submit()
        engine.act("coord-b1", request.request_id, ACTION_ACCEPT)
        reloaded = engine.get_request(request.request_id)
        assert reloaded.version == 1
        assert _decisions(db_session, request.request_id) == ["submit"]


# ===========================================================================
# Reschedule negotiation
# ===========================================================================

class TestNegotiation:
    def test_reviewer_proposal_waits_for_requester(self, engine, submit, proposal):
        request = submit()
        result = engine.act("coord-a1", request.request_id, ACTION_RESCHEDULE, proposal())

        req = result.request
        assert req.status == STATE_REVIEW_RESCHEDULED
        assert req.reschedule_proposal["side"] == SIDE_REVIEWER
        assert req.active_responder_side == SIDE_REQUESTER
        assert req.active_responder_id == "stakeholder-1"
        assert engine.get_available_actions("coord-a1", request.request_id) == [ACTION_VIEW]
        assert engine.get_available_actions("stakeholder-1", request.request_id) == [
            ACTION_VIEW, ACTION_CONFIRM, ACTION_DECLINE, ACTION_RESCHEDULE, ACTION_CANCEL,
        ]

    def test_confirm_applies_agreed_date(self, engine, submit, proposal):
        request = submit()
        body = proposal(days=12)
        engine.act("coord-a1", request.request_id, ACTION_RESCHEDULE, body)

        result = engine.act("stakeholder-1", request.request_id, ACTION_CONFIRM)
        assert result.request.status == STATE_APPROVED
        assert as_utc(result.request.scheduled_date) == body["proposed_date"]
        assert result.request.reschedule_proposal is None
        assert result.request.active_responder_side is None

    def test_counter_proposal_flips_turn(self, engine, submit, clock, proposal):
        request = submit()
        engine.act("coord-a1", request.request_id, ACTION_RESCHEDULE, proposal())
        result = engine.act(
            "stakeholder-1", request.request_id, ACTION_RESCHEDULE,
            proposal(days=14, note="Only the following week works"),
        )

        assert result.request.reschedule_proposal["side"] == SIDE_REQUESTER
        assert result.request.active_responder_side == SIDE_REVIEWER
        assert result.request.active_responder_id == "coord-a1"
        assert engine.get_available_actions("stakeholder-1", request.request_id) == [ACTION_VIEW]

        final = engine.act("coord-a1", request.request_id, ACTION_ACCEPT)
        assert final.request.status == STATE_APPROVED
        assert as_utc(final.request.scheduled_date) == clock() + timedelta(days=14)

    def test_decline_rejects(self, engine, submit, proposal):
        request = submit()
        engine.act("coord-a1", request.request_id, ACTION_RESCHEDULE, proposal())
        result = engine.act("stakeholder-1", request.request_id, ACTION_DECLINE, {"note": "Cannot move it"})
        assert result.request.status == STATE_REJECTED
        assert result.request.reschedule_proposal is None

    def test_requester_reopens_approved_request(self, engine, submit, proposal):
        request = submit()
        engine.act("coord-a1", request.request_id, ACTION_ACCEPT)

        result = engine.act("stakeholder-1", request.request_id, ACTION_RESCHEDULE, proposal(days=9))
        assert result.request.status == STATE_REVIEW_RESCHEDULED
        assert result.request.active_responder_id == "coord-a1"
        assert engine.act("coord-a1", request.request_id, ACTION_ACCEPT).request.status == STATE_APPROVED

    def test_reschedule_requires_future_date(self, engine, submit, proposal):
        request = submit()
        with pytest.raises(RequestInputError, match="proposed_date must be in the future"):
            engine.act("coord-a1", request.request_id, ACTION_RESCHEDULE, proposal(days=-1))

    def test_reschedule_requires_payload(self, engine, submit):
        request = submit()
        with pytest.raises(RequestInputError):
            engine.act("coord-a1", request.request_id, ACTION_RESCHEDULE)


class TestConfirmationStep:
    @pytest.fixture()
    def wf(self, directory, make_engine):
        return make_engine(REQUIRE_CONFIRMATION_STEP=True)

    def test_accept_then_confirm(self, wf, submit, hooks):
        request = submit(wf=wf)
        result = wf.act("coord-a1", request.request_id, ACTION_ACCEPT)
        assert result.request.status == STATE_REVIEW_ACCEPTED
        assert result.request.active_responder_id == "stakeholder-1"
        assert hooks.publish.published == []

        assert wf.act("coord-a1", request.request_id, ACTION_ACCEPT).reason == "Waiting for the requester to respond"

        final = wf.act("stakeholder-1", request.request_id, ACTION_CONFIRM)
        assert final.request.status == STATE_APPROVED
        assert hooks.publish.published == [str(request.request_id)]

    def test_rejection_acknowledged(self, wf, submit):
        request = submit(wf=wf)
        assert wf.act("coord-a1", request.request_id, ACTION_REJECT).request.status == STATE_REVIEW_REJECTED
        assert wf.act("stakeholder-1", request.request_id, ACTION_CONFIRM).request.status == STATE_REJECTED


# ===========================================================================
# Cancel, edit, delete
# ===========================================================================

class TestRequesterActions:
    def test_cancel(self, engine, submit):
        request = submit()
        result = engine.act("stakeholder-1", request.request_id, ACTION_CANCEL, {"note": "Venue closed"})
        assert result.request.status == STATE_CANCELLED

    def test_reviewer_cannot_cancel(self, engine, submit):
        request = submit()
        result = engine.act("coord-a1", request.request_id, ACTION_CANCEL)
        assert result.reason == "Only the requester can cancel this request"

    def test_edit_records_history(self, engine, submit, db_session):
        request = submit()
        result = engine.act(
            "stakeholder-1", request.request_id, ACTION_EDIT,
            {"title": "Spring blood drive", "start_time": "10:00"},
        )
        assert result.request.title == "Spring blood drive"
        assert result.request.start_time == "10:00"
        assert result.request.status == STATE_PENDING_REVIEW
        assert result.request.claimed_by_id is None
        decisions = get_decision_history(db_session, request.request_id)
        assert decisions[-1].decision_type == "edit"
        assert decisions[-1].payload["changed_fields"] == ["start_time", "title"]

    def test_edit_without_changes_rejected(self, engine, submit):
        request = submit()
        with pytest.raises(RequestInputError):
            engine.act("stakeholder-1", request.request_id, ACTION_EDIT, {"note": "no-op"})

    def test_edit_to_past_date_rejected(self, engine, submit, clock):
        request = submit()
        with pytest.raises(RequestInputError, match="scheduled_date must be in the future"):
            engine.act(
                "stakeholder-1", request.request_id, ACTION_EDIT,
                {"scheduled_date": clock() - timedelta(days=1)},
            )
        assert engine.get_request(request.request_id).version == 1

    def test_edit_merges_details(self, engine, submit):
        request = submit(contact_email="org@example.com", description="Annual drive")
        result = engine.act(
            "stakeholder-1", request.request_id, ACTION_EDIT, {"details": {"description": "Spring drive"}},
        )
        assert result.request.details == {"contact_email": "org@example.com", "description": "Spring drive"}

    def test_edit_of_approved_request_republishes(self, engine, submit, hooks):
        request = submit()
        engine.act("coord-a1", request.request_id, ACTION_ACCEPT)
        result = engine.act("coord-a1", request.request_id, ACTION_EDIT, {"start_time": "10:00"})

        assert result.request.status == STATE_APPROVED
        assert hooks.publish.published == [str(request.request_id)] * 2
        assert result.derived_item_ref == f"event-{request.request_id}"

    def test_delete_closes_terminal_request(self, engine, submit):
        request = submit()
        engine.act("stakeholder-1", request.request_id, ACTION_CANCEL)
        result = engine.act("opsadmin", request.request_id, ACTION_DELETE)
        assert result.request.status == STATE_CLOSED

    def test_terminal_request_accepts_no_writes(self, engine, submit, proposal):
        request = submit()
        engine.act("stakeholder-1", request.request_id, ACTION_CANCEL)
        for actor in ("stakeholder-1", "coord-a1", "coord-a2", "sysadmin"):
            actions = engine.get_available_actions(actor, request.request_id)
            assert set(actions) <= {ACTION_DELETE}
        assert not engine.act("coord-a1", request.request_id, ACTION_ACCEPT).allowed
        assert not engine.act(
            "stakeholder-1", request.request_id, ACTION_RESCHEDULE, proposal(),
        ).allowed


# ===========================================================================
# Authority at action time
# ===========================================================================

class TestLiveAuthority:
    def test_revoked_reviewer_loses_vocabulary(self, engine, submit, db_session):
        request = submit()
        revoke_role(db_session, "coord-a1", "coordinator")
        db_session.commit()

        result = engine.act("coord-a1", request.request_id, ACTION_ACCEPT)
        assert not result.allowed
        assert result.reason == "Actors below the reviewer tier use confirm/decline, not accept"

    def test_requester_authority_frozen_at_submission(self, engine, submit, db_session):
        request = submit()
        grant_role(db_session, "stakeholder-1", "operational-admin")
        db_session.commit()

        reloaded = engine.get_request(request.request_id)
        assert reloaded.requester_authority == 30
        assert engine.act("coord-a1", request.request_id, ACTION_ACCEPT).allowed

    def test_decisions_record_actor_snapshot(self, engine, submit, db_session):
        request = submit()
        engine.act("coord-a1", request.request_id, ACTION_ACCEPT)
        entry = get_decision_history(db_session, request.request_id)[-1]
        assert (entry.actor_id, entry.actor_role, entry.actor_authority) == ("coord-a1", "coordinator", 60)

    def test_actor_without_grants_labelled_by_tier(self, engine, db_session):
        revoke_role(db_session, "stakeholder-2", "stakeholder")
        db_session.commit()
        actor = engine.capture_actor("stakeholder-2")
        assert (actor.role, actor.authority) == ("basic-user", 20)


# ===========================================================================
# Available actions mirror act()
# ===========================================================================

class TestAvailableActionsMirrorAct:
    @pytest.mark.parametrize("actor", ["stakeholder-1", "coord-a1", "coord-a2", "coord-b1", "opsadmin"])
    def test_unavailable_actions_are_denied(self, engine, submit, actor, proposal):
        request = submit()
        engine.act("coord-a1", request.request_id, ACTION_RESCHEDULE, proposal())

        available = engine.get_available_actions(actor, request.request_id)
        payloads = {
            ACTION_RESCHEDULE: proposal(days=20),
            ACTION_EDIT: {"title": "Changed"},
        }
        for action in ACTION_ORDER:
            if action in available:
                continue
            result = engine.act(actor, request.request_id, action, payloads.get(action))
            assert not result.allowed, action

    def test_available_action_succeeds(self, engine, submit):
        request = submit()
        assert ACTION_ACCEPT in engine.get_available_actions("coord-a2", request.request_id)
        assert engine.act("coord-a2", request.request_id, ACTION_ACCEPT).allowed


# ===========================================================================
# Hooks, release, lookups
# ===========================================================================

class TestHooks:
    def test_publish_failure_degrades_but_commits(self, engine, submit, hooks):
        hooks.publish.fail = True
        request = submit()
        result = engine.act("coord-a1", request.request_id, ACTION_ACCEPT)

        assert result.allowed
        assert result.degraded
        assert result.warnings == ["publish hook failed: RuntimeError"]
        assert result.derived_item_ref is None
        assert engine.get_request(request.request_id).status == STATE_APPROVED

    def test_notify_failure_degrades(self, engine, submit, hooks):
        request = submit()
        hooks.notify.fail = True
        result = engine.act("stakeholder-1", request.request_id, ACTION_CANCEL)
        assert result.degraded
        assert result.request.status == STATE_CANCELLED


class TestRelease:
    def test_claimant_releases(self, engine, submit, db_session):
        request = submit()
        engine.act("coord-a1", request.request_id, ACTION_EDIT, {"title": "Claimed"})

        denied = engine.release_claim("coord-a2", request.request_id)
        assert denied.reason == "Only the claimant coord-a1 can release this request"

        result = engine.release_claim("coord-a1", request.request_id)
        assert result.allowed
        assert result.request.claimed_by_id is None
        assert _decisions(db_session, request.request_id)[-1] == "release"
        assert engine.act("coord-a2", request.request_id, ACTION_ACCEPT).allowed

    def test_unclaimed_release_denied(self, engine, submit):
        request = submit()
        assert engine.release_claim("coord-a1", request.request_id).reason == "Request is not claimed"


class TestClaim:
    def test_claim_without_moving(self, engine, submit, db_session, clock):
        request = submit()
        result = engine.claim_request("coord-a1", request.request_id)

        assert result.allowed
        assert result.request.status == STATE_PENDING_REVIEW
        assert result.request.claimed_by_id == "coord-a1"
        assert as_utc(result.request.claim_expires_at) == clock() + timedelta(hours=engine.settings.claim_ttl_hours)
        assert result.request.active_responder_id == "coord-a1"
        assert result.request.version == 2
        assert _decisions(db_session, request.request_id) == ["submit", "claim"]

    def test_peer_locked_out(self, engine, submit):
        request = submit()
        engine.claim_request("coord-a1", request.request_id)

        assert engine.claim_request("coord-a2", request.request_id).reason == "Request already claimed by coord-a1"
        assert engine.act("coord-a2", request.request_id, ACTION_ACCEPT).reason == "Request already claimed by coord-a1"
        assert engine.act("coord-a1", request.request_id, ACTION_ACCEPT).allowed

    def test_claimant_renews(self, engine, submit, clock):
        request = submit()
        engine.claim_request("coord-a1", request.request_id)
        clock.advance(hours=1)
        result = engine.claim_request("coord-a1", request.request_id)
        assert result.allowed
        assert as_utc(result.request.claim_expires_at) == clock() + timedelta(hours=engine.settings.claim_ttl_hours)

    def test_requester_cannot_claim(self, engine, submit):
        request = submit()
        result = engine.claim_request("stakeholder-1", request.request_id)
        assert result.reason == "Requesters cannot claim their own request"

    def test_outsider_cannot_claim(self, engine, submit):
        request = submit()
        result = engine.claim_request("coord-b1", request.request_id)
        assert result.reason == "Actor is not an eligible reviewer for this request"

    def test_terminal_request_not_claimable(self, engine, submit):
        request = submit()
        engine.act("stakeholder-1", request.request_id, ACTION_CANCEL)
        assert engine.claim_request("coord-a1", request.request_id).reason == "Request is cancelled; nothing to claim"


class TestOverride:
    @pytest.fixture()
    def peer_review(self, db_session, hooks, clock, directory):
        """Admins reviewed by coordinators under a rule that does not waive the hierarchy."""
        config = ResolverConfig(rules=(
            RoutingRule(
                name="peer-review",
                requester_min=80,
                requester_max=100,
                reviewer_min=60,
                reviewer_max=79,
                match_coverage=True,
            ),
        ))
        return WorkflowEngine.from_session(
            db_session,
            publish_hook=hooks.publish,
            notify_hook=hooks.notify,
            config=config,
            settings=Settings(DATABASE_URL="sqlite+pysqlite:///:memory:"),
            clock=clock,
        )

    def test_manual_assignment_waives_hierarchy(self, peer_review, submit, db_session):
        request = submit(requester_id="opsadmin", wf=peer_review)
        assert request.reviewer_assignment_rule == "peer-review"

        denied = peer_review.act("coord-a2", request.request_id, ACTION_ACCEPT)
        assert denied.reason == "Actor authority 60 is below requester authority 80"

        result = peer_review.override_reviewer("sysadmin", request.request_id, "coord-a2")
        assert result.allowed
        assert result.request.reviewer_id == "coord-a2"
        assert result.request.reviewer_assignment_rule == RULE_MANUAL
        assert result.request.reviewer_auto_assigned is False
        assert result.request.reviewer_overridden_by == "sysadmin"
        assert result.request.reviewer_overridden_at is not None

        accepted = peer_review.act("coord-a2", request.request_id, ACTION_ACCEPT)
        assert accepted.allowed
        assert accepted.request.status == STATE_APPROVED
        assert _decisions(db_session, request.request_id) == ["submit", "override", "claim", "accept"]

    def test_below_operational_admin_denied(self, engine, submit, db_session):
        request = submit()
        result = engine.override_reviewer("coord-a1", request.request_id, "coord-a2")
        assert not result.allowed
        assert result.reason == "Only operational admins and above can override the reviewer assignment"
        assert result.request.version == 1
        assert _decisions(db_session, request.request_id) == ["submit"]

    def test_reviewer_must_be_eligible(self, engine, submit):
        request = submit()
        result = engine.override_reviewer("opsadmin", request.request_id, "coord-b1")
        assert result.reason == "coord-b1 is not an eligible reviewer for this request"

    def test_reviewer_must_hold_a_role(self, engine, submit, db_session):
        request = submit()
        revoke_role(db_session, "coord-a2", "coordinator")
        db_session.commit()
        result = engine.override_reviewer("opsadmin", request.request_id, "coord-a2")
        assert result.reason == "coord-a2 has no active role"

    def test_terminal_request_refused(self, engine, submit):
        request = submit()
        engine.act("stakeholder-1", request.request_id, ACTION_CANCEL)
        result = engine.override_reviewer("sysadmin", request.request_id, "coord-a2")
        assert result.reason == "Request is cancelled; the reviewer cannot be reassigned"

    def test_override_drops_other_claim(self, engine, submit, db_session):
        request = submit()
        engine.claim_request("coord-a1", request.request_id)

        result = engine.override_reviewer("opsadmin", request.request_id, "coord-a2")
        assert result.request.claimed_by_id is None
        entry = get_decision_history(db_session, request.request_id)[-1]
        assert entry.decision_type == "override"
        assert entry.payload == {
            "from_reviewer": "coord-a1",
            "to_reviewer": "coord-a2",
            "released_claim_of": "coord-a1",
        }
        assert engine.act("coord-a2", request.request_id, ACTION_ACCEPT).allowed


class TestLookups:
    def test_unknown_request(self, engine):
        with pytest.raises(RequestNotFoundError, match="not found"):
            engine.act("coord-a1", uuid4(), ACTION_VIEW)

    def test_invalid_action(self, engine, submit):
        request = submit()
        with pytest.raises(RequestInputError, match="Invalid action"):
            engine.act("coord-a1", request.request_id, "approve")

    def test_wrapped_ids_accepted(self, engine, submit):
        request = submit()
        result = engine.act({"_id": "coord-a1"}, {"_id": str(request.request_id)}, ACTION_VIEW)
        assert result.allowed

    def test_terminal_request_readable_through_view_request(self, engine, submit):
        request = submit()
        engine.act("stakeholder-1", request.request_id, ACTION_CANCEL)

        denied = engine.act("stakeholder-1", request.request_id, ACTION_VIEW)
        assert denied.reason == "Request is cancelled; only delete is allowed"
        result = engine.view_request("stakeholder-1", request.request_id)
        assert result.allowed
        assert result.request.status == STATE_CANCELLED
        assert engine.view_request("coord-b1", request.request_id).reason == "Actor cannot view this request"

    def test_list_visible_requests(self, engine, submit):
        mine = submit()
        other = submit(requester_id="stakeholder-2", location_id="M2")

        assert [r.request_id for r in engine.list_visible_requests("stakeholder-1")] == [mine.request_id]
        assert [r.request_id for r in engine.list_visible_requests("coord-m2")] == [other.request_id]
        assert engine.list_visible_requests("coord-b1") == []
        assert {r.request_id for r in engine.list_visible_requests("opsadmin")} == {mine.request_id, other.request_id}
        assert engine.list_visible_requests("opsadmin", status=STATE_APPROVED) == []

    def test_list_invalid_status(self, engine):
        with pytest.raises(RequestInputError, match="Invalid status"):
            engine.list_visible_requests("opsadmin", status="done")
