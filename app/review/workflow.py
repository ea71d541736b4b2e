"""Request review workflow engine.

Entry points for callers (HTTP adapter, scripts, tests):

    submit()                 requester snapshot + payload → pending-review request
    act()                    validate one action, execute it, report the outcome
    get_available_actions()  exactly the actions act() would allow right now
    claim_request()          take a request out of the broadcast set
    release_claim()          hand a claimed request back to the broadcast set
    override_reviewer()      operational admin reassigns the reviewer
    view_request()           read one request; visibility is the only check

Ids are parsed once here.  Input errors raise ``RequestInputError``
before authorization runs; denials come back as ``allowed=False``.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.audit.audit_log import record_decision, record_status_change
from app.audit.events import DECISION_SUBMIT
from app.core.clock import Clock, utcnow
from app.core.constants import (
    ACTION_EDIT,
    ACTION_RESCHEDULE,
    ACTION_VIEW,
    AUTHORITY_OPERATIONAL_ADMIN,
    STATE_PENDING_REVIEW,
    VALID_ACTIONS,
    VALID_STATES,
)
from app.core.errors import ConflictError, RequestInputError, RequestNotFoundError
from app.core.identifiers import EntityRef, parse_request_id
from app.core.settings import Settings, get_settings
from app.db.models import EligibleReviewerEntry, ReviewRequest
from app.db.repositories import ReviewRequestRepository
from app.directory.sql_sources import (
    SqlCoverageSource,
    SqlIdentitySource,
    SqlPermissionSource,
    SqlReviewerDirectory,
)
from app.notification.hooks import LoggingNotifyHook, NullPublishHook
from app.review.authority import primary_role, tier_label
from app.review.contracts import (
    CoverageSource,
    IdentitySource,
    NotifyHook,
    PermissionSource,
    PublishHook,
    ReviewerDirectory,
)
from app.review.coordinators import DEFAULT_RESOLVER_CONFIG, CoordinatorResolver, ResolverConfig
from app.review.entities import SIDE_REVIEWER, ActionResult, ActorSnapshot, Decision
from app.review.executor import TransitionExecutor
from app.review.payloads import (
    LocationTags,
    RequestPayload,
    ensure_future,
    parse_action_payload,
    parse_model,
)
from app.review.states import RequestStateMachine
from app.review.validator import ActionValidator

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Submit requests and move them through review with audit history."""

    def __init__(
        self,
        db_session: Session,
        *,
        identity: IdentitySource,
        permissions: PermissionSource,
        coverage: CoverageSource,
        directory: ReviewerDirectory,
        publish_hook: PublishHook | None = None,
        notify_hook: NotifyHook | None = None,
        config: ResolverConfig = DEFAULT_RESOLVER_CONFIG,
        settings: Settings | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.db = db_session
        self.settings = settings or get_settings()
        self.clock = clock
        self.identity = identity
        self.requests = ReviewRequestRepository(db_session)
        self.state_machine = RequestStateMachine(self.settings.require_confirmation_step)
        self.resolver = CoordinatorResolver(directory, coverage, config)
        self.validator = ActionValidator(self.state_machine, self.resolver, permissions, clock)
        self.executor = TransitionExecutor(
            db_session,
            self.state_machine,
            publish_hook or NullPublishHook(),
            notify_hook or LoggingNotifyHook(),
            claim_ttl=timedelta(hours=self.settings.claim_ttl_hours),
            clock=clock,
        )

    @classmethod
    def from_session(
        cls,
        db_session: Session,
        *,
        publish_hook: PublishHook | None = None,
        notify_hook: NotifyHook | None = None,
        config: ResolverConfig = DEFAULT_RESOLVER_CONFIG,
        settings: Settings | None = None,
        clock: Clock = utcnow,
    ) -> WorkflowEngine:
        """Engine wired to the SQL directory tables in *db_session*."""
        coverage = SqlCoverageSource(db_session)
        return cls(
            db_session,
            identity=SqlIdentitySource(db_session),
            permissions=SqlPermissionSource(db_session, coverage),
            coverage=coverage,
            directory=SqlReviewerDirectory(db_session),
            publish_hook=publish_hook,
            notify_hook=notify_hook,
            config=config,
            settings=settings,
            clock=clock,
        )

    # -- actors -------------------------------------------------------------

    def capture_actor(self, user_id: Any) -> ActorSnapshot:
        """Snapshot *user_id* with live authority and primary role.

        Users without a current grant are labelled by their authority tier.
        """
        user = EntityRef.parse(user_id)
        now = self.clock()
        grants = self.identity.get_active_role_grants(user, now)
        authority = self.identity.get_authority(user, now)
        return ActorSnapshot(
            user=user,
            role=primary_role(grants, now) or tier_label(authority),
            authority=authority,
        )

    # -- submit -------------------------------------------------------------

    def submit(
        self,
        requester: ActorSnapshot,
        payload: RequestPayload | Mapping[str, Any],
        location: LocationTags | Mapping[str, Any],
    ) -> ReviewRequest:
        """Create a ``pending-review`` request and resolve its reviewers once."""
        body = parse_model(RequestPayload, payload)
        tags = parse_model(LocationTags, location)
        now = self.clock()
        ensure_future(body.scheduled_date, now, "scheduled_date")

        resolution = self.resolver.resolve(requester, tags.location_id, tags.organization_type, now)
        primary = resolution.primary

        request = self.requests.create(
            request_type=tags.request_type,
            title=body.title,
            details=body.to_details() or None,
            scheduled_date=body.scheduled_date,
            start_time=body.start_time,
            end_time=body.end_time,
            location_id=tags.location_id,
            organization_type=tags.organization_type,
            status=STATE_PENDING_REVIEW,
            requester_id=requester.user.value,
            requester_role=requester.role,
            requester_authority=requester.authority,
            reviewer_id=primary.user.value if primary else None,
            reviewer_role=primary.role if primary else None,
            reviewer_assignment_rule=resolution.rule,
            reviewer_auto_assigned=True,
            reviewer_assigned_at=now if primary else None,
            active_responder_side=SIDE_REVIEWER,
            active_responder_id=primary.user.value if len(resolution.eligible) == 1 else None,
        )
        for position, reviewer in enumerate(resolution.eligible):
            self.db.add(
                EligibleReviewerEntry(
                    request_id=request.request_id,
                    user_id=reviewer.user.value,
                    role=reviewer.role,
                    authority=reviewer.authority,
                    organization_type=reviewer.organization_type,
                    position=position,
                    discovered_at=reviewer.discovered_at,
                )
            )
        record_status_change(self.db, request.request_id, STATE_PENDING_REVIEW, requester, now)
        record_decision(
            self.db, request.request_id, DECISION_SUBMIT, requester, now,
            payload={
                "assignment_rule": resolution.rule,
                "eligible_reviewers": [r.user.value for r in resolution.eligible],
            },
        )
        self.db.commit()

        logger.info(
            "Submitted: request=%s requester=%s rule=%s eligible=%d",
            request.request_id, requester.user, resolution.rule, len(resolution.eligible),
        )
        request = self.executor.refresh(request)
        self.executor.notify(request, DECISION_SUBMIT, requester, [])
        return request

    # -- act ----------------------------------------------------------------

    def act(
        self,
        actor_id: Any,
        request_id: Any,
        action: str,
        payload: BaseModel | Mapping[str, Any] | None = None,
    ) -> ActionResult:
        """Validate and apply *action*.

        A lost conditional write is retried after re-reading and
        re-validating, up to ``CONFLICT_RETRIES`` times; after that the
        ``ConflictError`` propagates.
        """
        actor_ref = EntityRef.parse(actor_id)
        rid = parse_request_id(request_id)
        if action not in VALID_ACTIONS:
            raise RequestInputError(
                f"Invalid action {action!r}; must be one of {sorted(VALID_ACTIONS)}"
            )
        body = None if action == ACTION_VIEW else parse_action_payload(action, payload)
        if action == ACTION_RESCHEDULE:
            ensure_future(body.proposed_date, self.clock(), "proposed_date")
        elif action == ACTION_EDIT and body.scheduled_date is not None:
            ensure_future(body.scheduled_date, self.clock(), "scheduled_date")

        attempt = 0
        while True:
            request = self.get_request(rid)
            actor = self.capture_actor(actor_ref)
            decision = self.validator.validate(actor, action, request)
            if not decision.allowed:
                logger.info(
                    "Denied: request=%s action=%s actor=%s reason=%s",
                    rid, action, actor_ref, decision.reason,
                )
                return ActionResult(request=request, allowed=False, reason=decision.reason)
            if action == ACTION_VIEW:
                return ActionResult(request=request, allowed=True, reason=decision.reason)
            try:
                return self.executor.execute(request, actor, action, decision, body)
            except ConflictError:
                self.db.rollback()
                if attempt >= self.settings.conflict_retries:
                    raise
                attempt += 1
                logger.warning("Retrying request=%s action=%s after conflict (attempt %d)", rid, action, attempt)

    def get_available_actions(self, actor_id: Any, request_id: Any) -> list[str]:
        request = self.get_request(request_id)
        actor = self.capture_actor(actor_id)
        return self.validator.available_actions(actor, request)

    def claim_request(self, actor_id: Any, request_id: Any) -> ActionResult:
        """Claim *request_id* for *actor_id* without moving it."""
        request = self.get_request(request_id)
        actor = self.capture_actor(actor_id)
        decision = self.resolver.can_claim(actor, request, self.clock())
        if not decision.allowed:
            logger.info("Claim denied: request=%s actor=%s reason=%s", request.request_id, actor.user, decision.reason)
            return ActionResult(request=request, allowed=False, reason=decision.reason)
        try:
            return self.executor.claim(request, actor, decision)
        except ConflictError:
            self.db.rollback()
            raise

    def release_claim(self, actor_id: Any, request_id: Any) -> ActionResult:
        request = self.get_request(request_id)
        actor = self.capture_actor(actor_id)
        decision = self.resolver.can_release(actor, request, self.clock())
        if not decision.allowed:
            logger.info("Release denied: request=%s actor=%s reason=%s", request.request_id, actor.user, decision.reason)
            return ActionResult(request=request, allowed=False, reason=decision.reason)
        try:
            return self.executor.release(request, actor, decision)
        except ConflictError:
            self.db.rollback()
            raise

    def override_reviewer(self, admin_id: Any, request_id: Any, reviewer_id: Any) -> ActionResult:
        """Hand the assignment to another eligible reviewer under the ``manual`` rule.

        The manual rule lets the new reviewer act on a requester who
        outranks them.
        """
        reviewer = EntityRef.parse(reviewer_id).value
        request = self.get_request(request_id)
        admin = self.capture_actor(admin_id)
        decision = self.resolver.can_override(admin, request, reviewer)
        if decision.allowed and not self.identity.get_active_role_grants(EntityRef(reviewer), self.clock()):
            decision = Decision.deny(f"{reviewer} has no active role")
        if not decision.allowed:
            logger.info(
                "Override denied: request=%s admin=%s reviewer=%s reason=%s",
                request.request_id, admin.user, reviewer, decision.reason,
            )
            return ActionResult(request=request, allowed=False, reason=decision.reason)
        try:
            return self.executor.override_reviewer(request, admin, reviewer, decision)
        except ConflictError:
            self.db.rollback()
            raise

    # -- reads --------------------------------------------------------------

    def view_request(self, actor_id: Any, request_id: Any) -> ActionResult:
        """Read access in any state, terminal ones included."""
        request = self.get_request(request_id)
        actor = self.capture_actor(actor_id)
        if not self.resolver.can_view(actor, request):
            return ActionResult(request=request, allowed=False, reason="Actor cannot view this request")
        return ActionResult(request=request, allowed=True, reason="Visible")

    def get_request(self, request_id: Any) -> ReviewRequest:
        rid = parse_request_id(request_id)
        request = self.requests.reload(rid)
        if request is None:
            raise RequestNotFoundError(f"Request {rid} not found")
        return request

    def list_visible_requests(self, actor_id: Any, status: str | None = None) -> list[ReviewRequest]:
        """Requests *actor_id* may view, oldest first."""
        if status is not None and status not in VALID_STATES:
            raise RequestInputError(
                f"Invalid status {status!r}; must be one of {sorted(VALID_STATES)}"
            )
        actor = self.capture_actor(actor_id)
        if actor.authority >= AUTHORITY_OPERATIONAL_ADMIN:
            return self.requests.list_all(status)
        candidates = self.requests.list_involving(actor.user.value, status)
        return [r for r in candidates if self.resolver.can_view(actor, r)]
