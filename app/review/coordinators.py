"""Coordinator resolver: eligible reviewer set, claims and visibility.

Routing is driven by a ``ResolverConfig`` handed in at construction.
Each ``RoutingRule`` covers a band of requester authority and says which
reviewer band qualifies and whether organization and coverage must match:

    requester 30-59  → reviewers 60-79, org + coverage   stakeholder-to-coordinator
    requester 60-79  → reviewers 80+                     coordinator-to-admin
    requester 80+    → reviewers 60-79, coverage (+ org
                       when the request carries one)     admin-to-coordinator
    requester  <30   → reviewers 60+, coverage           auto-assigned

When nothing qualifies the request falls back to the ceiling tier.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from app.core.clock import as_utc
from app.core.constants import (
    AUTHORITY_BASIC_USER,
    AUTHORITY_CEILING,
    AUTHORITY_COORDINATOR,
    AUTHORITY_OPERATIONAL_ADMIN,
    AUTHORITY_STAKEHOLDER,
    RULE_ADMIN_TO_COORDINATOR,
    RULE_AUTO_ASSIGNED,
    RULE_COORDINATOR_TO_ADMIN,
    RULE_FALLBACK,
    RULE_STAKEHOLDER_TO_COORDINATOR,
)
from app.review.authority import is_ceiling
from app.review.contracts import CoverageSource, ReviewerDirectory
from app.review.entities import ActorSnapshot, Decision, EligibleReviewer, ReviewerCandidate
from app.review.states import TERMINAL_STATES

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RoutingRule:
    name: str
    requester_min: int
    requester_max: int
    reviewer_min: int
    reviewer_max: int | None
    match_organization: bool = False
    match_coverage: bool = False
    # Only enforce the organization match when the request carries a tag.
    organization_optional: bool = False

    def applies_to(self, authority: int) -> bool:
        return self.requester_min <= authority <= self.requester_max


@dataclass(frozen=True, slots=True)
class ResolverConfig:
    rules: tuple[RoutingRule, ...]
    fallback_min_authority: int = AUTHORITY_CEILING

    def rule_for(self, authority: int) -> RoutingRule | None:
        for rule in self.rules:
            if rule.applies_to(authority):
                return rule
        return None


DEFAULT_RESOLVER_CONFIG = ResolverConfig(
    rules=(
        RoutingRule(
            name=RULE_STAKEHOLDER_TO_COORDINATOR,
            requester_min=AUTHORITY_STAKEHOLDER,
            requester_max=AUTHORITY_COORDINATOR - 1,
            reviewer_min=AUTHORITY_COORDINATOR,
            reviewer_max=AUTHORITY_OPERATIONAL_ADMIN - 1,
            match_organization=True,
            match_coverage=True,
        ),
        RoutingRule(
            name=RULE_COORDINATOR_TO_ADMIN,
            requester_min=AUTHORITY_COORDINATOR,
            requester_max=AUTHORITY_OPERATIONAL_ADMIN - 1,
            reviewer_min=AUTHORITY_OPERATIONAL_ADMIN,
            reviewer_max=None,
        ),
        RoutingRule(
            name=RULE_ADMIN_TO_COORDINATOR,
            requester_min=AUTHORITY_OPERATIONAL_ADMIN,
            requester_max=AUTHORITY_CEILING,
            reviewer_min=AUTHORITY_COORDINATOR,
            reviewer_max=AUTHORITY_OPERATIONAL_ADMIN - 1,
            match_organization=True,
            match_coverage=True,
            organization_optional=True,
        ),
        RoutingRule(
            name=RULE_AUTO_ASSIGNED,
            requester_min=0,
            requester_max=AUTHORITY_STAKEHOLDER - 1,
            reviewer_min=AUTHORITY_COORDINATOR,
            reviewer_max=None,
            match_coverage=True,
        ),
    ),
)


@dataclass(frozen=True, slots=True)
class Resolution:
    rule: str
    eligible: tuple[EligibleReviewer, ...] = field(default_factory=tuple)

    @property
    def primary(self) -> EligibleReviewer | None:
        return self.eligible[0] if self.eligible else None


def _same_organization(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.strip().casefold() == right.strip().casefold()


class CoordinatorResolver:
    """Compute eligible reviewers once at submission; answer claim questions after."""

    def __init__(
        self,
        directory: ReviewerDirectory,
        coverage: CoverageSource,
        config: ResolverConfig = DEFAULT_RESOLVER_CONFIG,
    ) -> None:
        self.directory = directory
        self.coverage = coverage
        self.config = config

    # -- resolution ---------------------------------------------------------

    def resolve(
        self,
        requester: ActorSnapshot,
        location_id: str,
        organization_type: str | None,
        now: datetime,
    ) -> Resolution:
        """Return the eligible reviewer set, lower authority first."""
        rule = self.config.rule_for(requester.authority)
        if rule is not None:
            candidates = self.directory.list_candidates(rule.reviewer_min, rule.reviewer_max, now)
            matched = [
                c for c in candidates
                if c.user != requester.user and self._matches(rule, c, location_id, organization_type)
            ]
            if matched:
                return Resolution(rule=rule.name, eligible=self._tag(matched, now))
            logger.info(
                "No reviewer matched rule %s for location %s; falling back",
                rule.name, location_id,
            )

        fallback = [
            c for c in self.directory.list_candidates(self.config.fallback_min_authority, None, now)
            if c.user != requester.user
        ]
        if not fallback:
            logger.warning("No fallback reviewer available for requester %s", requester.user)
        return Resolution(rule=RULE_FALLBACK, eligible=self._tag(fallback, now))

    def _matches(
        self,
        rule: RoutingRule,
        candidate: ReviewerCandidate,
        location_id: str,
        organization_type: str | None,
    ) -> bool:
        if rule.match_organization:
            if organization_type or not rule.organization_optional:
                if not _same_organization(candidate.organization_type, organization_type):
                    return False
        if rule.match_coverage:
            return any(
                self.coverage.is_location_covered(location_id, covered)
                for covered in candidate.coverage_location_ids
            )
        return True

    @staticmethod
    def _tag(candidates: list[ReviewerCandidate], now: datetime) -> tuple[EligibleReviewer, ...]:
        ordered = sorted(candidates, key=lambda c: (c.authority, c.user.value))
        return tuple(
            EligibleReviewer(
                user=c.user,
                role=c.role,
                authority=c.authority,
                organization_type=c.organization_type,
                discovered_at=now,
            )
            for c in ordered
        )

    # -- claims -------------------------------------------------------------

    @staticmethod
    def claim_holder(request, now: datetime) -> str | None:
        """Id of the current claimant, or ``None`` if unclaimed or expired."""
        if request.claimed_by_id is None:
            return None
        expires_at = as_utc(request.claim_expires_at)
        if expires_at is not None and expires_at <= now:
            return None
        return request.claimed_by_id

    @staticmethod
    def top_eligible_authority(request) -> int:
        return max((e.authority for e in request.eligible_reviewers), default=AUTHORITY_BASIC_USER)

    def outranks_claim(self, actor: ActorSnapshot, request) -> bool:
        """Actors above the top eligible tier act regardless of who holds the claim."""
        return actor.authority > self.top_eligible_authority(request)

    @staticmethod
    def is_eligible(user_id: str, request) -> bool:
        return any(e.user_id == user_id for e in request.eligible_reviewers)

    def is_participant(self, user_id: str, request) -> bool:
        """Eligible, assigned, or the actor who took over the assignment."""
        return (
            user_id == request.reviewer_id
            or user_id == request.reviewer_overridden_by
            or self.is_eligible(user_id, request)
        )

    def can_release(self, actor: ActorSnapshot, request, now: datetime) -> Decision:
        holder = self.claim_holder(request, now)
        if request.status in TERMINAL_STATES:
            return Decision.deny(f"Request is {request.status}; nothing to release")
        if holder is None:
            return Decision.deny("Request is not claimed")
        if holder != actor.user.value and not is_ceiling(actor.authority):
            return Decision.deny(f"Only the claimant {holder} can release this request")
        return Decision(allowed=True, reason="Claim released")

    def can_claim(self, actor: ActorSnapshot, request, now: datetime) -> Decision:
        """An eligible or assigned reviewer may claim a request nobody else holds.

        Claiming again while holding the claim renews it.
        """
        user_id = actor.user.value
        holder = self.claim_holder(request, now)
        if request.status in TERMINAL_STATES:
            return Decision.deny(f"Request is {request.status}; nothing to claim")
        if holder is not None and holder != user_id:
            return Decision.deny(f"Request already claimed by {holder}")
        if user_id == request.requester_id:
            return Decision.deny("Requesters cannot claim their own request")
        if not (self.is_eligible(user_id, request) or user_id == request.reviewer_id):
            return Decision.deny("Actor is not an eligible reviewer for this request")
        return Decision(allowed=True, reason="Claimed", claims=True)

    def can_override(self, admin: ActorSnapshot, request, reviewer_id: str) -> Decision:
        """Operational admins and above may hand the assignment to another eligible reviewer."""
        if admin.authority < AUTHORITY_OPERATIONAL_ADMIN:
            return Decision.deny("Only operational admins and above can override the reviewer assignment")
        if request.status in TERMINAL_STATES:
            return Decision.deny(f"Request is {request.status}; the reviewer cannot be reassigned")
        if not self.is_eligible(reviewer_id, request):
            return Decision.deny(f"{reviewer_id} is not an eligible reviewer for this request")
        return Decision(allowed=True, reason=f"Reviewer assignment overridden to {reviewer_id}")

    # -- visibility ---------------------------------------------------------

    def can_view(self, actor: ActorSnapshot, request) -> bool:
        user_id = actor.user.value
        if actor.authority >= AUTHORITY_OPERATIONAL_ADMIN:
            return True
        return (
            user_id == request.requester_id
            or user_id == request.claimed_by_id
            or self.is_participant(user_id, request)
        )
