"""Scheduled sweeps.

- ``expire_stale_reschedules``: reschedule proposals left unanswered for
  ``RESCHEDULE_EXPIRY_HOURS`` move to ``expired-review``.
- ``complete_past_requests``: approved requests whose scheduled date has
  passed move to ``completed``.

Both write through the executor's conditional update, so a row that a
human changed after the sweep read it is skipped, not overwritten.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from app.audit.events import DECISION_COMPLETE, DECISION_EXPIRE
from app.core.clock import as_utc
from app.core.constants import (
    STATE_APPROVED,
    STATE_COMPLETED,
    STATE_EXPIRED_REVIEW,
    STATE_REVIEW_RESCHEDULED,
)
from app.review.entities import ActorSnapshot, RescheduleProposal
from app.review.workflow import WorkflowEngine

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    examined: int = 0
    transitioned: int = 0
    skipped: int = 0


def expire_stale_reschedules(engine: WorkflowEngine, now: datetime | None = None) -> SweepReport:
    now = now or engine.clock()
    cutoff = now - timedelta(hours=engine.settings.reschedule_expiry_hours)
    report = SweepReport()
    system = ActorSnapshot.system()

    for request in engine.requests.list_by_status(STATE_REVIEW_RESCHEDULED):
        report.examined += 1
        proposal = RescheduleProposal.from_json(request.reschedule_proposal)
        proposed_at = proposal.proposed_at if proposal else as_utc(request.last_action_at)
        if proposed_at is None or proposed_at > cutoff:
            continue
        if engine.executor.apply_system_transition(
            request, STATE_EXPIRED_REVIEW, DECISION_EXPIRE, system,
            note="Reschedule proposal expired without a response",
        ):
            report.transitioned += 1
        else:
            report.skipped += 1

    logger.info(
        "Reschedule expiry sweep: examined=%d expired=%d skipped=%d",
        report.examined, report.transitioned, report.skipped,
    )
    return report


def complete_past_requests(engine: WorkflowEngine, now: datetime | None = None) -> SweepReport:
    now = now or engine.clock()
    report = SweepReport()
    system = ActorSnapshot.system()

    for request in engine.requests.list_by_status(STATE_APPROVED):
        report.examined += 1
        if as_utc(request.scheduled_date) >= now:
            continue
        if engine.executor.apply_system_transition(
            request, STATE_COMPLETED, DECISION_COMPLETE, system,
            note="Scheduled date has passed",
        ):
            report.transitioned += 1
        else:
            report.skipped += 1

    logger.info(
        "Completion sweep: examined=%d completed=%d skipped=%d",
        report.examined, report.transitioned, report.skipped,
    )
    return report
