"""Append-only request trail.

``record_status_change()`` and ``record_decision()`` persist
``StatusHistoryEntry`` / ``DecisionEntry`` rows.  Rows are never updated
or deleted (the ORM rejects both).

Safety: notes and payloads are never logged; only the request id,
type/status and actor.
"""
from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.audit.events import VALID_DECISION_TYPES
from app.core.constants import VALID_STATES
from app.db.models import DecisionEntry, StatusHistoryEntry
from app.review.entities import ActorSnapshot

logger = logging.getLogger(__name__)


def record_status_change(
    db_session: Session,
    request_id: UUID,
    status: str,
    actor: ActorSnapshot,
    changed_at: datetime,
    note: str | None = None,
) -> StatusHistoryEntry:
    """Append a status entry.  Flushes but does **not** commit."""
    if status not in VALID_STATES:
        raise ValueError(
            f"Invalid status {status!r}; must be one of {sorted(VALID_STATES)}"
        )

    entry = StatusHistoryEntry(
        request_id=request_id,
        status=status,
        actor_id=actor.user.value,
        actor_role=actor.role,
        actor_authority=actor.authority,
        note=note,
        changed_at=changed_at,
        immutable=True,
    )
    db_session.add(entry)
    db_session.flush()

    logger.debug("Status recorded: request=%s status=%s actor=%s", request_id, status, actor.user)
    return entry


def record_decision(
    db_session: Session,
    request_id: UUID,
    decision_type: str,
    actor: ActorSnapshot,
    decided_at: datetime,
    payload: dict | None = None,
) -> DecisionEntry:
    """Append a decision entry.  Flushes but does **not** commit."""
    if decision_type not in VALID_DECISION_TYPES:
        raise ValueError(
            f"Invalid decision_type {decision_type!r}; "
            f"must be one of {sorted(VALID_DECISION_TYPES)}"
        )

    entry = DecisionEntry(
        request_id=request_id,
        decision_type=decision_type,
        actor_id=actor.user.value,
        actor_role=actor.role,
        actor_authority=actor.authority,
        payload=payload,
        decided_at=decided_at,
        immutable=True,
    )
    db_session.add(entry)
    db_session.flush()

    logger.debug("Decision recorded: request=%s type=%s actor=%s", request_id, decision_type, actor.user)
    return entry


def get_status_history(db_session: Session, request_id: UUID) -> list[StatusHistoryEntry]:
    """Return status entries for *request_id* in append order."""
    stmt = (
        select(StatusHistoryEntry)
        .where(StatusHistoryEntry.request_id == request_id)
        .order_by(StatusHistoryEntry.id.asc())
    )
    return list(db_session.execute(stmt).scalars().all())


def get_decision_history(db_session: Session, request_id: UUID) -> list[DecisionEntry]:
    """Return decision entries for *request_id* in append order."""
    stmt = (
        select(DecisionEntry)
        .where(DecisionEntry.request_id == request_id)
        .order_by(DecisionEntry.id.asc())
    )
    return list(db_session.execute(stmt).scalars().all())
