"""Default publish and notify hooks.

Safety: request titles, notes and contact details are never logged;
only the request id, action, actor and status.
"""
from __future__ import annotations

import logging

from app.review.entities import ActorSnapshot

logger = logging.getLogger(__name__)


class LoggingNotifyHook:
    """Log each transition instead of delivering a notification."""

    def on_transition(self, request, action: str, actor: ActorSnapshot) -> None:
        logger.info(
            "Notify: request=%s action=%s actor=%s status=%s",
            request.request_id, action, actor.user, request.status,
        )


class NullPublishHook:
    """Publishes nothing; approved requests get no derived item reference."""

    def on_approved(self, request) -> str | None:
        logger.debug("No publisher configured for request=%s", request.request_id)
        return None
