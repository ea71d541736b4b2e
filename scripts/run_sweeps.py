#!/usr/bin/env python3
"""Run the scheduled sweeps once; meant for cron.

Moves unanswered reschedule proposals to ``expired-review`` and approved
requests whose date has passed to ``completed``.

Usage:
    python scripts/run_sweeps.py
"""
from __future__ import annotations

import logging
import sys

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from app.core.logging import setup_logging
from app.db.session import session_scope
from app.review.sweeper import complete_past_requests, expire_stale_reschedules
from app.review.workflow import WorkflowEngine

logger = logging.getLogger("scripts.run_sweeps")


def main() -> int:
    setup_logging()
    with session_scope() as session:
        engine = WorkflowEngine.from_session(session)
        expired = expire_stale_reschedules(engine)
        completed = complete_past_requests(engine)
    logger.info("Sweeps done: expired=%d completed=%d", expired.transitioned, completed.transitioned)
    return 0


if __name__ == "__main__":
    sys.exit(main())
