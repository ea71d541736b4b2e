"""FastAPI dependency injection: database sessions and the workflow engine."""
from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from app.db.session import get_session_factory
from app.review.workflow import WorkflowEngine


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    db = get_session_factory()()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_workflow_engine(db: Session = Depends(get_db)) -> WorkflowEngine:
    """Return a WorkflowEngine wired to the SQL directory in the current session."""
    return WorkflowEngine.from_session(db)
