#!/usr/bin/env python3
"""Seed a demo directory: one district, two municipalities, and a user per tier.

    district D1
      ├── municipality M1
      └── municipality M2

coord-a1, coord-a2 cover M1 with organization "A"; coord-b1 covers M1
with organization "B"; coord-d covers the whole district with "A".

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py
"""
from __future__ import annotations

import sys

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from app.core.settings import get_settings
from app.db.base import Base
from app.directory.provisioning import add_location, add_user, ensure_roles


def seed(session: Session) -> None:
    """Insert demo locations, roles and users."""
    ensure_roles(session)

    add_location(session, "D1", "North District", "district")
    add_location(session, "M1", "Riverside", "municipality", parent_id="D1")
    add_location(session, "M2", "Hillcrest", "municipality", parent_id="D1")

    add_user(session, "sysadmin", "system-admin")
    add_user(session, "opsadmin", "operational-admin")
    add_user(session, "coord-a1", "coordinator", organization_type="A", coverage=["M1"])
    add_user(session, "coord-a2", "coordinator", organization_type="A", coverage=["M1"])
    add_user(session, "coord-b1", "coordinator", organization_type="B", coverage=["M1"])
    add_user(session, "coord-d", "coordinator", organization_type="A", coverage=["D1"])
    add_user(session, "stakeholder-1", "stakeholder", organization_type="A")
    add_user(session, "basic-1", "basic-user")

    session.commit()
    print("Seeded 3 locations, 5 roles, 8 users.")


def main() -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        seed(session)


if __name__ == "__main__":
    main()
