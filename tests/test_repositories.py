"""Tests for app/db/repositories.py."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from app.core.constants import STATE_APPROVED, STATE_CANCELLED, STATE_PENDING_REVIEW
from app.db.models import EligibleReviewerEntry
from app.db.repositories import LocationRepository, ReviewRequestRepository, UserRepository

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _make_request(repo: ReviewRequestRepository, **overrides):
    values = dict(
        title="Blood drive",
        scheduled_date=NOW + timedelta(days=7),
        location_id="M1",
        status=STATE_PENDING_REVIEW,
        requester_id="stakeholder-1",
        requester_authority=30,
    )
    values.update(overrides)
    request = repo.create(**values)
    repo.db.commit()
    return request


@pytest.fixture()
def repo(db_session):
    return ReviewRequestRepository(db_session)


# ===========================================================================
# conditional_update
# ===========================================================================

class TestConditionalUpdate:
    def test_matching_row_updated_and_version_bumped(self, repo):
        request = _make_request(repo)
        ok = repo.conditional_update(
            request.request_id, expected_version=1, expected_status=STATE_PENDING_REVIEW,
            claimant_id=None, now=NOW, values={"status": STATE_APPROVED},
        )
        repo.db.commit()

        fresh = repo.reload(request.request_id)
        assert ok
        assert (fresh.status, fresh.version) == (STATE_APPROVED, 2)

    def test_stale_version_misses(self, repo):
        request = _make_request(repo)
        ok = repo.conditional_update(
            request.request_id, expected_version=7, expected_status=STATE_PENDING_REVIEW,
            claimant_id=None, now=NOW, values={"status": STATE_APPROVED},
        )
        assert not ok

    def test_moved_status_misses(self, repo):
        request = _make_request(repo, status=STATE_CANCELLED)
        ok = repo.conditional_update(
            request.request_id, expected_version=1, expected_status=STATE_PENDING_REVIEW,
            claimant_id=None, now=NOW, values={"status": STATE_APPROVED},
        )
        assert not ok

    def test_claim_guard(self, repo):
        request = _make_request(
            repo, claimed_by_id="coord-a1", claim_expires_at=NOW + timedelta(hours=1),
        )
        kwargs = dict(
            expected_version=1, expected_status=STATE_PENDING_REVIEW, now=NOW,
            values={"last_action": "accept"},
        )
        assert not repo.conditional_update(request.request_id, claimant_id="coord-a2", **kwargs)
        assert repo.conditional_update(request.request_id, claimant_id="coord-a1", **kwargs)

    def test_expired_claim_can_be_taken(self, repo):
        request = _make_request(
            repo, claimed_by_id="coord-a1", claim_expires_at=NOW - timedelta(hours=1),
        )
        assert repo.conditional_update(
            request.request_id, expected_version=1, expected_status=STATE_PENDING_REVIEW,
            claimant_id="coord-a2", now=NOW, values={"claimed_by_id": "coord-a2"},
        )


# ===========================================================================
# Queries
# ===========================================================================

class TestQueries:
    def test_list_involving(self, repo):
        own = _make_request(repo)
        reviewed = _make_request(repo, requester_id="stakeholder-2", reviewer_id="coord-a1")
        eligible = _make_request(repo, requester_id="stakeholder-2")
        repo.db.add(EligibleReviewerEntry(
            request_id=eligible.request_id, user_id="coord-a1", authority=60, position=0, discovered_at=NOW,
        ))
        repo.db.commit()

        assert [r.request_id for r in repo.list_involving("stakeholder-1")] == [own.request_id]
        assert {r.request_id for r in repo.list_involving("coord-a1")} == {
            reviewed.request_id, eligible.request_id,
        }

    def test_list_by_status_and_all(self, repo):
        _make_request(repo)
        _make_request(repo, status=STATE_CANCELLED)
        assert len(repo.list_by_status(STATE_CANCELLED)) == 1
        assert len(repo.list_all()) == 2
        assert len(repo.list_all(STATE_PENDING_REVIEW)) == 1

    def test_derived_ref_does_not_bump_version(self, repo):
        request = _make_request(repo)
        repo.set_derived_item_ref(request.request_id, "event-1")
        repo.db.commit()
        fresh = repo.reload(request.request_id)
        assert (fresh.derived_item_ref, fresh.version) == ("event-1", 1)


class TestDirectoryRepositories:
    def test_get_and_list(self, directory):
        users = UserRepository(directory)
        assert users.get("coord-a1").organization_type == "A"
        assert users.get("nobody") is None
        assert len(LocationRepository(directory).list()) == 5
