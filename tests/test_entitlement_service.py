"""Unit tests for Pro entitlement propagation."""

from datetime import datetime, timedelta, timezone

import pytest

from krewup.domain.errors import PersistenceError
from krewup.domain.models import EntitlementTier, UserRole
from krewup.services.entitlement_service import EntitlementService


@pytest.fixture
def service(persistence):
    return EntitlementService(persistence, persistence)


class TestGrantPro:
    def test_worker_gets_pro_and_open_ended_boost(self, service, persistence):
        persistence.create_user("W1", "w1@example.com", UserRole.WORKER)

        assert service.grant_pro("W1") is True

        assert persistence.get_user("W1").subscription_status is EntitlementTier.PRO
        profile = persistence.get_worker_profile("W1")
        assert profile.is_profile_boosted is True
        assert profile.boost_expires_at is None

    def test_employer_gets_pro_without_boost(self, service, persistence):
        persistence.create_user("E1", "e1@example.com", UserRole.EMPLOYER)

        assert service.grant_pro("E1") is True

        assert persistence.get_user("E1").subscription_status is EntitlementTier.PRO
        assert persistence.get_worker_profile("E1") is None

    def test_missing_user_is_skipped(self, service):
        assert service.grant_pro("U404") is False

    def test_write_failure_is_contained(self, service, persistence, monkeypatch):
        persistence.create_user("W1", "w1@example.com", UserRole.WORKER)

        def fail(*_args, **_kwargs):
            raise PersistenceError("disk I/O error")

        monkeypatch.setattr(persistence, "set_worker_boost", fail)

        assert service.grant_pro("W1") is False
        # The tier update was rolled back together with the failed boost.
        assert persistence.get_user("W1").subscription_status is EntitlementTier.FREE


class TestRevokePro:
    def test_worker_returns_to_free_and_loses_boost(self, service, persistence):
        persistence.create_user("W1", "w1@example.com", UserRole.WORKER)
        service.grant_pro("W1")

        assert service.revoke_pro("W1") is True

        assert persistence.get_user("W1").subscription_status is EntitlementTier.FREE
        assert persistence.get_worker_profile("W1").is_profile_boosted is False


class TestLifetimePro:
    """Lifetime Pro users never see their flags change."""

    def test_grant_and_revoke_leave_lifetime_user_alone(self, service, persistence):
        persistence.create_user("L1", "l1@example.com", UserRole.WORKER, is_lifetime_pro=True)

        assert service.grant_pro("L1") is False
        assert persistence.get_worker_profile("L1").is_profile_boosted is False

        assert service.revoke_pro("L1") is False
        assert persistence.get_user("L1").subscription_status is EntitlementTier.PRO

    def test_lifetime_grant_outlives_cancellation(self, service, persistence):
        persistence.create_user("W1", "w1@example.com", UserRole.WORKER)
        service.grant_pro("W1")
        persistence.set_lifetime_pro("W1")

        assert service.revoke_pro("W1") is False
        assert persistence.get_user("W1").subscription_status is EntitlementTier.PRO
        assert persistence.get_worker_profile("W1").is_profile_boosted is True


class TestResetExpiredBoosts:
    def test_returns_reset_worker_ids(self, service, persistence):
        now = datetime(2025, 3, 1, tzinfo=timezone.utc)
        persistence.create_user("W1", "w1@example.com", UserRole.WORKER)
        persistence.set_worker_boost("W1", True, now - timedelta(minutes=5))

        assert service.reset_expired_boosts(now) == ["W1"]
        assert service.reset_expired_boosts(now) == []
