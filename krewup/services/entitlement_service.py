"""Keeps the denormalised Pro flags on users and workers in step with billing."""

import logging
from datetime import datetime
from typing import List, Optional

from ..core.error_reporting import report_exception
from ..domain.errors import BillingError
from ..domain.models import EntitlementTier, User, UserRole
from ..domain.ports.persistence import TransactionManager, UserRepository

logger = logging.getLogger(__name__)


class EntitlementService:
    """
    Entitlement propagator.

    Lifetime Pro users are never touched by subscription events. Only an
    explicit cancellation revokes access; ``past_due`` is a grace period.
    Writes are fail-soft: the subscription row is the source of truth, so a
    failed flag update is logged and reported instead of failing the event.
    """

    def __init__(self, users: UserRepository, transactions: TransactionManager) -> None:
        self._users = users
        self._transactions = transactions

    def grant_pro(self, user_id: str) -> bool:
        """Elevate to Pro and start a continuous boost for workers. Returns True if applied."""
        user = self._load_mutable_user(user_id, "grant")
        if user is None:
            return False
        try:
            with self._transactions.transaction():
                self._users.set_subscription_status(user_id, EntitlementTier.PRO)
                if user.role is UserRole.WORKER:
                    # Lasts as long as the subscription stays active.
                    self._users.set_worker_boost(user_id, True, None)
        except BillingError as exc:
            logger.exception("Failed to grant Pro entitlement to user %s", user_id)
            report_exception(exc, user_id=user_id, operation="grant_pro")
            return False
        logger.info("Granted Pro entitlement to user %s", user_id)
        return True

    def revoke_pro(self, user_id: str) -> bool:
        """Return a user to the free tier and clear any worker boost. Returns True if applied."""
        user = self._load_mutable_user(user_id, "revoke")
        if user is None:
            return False
        try:
            with self._transactions.transaction():
                self._users.set_subscription_status(user_id, EntitlementTier.FREE)
                if user.role is UserRole.WORKER:
                    self._users.set_worker_boost(user_id, False, None)
        except BillingError as exc:
            logger.exception("Failed to revoke Pro entitlement from user %s", user_id)
            report_exception(exc, user_id=user_id, operation="revoke_pro")
            return False
        logger.info("Revoked Pro entitlement from user %s", user_id)
        return True

    def reset_expired_boosts(self, now: datetime) -> List[str]:
        """Clear fixed-term boosts that expired before ``now``."""
        worker_ids = self._users.reset_expired_boosts(now)
        if worker_ids:
            logger.info("Reset %d expired profile boosts", len(worker_ids))
        else:
            logger.info("No expired boosts found")
        return worker_ids

    def _load_mutable_user(self, user_id: str, action: str) -> Optional[User]:
        try:
            user = self._users.get_user(user_id)
        except BillingError as exc:
            logger.exception("Failed to load user %s for entitlement %s", user_id, action)
            report_exception(exc, user_id=user_id, operation=f"{action}_pro")
            return None
        if user is None:
            logger.error("User %s not found; skipping entitlement %s", user_id, action)
            return None
        if user.is_lifetime_pro:
            logger.info("User %s has lifetime Pro - skipping entitlement %s", user_id, action)
            return None
        return user
