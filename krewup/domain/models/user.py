"""User and worker projections touched by billing events."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class UserRole(str, Enum):
    WORKER = "worker"
    EMPLOYER = "employer"


class EntitlementTier(str, Enum):
    FREE = "free"
    PRO = "pro"


@dataclass(slots=True)
class User:
    """
    Marketplace account as seen by billing.

    Attributes:
        id: Unique identifier issued by the auth provider
        email: User email address
        role: Worker or employer
        subscription_status: Coarse entitlement tier (free or pro)
        is_lifetime_pro: Permanent Pro grant, immune to subscription events
    """

    id: str
    email: str
    role: UserRole
    subscription_status: EntitlementTier = EntitlementTier.FREE
    is_lifetime_pro: bool = False


@dataclass(slots=True)
class WorkerProfile:
    """Visibility flags stored on the worker profile."""

    user_id: str
    is_profile_boosted: bool = False
    boost_expires_at: Optional[datetime] = None
