"""Grant a test Pro subscription to a user after a Stripe test checkout.

Usage: python scripts/activate_test_subscription.py <user_email>
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

from dotenv import load_dotenv

from krewup.domain.models import HistoryEventType, PlanType, SubscriptionStatus
from krewup.infrastructure.persistence.sqlite import SQLitePersistence
from krewup.services.entitlement_service import EntitlementService


def main() -> int:
    load_dotenv()

    if len(sys.argv) < 2:
        print("Usage: python scripts/activate_test_subscription.py <user_email>")
        return 1
    email = sys.argv[1].strip()

    database_path = Path(os.getenv("DATABASE_PATH", "data/krewup.db")).resolve()
    price_id = os.getenv("STRIPE_PRICE_ID_PRO_MONTHLY", "price_test")
    persistence = SQLitePersistence(database_path)

    try:
        user = persistence.get_user_by_email(email)
        if user is None:
            print(f"User not found: {email}")
            return 1
        print(f"Activating Pro subscription for {email} ({user.id})")

        now = datetime.now(timezone.utc)
        subscription_id = f"test_sub_{int(now.timestamp())}"
        with persistence.transaction():
            subscription = persistence.upsert_subscription(
                user_id=user.id,
                stripe_customer_id=f"test_customer_{user.id}",
                stripe_subscription_id=subscription_id,
                stripe_price_id=price_id,
                plan_type=PlanType.MONTHLY,
                status=SubscriptionStatus.ACTIVE,
                current_period_start=now,
                current_period_end=now + timedelta(days=30),
                cancel_at_period_end=False,
            )
            persistence.append_history(
                user_id=user.id,
                stripe_subscription_id=subscription_id,
                event_type=HistoryEventType.SUBSCRIPTION_CREATED,
                status=SubscriptionStatus.ACTIVE.value,
                plan_type=PlanType.MONTHLY,
                metadata={"source": "activate_test_subscription"},
            )
        print("Subscription created:", subscription)

        if EntitlementService(persistence, persistence).grant_pro(user.id):
            print("Profile updated to Pro.")
        else:
            print("Profile left unchanged (lifetime Pro or update failed, see logs).")
    finally:
        persistence.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
