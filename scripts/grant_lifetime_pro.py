"""Grant lifetime Pro to users by email or user id.

Lifetime Pro users keep Pro regardless of any later subscription event.

Usage:
    python scripts/grant_lifetime_pro.py <email-or-user-id> [...]
    python scripts/grant_lifetime_pro.py early@example.com U123 --dry-run
"""

import argparse
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from krewup.domain.models import User
from krewup.infrastructure.persistence.sqlite import SQLitePersistence


def _lookup(persistence: SQLitePersistence, identifier: str) -> Optional[User]:
    if "@" in identifier:
        return persistence.get_user_by_email(identifier)
    return persistence.get_user(identifier)


def main() -> int:
    parser = argparse.ArgumentParser(description="Grant lifetime Pro status to users")
    parser.add_argument("users", nargs="+", help="User emails or ids")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be granted without writing to the database",
    )
    args = parser.parse_args()

    load_dotenv()
    database_path = Path(os.getenv("DATABASE_PATH", "data/krewup.db")).resolve()
    persistence = SQLitePersistence(database_path)

    granted = skipped = missing = 0
    try:
        for identifier in (item.strip() for item in args.users):
            user = _lookup(persistence, identifier)
            if user is None:
                print(f"User not found: {identifier}")
                missing += 1
                continue
            if user.is_lifetime_pro:
                print(f"Skipping {user.email} ({user.id}): already lifetime Pro")
                skipped += 1
                continue
            if args.dry_run:
                print(f"[DRY RUN] Would grant lifetime Pro to {user.email} ({user.id})")
                granted += 1
                continue
            if persistence.set_lifetime_pro(user.id):
                print(f"Granted lifetime Pro to {user.email} ({user.id})")
                granted += 1
            else:
                skipped += 1
    finally:
        persistence.close()

    print(f"Granted: {granted}  Skipped: {skipped}  Not found: {missing}")
    if args.dry_run:
        print("Dry run: no changes were made.")
    return 1 if missing else 0


if __name__ == "__main__":
    sys.exit(main())
