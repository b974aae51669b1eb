import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ...domain.errors import DuplicateEventError, PersistenceError
from ...domain.models import (
    EntitlementTier,
    HistoryEventType,
    PlanType,
    Subscription,
    SubscriptionHistoryEntry,
    SubscriptionStatus,
    User,
    UserRole,
    WebhookLogEntry,
    WebhookLogStatus,
    WorkerProfile,
)
from ...domain.ports.persistence import PersistenceGateway


class SQLitePersistence(PersistenceGateway):
    """SQLite-backed implementation of the persistence gateway.

    The connection runs in autocommit mode and every write goes through
    ``transaction()``. The outermost call opens ``BEGIN IMMEDIATE``; nested
    calls open savepoints, so a failed secondary write can be rolled back
    without losing the enclosing unit of work.
    """

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._initialize()

    def _initialize(self) -> None:
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    email TEXT NOT NULL UNIQUE,
                    role TEXT NOT NULL,
                    subscription_status TEXT NOT NULL DEFAULT 'free',
                    is_lifetime_pro INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS workers (
                    user_id TEXT PRIMARY KEY,
                    is_profile_boosted INTEGER NOT NULL DEFAULT 0,
                    boost_expires_at TEXT,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL UNIQUE,
                    stripe_customer_id TEXT NOT NULL,
                    stripe_subscription_id TEXT NOT NULL,
                    stripe_price_id TEXT NOT NULL,
                    plan_type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    current_period_start TEXT NOT NULL,
                    current_period_end TEXT NOT NULL,
                    cancel_at_period_end INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_subscriptions_customer
                    ON subscriptions(stripe_customer_id);

                CREATE TABLE IF NOT EXISTS subscription_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT NOT NULL,
                    stripe_subscription_id TEXT,
                    event_type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    plan_type TEXT,
                    amount REAL,
                    currency TEXT,
                    metadata TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_subscription_history_user
                    ON subscription_history(user_id, created_at);

                CREATE TABLE IF NOT EXISTS stripe_processed_events (
                    id TEXT PRIMARY KEY,
                    type TEXT NOT NULL,
                    processed_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS webhook_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    event_id TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    status TEXT NOT NULL,
                    metadata TEXT NOT NULL,
                    created_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_webhook_logs_event_id
                    ON webhook_logs(event_id);
                """
            )

    def close(self) -> None:
        self._conn.close()

    # TransactionManager API -------------------------------------------------
    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            depth = self._depth
            savepoint = f"sp_{depth}"
            self._raw("BEGIN IMMEDIATE" if depth == 0 else f"SAVEPOINT {savepoint}")
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if depth == 0:
                    self._raw("ROLLBACK")
                else:
                    self._raw(f"ROLLBACK TO SAVEPOINT {savepoint}")
                    self._raw(f"RELEASE SAVEPOINT {savepoint}")
                raise
            self._depth -= 1
            if depth == 0:
                try:
                    self._raw("COMMIT")
                except PersistenceError:
                    self._conn.execute("ROLLBACK")
                    raise
            else:
                self._raw(f"RELEASE SAVEPOINT {savepoint}")

    # SubscriptionRepository API ---------------------------------------------
    def upsert_subscription(
        self,
        user_id: str,
        stripe_customer_id: str,
        stripe_subscription_id: str,
        stripe_price_id: str,
        plan_type: PlanType,
        status: SubscriptionStatus,
        current_period_start: datetime,
        current_period_end: datetime,
        cancel_at_period_end: bool,
    ) -> Subscription:
        now = self._now()
        with self.transaction():
            self._execute(
                """
                INSERT INTO subscriptions (
                    user_id, stripe_customer_id, stripe_subscription_id, stripe_price_id,
                    plan_type, status, current_period_start, current_period_end,
                    cancel_at_period_end, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    stripe_customer_id = excluded.stripe_customer_id,
                    stripe_subscription_id = excluded.stripe_subscription_id,
                    stripe_price_id = excluded.stripe_price_id,
                    plan_type = excluded.plan_type,
                    status = excluded.status,
                    current_period_start = excluded.current_period_start,
                    current_period_end = excluded.current_period_end,
                    cancel_at_period_end = excluded.cancel_at_period_end,
                    updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    stripe_customer_id,
                    stripe_subscription_id,
                    stripe_price_id,
                    PlanType(plan_type).value,
                    SubscriptionStatus(status).value,
                    self._ts(current_period_start),
                    self._ts(current_period_end),
                    int(cancel_at_period_end),
                    now,
                    now,
                ),
            )
            subscription = self.get_subscription_by_user(user_id)
        if subscription is None:
            raise PersistenceError("Failed to persist subscription.")
        return subscription

    def update_subscription(
        self,
        user_id: str,
        *,
        stripe_subscription_id: Optional[str] = None,
        stripe_price_id: Optional[str] = None,
        plan_type: Optional[PlanType] = None,
        status: Optional[SubscriptionStatus] = None,
        current_period_start: Optional[datetime] = None,
        current_period_end: Optional[datetime] = None,
        cancel_at_period_end: Optional[bool] = None,
    ) -> Subscription:
        fields: Dict[str, Any] = {}
        if stripe_subscription_id is not None:
            fields["stripe_subscription_id"] = stripe_subscription_id
        if stripe_price_id is not None:
            fields["stripe_price_id"] = stripe_price_id
        if plan_type is not None:
            fields["plan_type"] = PlanType(plan_type).value
        if status is not None:
            fields["status"] = SubscriptionStatus(status).value
        if current_period_start is not None:
            fields["current_period_start"] = self._ts(current_period_start)
        if current_period_end is not None:
            fields["current_period_end"] = self._ts(current_period_end)
        if cancel_at_period_end is not None:
            fields["cancel_at_period_end"] = int(cancel_at_period_end)
        fields["updated_at"] = self._now()

        assignments = ", ".join(f"{column} = ?" for column in fields)
        with self.transaction():
            cur = self._execute(
                f"UPDATE subscriptions SET {assignments} WHERE user_id = ?",
                (*fields.values(), user_id),
            )
            if cur.rowcount == 0:
                raise PersistenceError(f"No subscription row for user {user_id}")
            subscription = self.get_subscription_by_user(user_id)
        if subscription is None:
            raise PersistenceError("Failed to reload subscription.")
        return subscription

    def get_subscription_by_user(self, user_id: str) -> Optional[Subscription]:
        row = self._fetchone("SELECT * FROM subscriptions WHERE user_id = ?", (user_id,))
        return self._row_to_subscription(row) if row else None

    def get_subscription_by_customer(self, stripe_customer_id: str) -> Optional[Subscription]:
        row = self._fetchone(
            """
            SELECT * FROM subscriptions
            WHERE stripe_customer_id = ?
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            (stripe_customer_id,),
        )
        return self._row_to_subscription(row) if row else None

    # SubscriptionHistoryRepository API --------------------------------------
    def append_history(
        self,
        user_id: str,
        stripe_subscription_id: Optional[str],
        event_type: HistoryEventType,
        status: str,
        plan_type: Optional[PlanType] = None,
        amount: Optional[float] = None,
        currency: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SubscriptionHistoryEntry:
        now = self._now()
        data = json.dumps(metadata or {}, default=str, ensure_ascii=False)
        with self.transaction():
            cur = self._execute(
                """
                INSERT INTO subscription_history (
                    user_id, stripe_subscription_id, event_type, status,
                    plan_type, amount, currency, metadata, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    stripe_subscription_id,
                    HistoryEventType(event_type).value,
                    status,
                    PlanType(plan_type).value if plan_type else None,
                    amount,
                    currency,
                    data,
                    now,
                ),
            )
            entry_id = cur.lastrowid
        return SubscriptionHistoryEntry(
            id=entry_id,
            user_id=user_id,
            stripe_subscription_id=stripe_subscription_id,
            event_type=HistoryEventType(event_type),
            status=status,
            plan_type=PlanType(plan_type) if plan_type else None,
            amount=amount,
            currency=currency,
            metadata=metadata or {},
            created_at=datetime.fromisoformat(now),
        )

    # ProcessedEventRepository API -------------------------------------------
    def is_event_processed(self, event_id: str) -> bool:
        row = self._fetchone("SELECT 1 FROM stripe_processed_events WHERE id = ?", (event_id,))
        return row is not None

    def record_processed_event(self, event_id: str, event_type: str) -> None:
        try:
            with self.transaction():
                self._execute(
                    "INSERT INTO stripe_processed_events (id, type, processed_at) VALUES (?, ?, ?)",
                    (event_id, event_type, self._now()),
                )
        except PersistenceError as exc:
            if isinstance(exc.__cause__, sqlite3.IntegrityError):
                raise DuplicateEventError(event_id) from exc
            raise

    # WebhookLogRepository API -----------------------------------------------
    def append_webhook_log(
        self,
        event_id: str,
        event_type: str,
        status: WebhookLogStatus,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        data = json.dumps(metadata or {}, default=str, ensure_ascii=False)
        with self.transaction():
            self._execute(
                """
                INSERT INTO webhook_logs (event_id, event_type, status, metadata, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (event_id, event_type, WebhookLogStatus(status).value, data, self._now()),
            )

    # UserRepository API -----------------------------------------------------
    def create_user(
        self,
        user_id: str,
        email: str,
        role: UserRole,
        is_lifetime_pro: bool = False,
    ) -> User:
        now = self._now()
        role = UserRole(role)
        tier = EntitlementTier.PRO if is_lifetime_pro else EntitlementTier.FREE
        with self.transaction():
            self._execute(
                """
                INSERT INTO users (
                    id, email, role, subscription_status, is_lifetime_pro, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (user_id, email, role.value, tier.value, int(is_lifetime_pro), now, now),
            )
            if role is UserRole.WORKER:
                self._execute(
                    "INSERT OR IGNORE INTO workers (user_id, updated_at) VALUES (?, ?)",
                    (user_id, now),
                )
        return User(
            id=user_id,
            email=email,
            role=role,
            subscription_status=tier,
            is_lifetime_pro=is_lifetime_pro,
        )

    def get_user(self, user_id: str) -> Optional[User]:
        row = self._fetchone("SELECT * FROM users WHERE id = ?", (user_id,))
        return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        row = self._fetchone("SELECT * FROM users WHERE email = ?", (email,))
        return self._row_to_user(row) if row else None

    def set_subscription_status(self, user_id: str, tier: EntitlementTier) -> None:
        with self.transaction():
            self._execute(
                "UPDATE users SET subscription_status = ?, updated_at = ? WHERE id = ?",
                (EntitlementTier(tier).value, self._now(), user_id),
            )

    def set_lifetime_pro(self, user_id: str) -> bool:
        with self.transaction():
            cur = self._execute(
                """
                UPDATE users
                SET is_lifetime_pro = 1, subscription_status = ?, updated_at = ?
                WHERE id = ? AND is_lifetime_pro = 0
                """,
                (EntitlementTier.PRO.value, self._now(), user_id),
            )
        return cur.rowcount > 0

    def set_worker_boost(
        self,
        user_id: str,
        is_profile_boosted: bool,
        boost_expires_at: Optional[datetime],
    ) -> None:
        expires_at = self._ts(boost_expires_at) if boost_expires_at else None
        with self.transaction():
            self._execute(
                """
                INSERT INTO workers (user_id, is_profile_boosted, boost_expires_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    is_profile_boosted = excluded.is_profile_boosted,
                    boost_expires_at = excluded.boost_expires_at,
                    updated_at = excluded.updated_at
                """,
                (user_id, int(is_profile_boosted), expires_at, self._now()),
            )

    def reset_expired_boosts(self, now: datetime) -> List[str]:
        cutoff = self._ts(now)
        with self.transaction():
            rows = self._fetchall(
                """
                SELECT user_id FROM workers
                WHERE is_profile_boosted = 1
                  AND boost_expires_at IS NOT NULL
                  AND boost_expires_at < ?
                ORDER BY user_id
                """,
                (cutoff,),
            )
            user_ids = [row["user_id"] for row in rows]
            if user_ids:
                placeholders = ", ".join("?" for _ in user_ids)
                self._execute(
                    f"""
                    UPDATE workers
                    SET is_profile_boosted = 0, boost_expires_at = NULL, updated_at = ?
                    WHERE user_id IN ({placeholders})
                    """,
                    (self._now(), *user_ids),
                )
        return user_ids

    # Read-side helpers ------------------------------------------------------
    # Not part of the ports: the webhook path only writes these rows. Operators
    # and tests read them back through the concrete gateway.
    def list_history(self, user_id: str) -> List[SubscriptionHistoryEntry]:
        rows = self._fetchall(
            "SELECT * FROM subscription_history WHERE user_id = ? ORDER BY id ASC",
            (user_id,),
        )
        return [
            SubscriptionHistoryEntry(
                id=row["id"],
                user_id=row["user_id"],
                stripe_subscription_id=row["stripe_subscription_id"],
                event_type=HistoryEventType(row["event_type"]),
                status=row["status"],
                plan_type=PlanType(row["plan_type"]) if row["plan_type"] else None,
                amount=row["amount"],
                currency=row["currency"],
                metadata=json.loads(row["metadata"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def list_webhook_logs(self, event_id: str) -> List[WebhookLogEntry]:
        rows = self._fetchall(
            "SELECT * FROM webhook_logs WHERE event_id = ? ORDER BY id ASC", (event_id,)
        )
        return [
            WebhookLogEntry(
                id=row["id"],
                event_id=row["event_id"],
                event_type=row["event_type"],
                status=WebhookLogStatus(row["status"]),
                metadata=json.loads(row["metadata"]),
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    def get_worker_profile(self, user_id: str) -> Optional[WorkerProfile]:
        row = self._fetchone("SELECT * FROM workers WHERE user_id = ?", (user_id,))
        if not row:
            return None
        expires_at = row["boost_expires_at"]
        return WorkerProfile(
            user_id=row["user_id"],
            is_profile_boosted=bool(row["is_profile_boosted"]),
            boost_expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
        )

    # Helpers ----------------------------------------------------------------
    def _raw(self, sql: str) -> None:
        try:
            self._conn.execute(sql)
        except sqlite3.Error as exc:
            raise PersistenceError(f"{sql} failed: {exc}") from exc

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        with self._lock:
            try:
                return self._conn.execute(sql, params)
            except sqlite3.Error as exc:
                raise PersistenceError(str(exc)) from exc

    def _fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self._execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self._execute(sql, params).fetchall()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _ts(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

    @staticmethod
    def _row_to_subscription(row: sqlite3.Row) -> Subscription:
        return Subscription(
            id=row["id"],
            user_id=row["user_id"],
            stripe_customer_id=row["stripe_customer_id"],
            stripe_subscription_id=row["stripe_subscription_id"],
            stripe_price_id=row["stripe_price_id"],
            plan_type=PlanType(row["plan_type"]),
            status=SubscriptionStatus(row["status"]),
            current_period_start=datetime.fromisoformat(row["current_period_start"]),
            current_period_end=datetime.fromisoformat(row["current_period_end"]),
            cancel_at_period_end=bool(row["cancel_at_period_end"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            role=UserRole(row["role"]),
            subscription_status=EntitlementTier(row["subscription_status"]),
            is_lifetime_pro=bool(row["is_lifetime_pro"]),
        )
