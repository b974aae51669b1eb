import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY")
        self.stripe_webhook_secret = self._get("STRIPE_WEBHOOK_SECRET")
        self.stripe_price_id_monthly = self._get("STRIPE_PRICE_ID_PRO_MONTHLY")
        self.stripe_price_id_annual = self._get("STRIPE_PRICE_ID_PRO_ANNUAL")
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/krewup.db")).resolve()
        self.webhook_timeout_seconds = self._get_int("WEBHOOK_TIMEOUT_SECONDS", default=30)
        self.cron_secret = os.getenv("CRON_SECRET") or None
        self.sentry_dsn = os.getenv("SENTRY_DSN") or None
        self.sentry_environment = os.getenv("SENTRY_ENVIRONMENT", "development")
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = ["*"]

    @staticmethod
    def _get(key: str) -> str:
        value = os.getenv(key)
        if not value:
            raise RuntimeError(f"Missing required environment variable: {key}")
        return value

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc
