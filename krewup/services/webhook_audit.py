"""Best-effort audit trail of webhook processing outcomes."""

import logging
from typing import Any, Dict, Optional

from ..domain.models import WebhookLogStatus
from ..domain.ports.persistence import WebhookLogRepository

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


class WebhookAuditLogger:
    """
    Writes ``webhook_logs`` rows. Never raises.

    The timeout ceiling only classifies slow runs for observability; nothing
    is cancelled or retried because of it.
    """

    def __init__(
        self,
        repository: WebhookLogRepository,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._repository = repository
        self.timeout_seconds = timeout_seconds

    def received(self, event_id: str, event_type: str) -> None:
        self._write(event_id, event_type, WebhookLogStatus.RECEIVED, {})

    def processed(
        self,
        event_id: str,
        event_type: str,
        duration_seconds: float,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> WebhookLogStatus:
        """Record success, or ``timeout`` when the run exceeded the ceiling."""
        data = dict(metadata or {})
        data["duration_ms"] = round(duration_seconds * 1000, 2)
        status = WebhookLogStatus.PROCESSED
        if duration_seconds > self.timeout_seconds:
            status = WebhookLogStatus.TIMEOUT
            data["timeout_seconds"] = self.timeout_seconds
            logger.warning(
                "Stripe event %s (%s) took %.2fs, over the %.0fs ceiling",
                event_id,
                event_type,
                duration_seconds,
                self.timeout_seconds,
            )
        self._write(event_id, event_type, status, data)
        return status

    def failed(
        self,
        event_id: str,
        event_type: str,
        error: BaseException,
        duration_seconds: float,
    ) -> None:
        self._write(
            event_id,
            event_type,
            WebhookLogStatus.FAILED,
            {
                "error": str(error),
                "error_type": type(error).__name__,
                "duration_ms": round(duration_seconds * 1000, 2),
            },
        )

    def _write(
        self,
        event_id: str,
        event_type: str,
        status: WebhookLogStatus,
        metadata: Dict[str, Any],
    ) -> None:
        try:
            self._repository.append_webhook_log(event_id, event_type, status, metadata)
        except Exception:
            # Audit durability must never fail a payment event.
            logger.exception(
                "Failed to write webhook log %s for event %s (%s)",
                status.value,
                event_id,
                event_type,
            )
