import pytest

from krewup.domain.errors import PersistenceError
from krewup.domain.models import WebhookLogStatus
from krewup.services.webhook_audit import WebhookAuditLogger


class TestWebhookAuditLogger:
    """Audit rows are best-effort and classify slow runs."""

    def test_fast_run_is_processed(self, persistence):
        audit = WebhookAuditLogger(persistence, timeout_seconds=30)

        status = audit.processed("evt_1", "customer.created", 0.25, {"outcome": "ignored"})

        assert status is WebhookLogStatus.PROCESSED
        log = persistence.list_webhook_logs("evt_1")[-1]
        assert log.status is WebhookLogStatus.PROCESSED
        assert log.metadata == {"outcome": "ignored", "duration_ms": 250.0}

    def test_slow_run_is_classified_as_timeout(self, persistence):
        audit = WebhookAuditLogger(persistence, timeout_seconds=30)

        status = audit.processed("evt_1", "customer.created", 31.0)

        assert status is WebhookLogStatus.TIMEOUT
        log = persistence.list_webhook_logs("evt_1")[-1]
        assert log.metadata["timeout_seconds"] == 30
        assert log.metadata["duration_ms"] == pytest.approx(31000.0)

    def test_failed_records_error_type(self, persistence):
        audit = WebhookAuditLogger(persistence)

        audit.failed("evt_1", "invoice.payment_failed", RuntimeError("boom"), 0.1)

        log = persistence.list_webhook_logs("evt_1")[-1]
        assert log.status is WebhookLogStatus.FAILED
        assert log.metadata["error"] == "boom"
        assert log.metadata["error_type"] == "RuntimeError"

    def test_write_failure_is_swallowed(self, persistence, monkeypatch):
        def fail(*_args, **_kwargs):
            raise PersistenceError("database is locked")

        monkeypatch.setattr(persistence, "append_webhook_log", fail)
        audit = WebhookAuditLogger(persistence)

        audit.received("evt_1", "customer.created")
        assert audit.processed("evt_1", "customer.created", 0.01) is WebhookLogStatus.PROCESSED
