"""Ledger of Stripe event ids that have been fully applied."""

import logging

from ..domain.ports.persistence import ProcessedEventRepository

logger = logging.getLogger(__name__)


class IdempotencyLedger:
    """
    Deduplicates Stripe's at-least-once deliveries.

    ``has_processed`` is a fast path only. The uniqueness constraint on the
    event id decides: ``mark_processed`` raises ``DuplicateEventError`` when a
    concurrent delivery already recorded the id, and the caller rolls back.
    """

    def __init__(self, repository: ProcessedEventRepository) -> None:
        self._repository = repository

    def has_processed(self, event_id: str) -> bool:
        return self._repository.is_event_processed(event_id)

    def mark_processed(self, event_id: str, event_type: str) -> None:
        self._repository.record_processed_event(event_id, event_type)
        logger.debug("Marked Stripe event %s (%s) as processed", event_id, event_type)
