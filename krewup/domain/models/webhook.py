from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class WebhookLogStatus(str, Enum):
    RECEIVED = "received"
    PROCESSED = "processed"
    FAILED = "failed"
    TIMEOUT = "timeout"


class WebhookOutcome(str, Enum):
    """What the processor did with a verified event."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"


@dataclass(slots=True)
class WebhookLogEntry:
    id: int
    event_id: str
    event_type: str
    status: WebhookLogStatus
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
