"""Pydantic schemas for webhook and cron endpoints."""

from typing import List

from pydantic import BaseModel


class WebhookAcknowledgement(BaseModel):
    """Body returned to Stripe for processed, duplicate and ignored events."""

    received: bool = True


class WebhookErrorResponse(BaseModel):
    error: str


class BoostResetResponse(BaseModel):
    """Result of the expired-boost sweep."""

    success: bool
    message: str
    count: int
    worker_ids: List[str]
