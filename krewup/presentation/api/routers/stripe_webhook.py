"""Inbound Stripe webhook endpoint."""

import logging

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ....core.dependencies import get_webhook_processor
from ....domain.errors import BillingError, ClientVerificationError
from ....services.webhook_processor import WebhookProcessor
from ..schemas.webhook_schemas import WebhookAcknowledgement, WebhookErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Stripe Webhooks"])


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=WebhookErrorResponse(error=message).model_dump(),
    )


@router.post(
    "/stripe",
    include_in_schema=False,
    response_model=WebhookAcknowledgement,
)
async def stripe_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Handle Stripe webhook events.

    200 tells Stripe to stop retrying (processed, duplicate or ignored);
    400 rejects unauthenticated deliveries; 500 asks for a redelivery.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        outcome = await run_in_threadpool(processor.handle, payload, signature)
    except ClientVerificationError as exc:
        return _error(status.HTTP_400_BAD_REQUEST, exc.public_message)
    except BillingError as exc:
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.public_message)
    except Exception:
        logger.exception("Unexpected error while handling Stripe webhook")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Webhook handler failed")

    logger.debug("Stripe webhook acknowledged (%s)", outcome.value)
    return WebhookAcknowledgement(received=True)
