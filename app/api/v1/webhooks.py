"""Webhook endpoints for payment gateways."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.config import settings
from app.gateways.base import GatewayType
from app.services.gateway_service import gateway_service
from app.services.reconciliation_service import reconciliation_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/stripe", status_code=status.HTTP_200_OK)
async def stripe_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
) -> dict:
    """Handle Stripe checkout session events."""
    if not settings.stripe_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe webhook secret is not configured",
        )

    # Get raw body for signature verification
    payload = await request.body()

    event = gateway_service.verify_webhook(GatewayType.STRIPE, payload, stripe_signature or "")
    if event is None:
        logger.warning("Rejected Stripe webhook with invalid signature or payload")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    booking = await reconciliation_service.handle_gateway_event(db, event)

    return {
        "received": True,
        "booking_status": booking.status if booking else None,
    }
