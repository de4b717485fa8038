# app/api/endpoints/status.py
from fastapi import APIRouter, Request

from app.api.models.execute import StatusResponse
from app.core.config import settings
from app.x402.middleware import get_payment_context
from app.x402.pricing import get_tier_prices

router = APIRouter()


@router.get("", response_model=StatusResponse, summary="Service status")
async def get_status(request: Request) -> StatusResponse:
    """
    Free endpoint. A caller may attach X-PAYMENT to learn whether its
    payment would be accepted; the request is never blocked either way.
    """
    payment = get_payment_context(request)
    return StatusResponse(
        status="online",
        network=settings.X402_NETWORK,
        payment_enabled=settings.X402_ENABLED,
        payment_verified=bool(payment and payment.verified),
        pricing={tier: str(price) for tier, price in get_tier_prices().items()},
    )
