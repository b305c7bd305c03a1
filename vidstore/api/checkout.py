"""Stripe checkout API endpoint."""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from vidstore.schemas.checkout import CheckoutRequest, CheckoutResponse
from vidstore.services.appwrite import get_appwrite_client
from vidstore.services.checkout import CheckoutConfigError, CheckoutService, StripeAPIError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["checkout"])


def get_checkout_service() -> CheckoutService:
    """Dependency to get CheckoutService instance."""
    return CheckoutService(get_appwrite_client())


@router.post(
    "/create-checkout-session",
    response_model=CheckoutResponse,
    responses={
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"description": "No Stripe key configured"},
        status.HTTP_502_BAD_GATEWAY: {"description": "Stripe rejected the request"},
    },
)
async def create_checkout_session(
    request: CheckoutRequest,
    service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutResponse | JSONResponse:
    """Create a Stripe Checkout Session for one item."""
    try:
        session = await service.create_session(
            amount=request.amount,
            name=request.name,
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            currency=request.currency,
        )
    except CheckoutConfigError as e:
        logger.error("Checkout unavailable: %s", e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": str(e)}
        )
    except StripeAPIError as e:
        logger.error("Stripe rejected checkout session: %s", e.message)
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"message": e.message})

    return CheckoutResponse(session_id=session.id, url=session.url)
