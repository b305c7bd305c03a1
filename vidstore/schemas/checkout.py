"""Pydantic schemas for Stripe checkout."""

from pydantic import BaseModel, Field, StrictInt, StrictStr


class CheckoutRequest(BaseModel):
    amount: StrictInt = Field(..., gt=0, description="Price in the currency's minor unit")
    currency: StrictStr = Field(default="usd", pattern=r"^[A-Za-z]{3}$")
    name: StrictStr = Field(..., min_length=1, max_length=255)
    success_url: StrictStr = Field(..., min_length=1)
    cancel_url: StrictStr = Field(..., min_length=1)


class CheckoutResponse(BaseModel):
    session_id: str = Field(..., serialization_alias="sessionId")
    url: str | None = None
