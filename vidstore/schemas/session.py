"""Pydantic schemas for the sessions API."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class SessionCreate(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=255)


class SessionResponse(BaseModel):
    """A session as exposed over HTTP. The token is only returned on creation."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    created_at: datetime
    expires_at: datetime
    is_active: bool
    user_agent: str | None = None


class SessionCreatedResponse(SessionResponse):
    token: str


class SessionValidationResponse(BaseModel):
    valid: bool
    session: SessionResponse | None = None


class RevokeResponse(BaseModel):
    success: bool


class RevokeAllResponse(RevokeResponse):
    revoked: int = 0
