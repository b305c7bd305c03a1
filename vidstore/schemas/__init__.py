# vidstore Pydantic Schemas
from vidstore.schemas.checkout import CheckoutRequest, CheckoutResponse
from vidstore.schemas.session import (
    RevokeAllResponse,
    RevokeResponse,
    SessionCreate,
    SessionCreatedResponse,
    SessionResponse,
    SessionValidationResponse,
)
from vidstore.schemas.setup import (
    SetupActionRequest,
    SetupActionResponse,
    SetupProgressEvent,
    SetupResultEvent,
    SetupRunRequest,
)

__all__ = [
    "CheckoutRequest",
    "CheckoutResponse",
    "RevokeAllResponse",
    "RevokeResponse",
    "SessionCreate",
    "SessionCreatedResponse",
    "SessionResponse",
    "SessionValidationResponse",
    "SetupActionRequest",
    "SetupActionResponse",
    "SetupProgressEvent",
    "SetupResultEvent",
    "SetupRunRequest",
]
