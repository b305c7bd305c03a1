"""Session API endpoints.

Every request identifies its caller by its own session token, sent in the
``X-Session-Token`` header or the ``session_token`` cookie set on creation.
Nothing is shared between callers.

Backend failures on reads degrade to "not valid" so polling clients keep
working through a storage outage; only session creation reports them.
"""

import logging

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Response, status

from vidstore.core import settings
from vidstore.schemas.session import (
    RevokeAllResponse,
    RevokeResponse,
    SessionCreate,
    SessionCreatedResponse,
    SessionResponse,
    SessionValidationResponse,
)
from vidstore.services.session import Result, Session, SessionStore, get_session_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])

SESSION_COOKIE = "session_token"


def get_caller_token(
    x_session_token: str | None = Header(default=None),
    session_token: str | None = Cookie(default=None),
) -> str | None:
    """The caller's own token; the header wins over the cookie."""
    return x_session_token or session_token


async def require_session(
    token: str | None = Depends(get_caller_token),
    store: SessionStore = Depends(get_session_store),
) -> Session:
    """Dependency resolving the caller's usable session, or rejecting the request."""
    result = await store.validate(token)
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session store unavailable",
        )
    if result.value is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Valid session token required",
        )
    return result.value


def _validation_response(result: Result[Session | None]) -> SessionValidationResponse:
    if not result.ok or result.value is None:
        return SessionValidationResponse(valid=False)
    return SessionValidationResponse(
        valid=True, session=SessionResponse.model_validate(result.value)
    )


@router.post("", response_model=SessionCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: SessionCreate,
    response: Response,
    user_agent: str | None = Header(default=None),
    store: SessionStore = Depends(get_session_store),
) -> SessionCreatedResponse:
    """Create a session for a user; the token is returned and set as a cookie."""
    result = await store.create(request.user_id, user_agent)
    if not result.ok:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Session store unavailable",
        )
    session = result.value
    response.set_cookie(
        SESSION_COOKIE,
        session.token,
        max_age=int(store.lifetime.total_seconds()),
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return SessionCreatedResponse.model_validate(session)


@router.get("/validate", response_model=SessionValidationResponse)
async def validate_session(
    token: str | None = Depends(get_caller_token),
    store: SessionStore = Depends(get_session_store),
) -> SessionValidationResponse:
    return _validation_response(await store.validate(token))


@router.get("/current", response_model=SessionValidationResponse)
async def current_session(
    token: str | None = Depends(get_caller_token),
    store: SessionStore = Depends(get_session_store),
) -> SessionValidationResponse:
    """The session the caller's token belongs to; without a token, none."""
    return _validation_response(await store.validate(token))


@router.delete("/{session_id}", response_model=RevokeResponse)
async def revoke_session(
    session_id: str,
    response: Response,
    caller: Session = Depends(require_session),
    store: SessionStore = Depends(get_session_store),
) -> RevokeResponse:
    """Revoke the caller's own session."""
    if caller.id != session_id:
        logger.warning("Session %s tried to revoke session %s", caller.id, session_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot revoke another session",
        )
    result = await store.revoke(session_id)
    if result.ok:
        response.delete_cookie(SESSION_COOKIE)
    return RevokeResponse(success=result.ok)


@router.delete("/users/{user_id}", response_model=RevokeAllResponse)
async def revoke_user_sessions(
    user_id: str,
    response: Response,
    caller: Session = Depends(require_session),
    store: SessionStore = Depends(get_session_store),
) -> RevokeAllResponse:
    """Revoke every active session of the calling user."""
    if caller.user_id != user_id:
        logger.warning("Session %s tried to revoke sessions of user %s", caller.id, user_id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot revoke sessions of another user",
        )
    result = await store.revoke_all_for_user(user_id)
    response.delete_cookie(SESSION_COOKIE)
    return RevokeAllResponse(success=result.ok, revoked=result.value or 0)
