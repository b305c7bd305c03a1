"""Storefront sessions persisted in the Appwrite sessions collection.

A session is usable while it is active and not past ``expires_at``.
Expiry is detected lazily during validation, which then deactivates the
record. Deactivation is one-way.

Every operation returns a :class:`Result`. Backend failures are logged and
carried in ``Result.error`` so HTTP handlers can degrade gracefully; callers
that prefer exceptions call ``unwrap()``.
"""

import logging
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Generic, TypeVar

import httpx

from vidstore.core import LocalStorage, settings
from vidstore.core.local_storage import SESSION_TOKEN_KEY
from vidstore.core.logging import token_preview
from vidstore.services.appwrite import (
    AppwriteAPIError,
    AppwriteClient,
    Query,
    get_appwrite_client,
    new_id,
)
from vidstore.services.session_cache import SessionCache

logger = logging.getLogger(__name__)

TOKEN_LENGTH = 64
TOKEN_ALPHABET = string.ascii_letters + string.digits
USER_AGENT_MAX_LENGTH = 255
# Upper bound on sessions fetched when revoking everything for a user
MAX_USER_SESSIONS = 100

# Backend failures, plus documents that do not map onto a Session
_LOOKUP_ERRORS = (AppwriteAPIError, httpx.HTTPError, KeyError, ValueError, TypeError)
_WRITE_ERRORS = (AppwriteAPIError, httpx.HTTPError)

T = TypeVar("T")


class SessionStoreError(Exception):
    """A session operation failed; the backend error is chained as ``__cause__``."""


@dataclass(frozen=True)
class Result(Generic[T]):
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T | None:
        if self.error is not None:
            raise self.error
        return self.value


def _failure(message: str, cause: Exception) -> Result[Any]:
    error = SessionStoreError(message)
    error.__cause__ = cause
    return Result(error=error)


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class Session:
    id: str
    user_id: str
    token: str
    created_at: datetime
    expires_at: datetime
    is_active: bool = True
    user_agent: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_usable(self, now: datetime) -> bool:
        return self.is_active and not self.is_expired(now)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Session":
        """Map an Appwrite session document (snake_case attributes)."""
        is_active = document.get("is_active")
        return cls(
            id=document["$id"],
            user_id=document["user_id"],
            token=document["token"],
            created_at=_parse_datetime(document.get("created_at") or document["$createdAt"]),
            expires_at=_parse_datetime(document["expires_at"]),
            # Records created before the attribute existed count as active
            is_active=True if is_active is None else bool(is_active),
            user_agent=document.get("user_agent"),
        )


class SessionStore:
    """Issues, validates and revokes session tokens.

    With ``token_storage``, the store also remembers the token of the last
    session it created under ``sessionToken``, for single-user callers such
    as scripts. The HTTP API does not pass one: each request carries its own
    token. Any revocation clears the whole validation cache and the stored token.
    """

    def __init__(
        self,
        client: AppwriteClient,
        cache: SessionCache | None = None,
        token_storage: LocalStorage | None = None,
        database_id: str | None = None,
        collection_id: str | None = None,
        lifetime: timedelta | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.client = client
        self.cache = cache or SessionCache(
            ttl_seconds=settings.session_cache_ttl_seconds,
            log_interval_seconds=settings.session_cache_log_interval_seconds,
        )
        self.token_storage = token_storage
        self.database_id = database_id or settings.database_id
        self.collection_id = collection_id or settings.session_collection_id
        self.lifetime = lifetime or timedelta(hours=settings.session_lifetime_hours)
        self._now = now or (lambda: datetime.now(UTC))

    @staticmethod
    def generate_token() -> str:
        return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))

    async def create(self, user_id: str, user_agent: str | None = None) -> Result[Session]:
        """Create and persist a session for ``user_id`` and make it current."""
        token = self.generate_token()
        now = self._now()
        data: dict[str, Any] = {
            "user_id": user_id,
            "token": token,
            "created_at": now.isoformat(),
            "expires_at": (now + self.lifetime).isoformat(),
            "is_active": True,
        }
        if user_agent:
            data["user_agent"] = user_agent[:USER_AGENT_MAX_LENGTH]

        document_id = new_id()
        try:
            document = await self._create_document(document_id, data)
            session = Session.from_document({**data, **document})
        except _LOOKUP_ERRORS as e:
            logger.error("Error creating session for user %s: %s", user_id, e)
            return _failure("failed to create session", e)

        self.cache.put(token, session)
        if self.token_storage is not None:
            self.token_storage.set_item(SESSION_TOKEN_KEY, token)
        logger.info("Created session %s for user %s", session.id, user_id)
        return Result(value=session)

    async def _create_document(self, document_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create the session document; a conflict on our own id means a retried write landed."""
        try:
            return await self.client.create_document(
                self.database_id, self.collection_id, data, document_id=document_id
            )
        except AppwriteAPIError as e:
            if not e.is_conflict:
                raise
            document = await self.client.get_document(
                self.database_id, self.collection_id, document_id
            )
            if document.get("token") != data["token"]:
                raise
            logger.info("Session %s already written by an earlier attempt", document_id)
            return document

    async def validate(self, token: str | None) -> Result[Session | None]:
        """Resolve ``token`` to a usable session, or None.

        While a lookup for the same token is in flight, returns whatever is
        cached for it (possibly stale, possibly nothing) without waiting.
        """
        if not token:
            return Result(value=None)

        if self.cache.is_in_flight(token):
            entry = self.cache.get(token)
            return Result(value=entry.session if entry else None)

        entry = self.cache.get_fresh(token)
        if entry is not None:
            self.cache.record_hit()
            return Result(value=entry.session)

        # No await between the in-flight check above and this mark.
        self.cache.mark_in_flight(token)
        generation = self.cache.generation
        try:
            session = await self._lookup(token)
        except _LOOKUP_ERRORS as e:
            logger.error("Error validating session %s: %s", token_preview(token), e)
            return _failure("failed to validate session", e)
        finally:
            self.cache.clear_in_flight(token)

        # A clear() during the lookup means a revoke may have raced it; only
        # a negative result is still safe to cache.
        if session is None or self.cache.generation == generation:
            self.cache.put(token, session)
        else:
            logger.info("Cache cleared during lookup of %s, not caching", token_preview(token))
        return Result(value=session)

    async def _lookup(self, token: str) -> Session | None:
        logger.info("Validating session with token %s", token_preview(token))
        response = await self.client.list_documents(
            self.database_id, self.collection_id, [Query.equal("token", token)]
        )
        documents = response.get("documents", [])
        if not documents:
            logger.info("No session found for token %s", token_preview(token))
            return None

        session = Session.from_document(documents[0])
        if not session.is_active:
            logger.info("Session %s is inactive", session.id)
            return None

        if session.is_expired(self._now()):
            logger.info("Session %s expired at %s, deactivating", session.id, session.expires_at)
            await self.revoke(session.id)
            return None

        return session

    async def revoke(self, session_id: str) -> Result[None]:
        """Deactivate a session. Revoking an inactive session changes nothing."""
        try:
            await self.client.update_document(
                self.database_id, self.collection_id, session_id, {"is_active": False}
            )
        except _WRITE_ERRORS as e:
            logger.error("Error deactivating session %s: %s", session_id, e)
            return _failure("failed to revoke session", e)

        self._forget_local_state()
        logger.info("Deactivated session %s", session_id)
        return Result()

    async def revoke_all_for_user(self, user_id: str) -> Result[int]:
        """Deactivate every active session of ``user_id``; the value is the count."""
        try:
            response = await self.client.list_documents(
                self.database_id,
                self.collection_id,
                [
                    Query.equal("user_id", user_id),
                    Query.equal("is_active", True),
                    Query.limit(MAX_USER_SESSIONS),
                ],
            )
        except _WRITE_ERRORS as e:
            logger.error("Error listing sessions for user %s: %s", user_id, e)
            return _failure("failed to revoke user sessions", e)

        revoked = 0
        first_error: Exception | None = None
        for document in response.get("documents", []):
            result = await self.revoke(document["$id"])
            if result.ok:
                revoked += 1
            elif first_error is None:
                first_error = result.error

        self._forget_local_state()
        logger.info("Deactivated %d sessions for user %s", revoked, user_id)
        return Result(value=revoked, error=first_error)

    async def current(self) -> Result[Session | None]:
        """Validate the stored current token, if this store keeps one."""
        if self.token_storage is None:
            return Result(value=None)
        token = self.token_storage.get_item(SESSION_TOKEN_KEY)
        if not token:
            return Result(value=None)
        return await self.validate(token)

    def _forget_local_state(self) -> None:
        self.cache.clear()
        if self.token_storage is not None:
            self.token_storage.remove_item(SESSION_TOKEN_KEY)


_store: SessionStore | None = None


def get_session_store() -> SessionStore:
    """Process-wide session store over the shared Appwrite client.

    It keeps no current token: HTTP callers identify themselves per request.
    """
    global _store
    if _store is None:
        _store = SessionStore(get_appwrite_client())
    return _store


def reset_session_store() -> None:
    """Drop the process-wide store so the next call rebuilds it."""
    global _store
    _store = None
