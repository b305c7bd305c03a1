"""Tests for the session store."""

import asyncio
import json
from datetime import timedelta

import httpx
import pytest

from vidstore.core.local_storage import SESSION_TOKEN_KEY
from vidstore.services.appwrite import AppwriteAPIError
from vidstore.services.session import (
    TOKEN_ALPHABET,
    TOKEN_LENGTH,
    Session,
    SessionStore,
    SessionStoreError,
)


def _document(wall_clock, token="tok", session_id="s1", is_active=True, expires_in=timedelta(hours=1)):
    return {
        "$id": session_id,
        "user_id": "u1",
        "token": token,
        "created_at": (wall_clock.now - timedelta(hours=1)).isoformat(),
        "expires_at": (wall_clock.now + expires_in).isoformat(),
        "is_active": is_active,
    }


def _queries(call) -> list[dict]:
    return [json.loads(q) for q in call.args[2]]


class TestSessionModel:
    def test_from_document(self, wall_clock):
        doc = _document(wall_clock)
        doc["expires_at"] = "2026-01-02T12:00:00.000+00:00"
        session = Session.from_document(doc)
        assert session.id == "s1"
        assert session.expires_at.tzinfo is not None
        assert session.is_usable(wall_clock.now)

    def test_missing_is_active_counts_as_active(self, wall_clock):
        doc = _document(wall_clock)
        del doc["is_active"]
        assert Session.from_document(doc).is_active

    def test_usable_boundary(self, wall_clock):
        session = Session.from_document(_document(wall_clock, expires_in=timedelta(0)))
        assert not session.is_usable(wall_clock.now)
        assert session.is_usable(wall_clock.now - timedelta(seconds=1))


@pytest.mark.asyncio
class TestCreate:
    async def test_create_persists_and_caches(self, session_store, appwrite_client, storage, wall_clock):
        appwrite_client.create_document.return_value = {"$id": "new-session"}

        result = await session_store.create("u1", user_agent="Mozilla/5.0")

        assert result.ok
        session = result.value
        assert session.id == "new-session"
        assert session.user_id == "u1"
        assert len(session.token) == TOKEN_LENGTH
        assert set(session.token) <= set(TOKEN_ALPHABET)
        assert session.expires_at - session.created_at == timedelta(hours=24)
        assert storage.get_item(SESSION_TOKEN_KEY) == session.token

        data = appwrite_client.create_document.call_args.args[2]
        assert data["user_id"] == "u1"
        assert data["is_active"] is True
        assert data["user_agent"] == "Mozilla/5.0"

        # Validating the fresh token is served from cache
        validated = await session_store.validate(session.token)
        assert validated.value == session
        appwrite_client.list_documents.assert_not_called()

    async def test_tokens_are_unique(self, session_store, appwrite_client):
        appwrite_client.create_document.return_value = {"$id": "s"}
        first = await session_store.create("u1")
        second = await session_store.create("u1")
        assert first.value.token != second.value.token

    async def test_user_agent_truncated(self, session_store, appwrite_client):
        appwrite_client.create_document.return_value = {"$id": "s"}
        await session_store.create("u1", user_agent="x" * 1000)
        data = appwrite_client.create_document.call_args.args[2]
        assert len(data["user_agent"]) == 255

    async def test_store_failure_returns_error(self, session_store, appwrite_client, storage):
        appwrite_client.create_document.side_effect = AppwriteAPIError("boom", status_code=500)

        result = await session_store.create("u1")

        assert not result.ok
        assert isinstance(result.error, SessionStoreError)
        assert isinstance(result.error.__cause__, AppwriteAPIError)
        assert storage.get_item(SESSION_TOKEN_KEY) is None
        with pytest.raises(SessionStoreError):
            result.unwrap()


@pytest.mark.asyncio
class TestValidate:
    async def test_empty_token(self, session_store, appwrite_client):
        result = await session_store.validate("")
        assert result.ok
        assert result.value is None
        appwrite_client.list_documents.assert_not_called()

    async def test_valid_session(self, session_store, appwrite_client, wall_clock):
        appwrite_client.list_documents.return_value = {"documents": [_document(wall_clock)]}

        result = await session_store.validate("tok")

        assert result.value.id == "s1"
        assert _queries(appwrite_client.list_documents.call_args) == [
            {"method": "equal", "attribute": "token", "values": ["tok"]}
        ]

    async def test_unknown_token_cached_as_invalid(self, session_store, appwrite_client):
        assert (await session_store.validate("nope")).value is None
        assert (await session_store.validate("nope")).value is None
        assert appwrite_client.list_documents.await_count == 1

    async def test_inactive_session(self, session_store, appwrite_client, wall_clock):
        appwrite_client.list_documents.return_value = {
            "documents": [_document(wall_clock, is_active=False)]
        }
        assert (await session_store.validate("tok")).value is None
        appwrite_client.update_document.assert_not_called()

    async def test_expired_session_is_deactivated(self, session_store, appwrite_client, wall_clock):
        appwrite_client.list_documents.return_value = {
            "documents": [_document(wall_clock, expires_in=-timedelta(minutes=1))]
        }

        result = await session_store.validate("tok")

        assert result.value is None
        appwrite_client.update_document.assert_awaited_once_with(
            "video_site_db", "sessions", "s1", {"is_active": False}
        )
        # Cached as invalid after deactivation
        assert session_store.cache.get_fresh("tok").session is None

    async def test_cache_expires_after_ttl(self, session_store, appwrite_client, wall_clock, clock):
        appwrite_client.list_documents.return_value = {"documents": [_document(wall_clock)]}
        await session_store.validate("tok")
        clock.advance(29)
        await session_store.validate("tok")
        assert appwrite_client.list_documents.await_count == 1

        clock.advance(1)
        await session_store.validate("tok")
        assert appwrite_client.list_documents.await_count == 2

    async def test_backend_error_returns_error(self, session_store, appwrite_client):
        appwrite_client.list_documents.side_effect = httpx.ConnectError("down")

        result = await session_store.validate("tok")

        assert not result.ok
        assert result.value is None
        assert not session_store.cache.is_in_flight("tok")
        assert session_store.cache.get("tok") is None

    async def test_concurrent_validations_are_coalesced(
        self, session_store, appwrite_client, wall_clock
    ):
        release = asyncio.Event()

        async def slow_lookup(*args, **kwargs):
            await release.wait()
            return {"documents": [_document(wall_clock)]}

        appwrite_client.list_documents.side_effect = slow_lookup

        first = asyncio.create_task(session_store.validate("tok"))
        await asyncio.sleep(0)
        assert session_store.cache.is_in_flight("tok")

        # Nothing cached yet, so the concurrent caller gets None without querying
        concurrent = await session_store.validate("tok")
        assert concurrent.ok
        assert concurrent.value is None

        release.set()
        result = await first
        assert result.value.id == "s1"
        assert appwrite_client.list_documents.await_count == 1
        assert not session_store.cache.is_in_flight("tok")

    async def test_concurrent_validation_gets_stale_entry(
        self, session_store, appwrite_client, wall_clock, clock
    ):
        appwrite_client.list_documents.return_value = {"documents": [_document(wall_clock)]}
        await session_store.validate("tok")
        clock.advance(60)

        release = asyncio.Event()

        async def slow_lookup(*args, **kwargs):
            await release.wait()
            return {"documents": [_document(wall_clock)]}

        appwrite_client.list_documents.side_effect = slow_lookup
        refresh = asyncio.create_task(session_store.validate("tok"))
        await asyncio.sleep(0)

        stale = await session_store.validate("tok")
        assert stale.value.id == "s1"

        release.set()
        await refresh
        assert appwrite_client.list_documents.await_count == 2


@pytest.mark.asyncio
class TestRevoke:
    async def test_revoke_clears_cache_and_current_token(
        self, session_store, appwrite_client, storage
    ):
        appwrite_client.create_document.return_value = {"$id": "s1"}
        created = (await session_store.create("u1")).value

        result = await session_store.revoke("s1")

        assert result.ok
        appwrite_client.update_document.assert_awaited_once_with(
            "video_site_db", "sessions", "s1", {"is_active": False}
        )
        assert len(session_store.cache) == 0
        assert storage.get_item(SESSION_TOKEN_KEY) is None
        assert session_store.cache.get(created.token) is None

    async def test_revoke_is_idempotent(self, session_store, appwrite_client):
        assert (await session_store.revoke("s1")).ok
        assert (await session_store.revoke("s1")).ok
        assert appwrite_client.update_document.await_count == 2

    async def test_revoke_failure(self, session_store, appwrite_client, storage):
        storage.set_item(SESSION_TOKEN_KEY, "tok")
        appwrite_client.update_document.side_effect = AppwriteAPIError("nope", status_code=404)

        result = await session_store.revoke("missing")

        assert not result.ok
        assert storage.get_item(SESSION_TOKEN_KEY) == "tok"

    async def test_revoke_all_for_user(self, session_store, appwrite_client, wall_clock, storage):
        storage.set_item(SESSION_TOKEN_KEY, "tok")
        appwrite_client.list_documents.return_value = {
            "documents": [
                _document(wall_clock, session_id="s1", token="a"),
                _document(wall_clock, session_id="s2", token="b"),
            ]
        }

        result = await session_store.revoke_all_for_user("u1")

        assert result.ok
        assert result.value == 2
        queries = _queries(appwrite_client.list_documents.call_args)
        assert {"method": "equal", "attribute": "user_id", "values": ["u1"]} in queries
        assert {"method": "equal", "attribute": "is_active", "values": [True]} in queries
        revoked_ids = [c.args[2] for c in appwrite_client.update_document.await_args_list]
        assert revoked_ids == ["s1", "s2"]
        assert storage.get_item(SESSION_TOKEN_KEY) is None

    async def test_revoke_all_counts_partial_failures(self, session_store, appwrite_client, wall_clock):
        appwrite_client.list_documents.return_value = {
            "documents": [
                _document(wall_clock, session_id="s1"),
                _document(wall_clock, session_id="s2"),
            ]
        }
        appwrite_client.update_document.side_effect = [
            {},
            AppwriteAPIError("boom", status_code=500),
        ]

        result = await session_store.revoke_all_for_user("u1")

        assert result.value == 1
        assert not result.ok


@pytest.mark.asyncio
class TestCurrent:
    async def test_no_stored_token(self, session_store, appwrite_client):
        result = await session_store.current()
        assert result.ok
        assert result.value is None
        appwrite_client.list_documents.assert_not_called()

    async def test_stored_token_is_validated(self, session_store, appwrite_client, storage, wall_clock):
        storage.set_item(SESSION_TOKEN_KEY, "tok")
        appwrite_client.list_documents.return_value = {"documents": [_document(wall_clock)]}

        result = await session_store.current()

        assert result.value.token == "tok"


@pytest.mark.asyncio
class TestRevokeDuringLookup:
    async def test_lookup_started_before_revoke_is_not_cached(
        self, session_store, appwrite_client, wall_clock
    ):
        release = asyncio.Event()

        async def slow_lookup(*args, **kwargs):
            await release.wait()
            return {"documents": [_document(wall_clock)]}

        appwrite_client.list_documents.side_effect = slow_lookup
        lookup = asyncio.create_task(session_store.validate("tok"))
        await asyncio.sleep(0)

        assert (await session_store.revoke("s1")).ok
        release.set()
        await lookup

        assert session_store.cache.get("tok") is None
        appwrite_client.list_documents.side_effect = None
        appwrite_client.list_documents.return_value = {
            "documents": [_document(wall_clock, is_active=False)]
        }
        assert (await session_store.validate("tok")).value is None


@pytest.mark.asyncio
class TestCreateRetried:
    async def test_conflict_on_own_write_is_success(self, session_store, appwrite_client):
        def stored(database_id, collection_id, document_id):
            data = appwrite_client.create_document.call_args.args[2]
            return {"$id": document_id, **data}

        appwrite_client.create_document.side_effect = AppwriteAPIError(
            "Document with the requested ID already exists.", 409, "document_already_exists"
        )
        appwrite_client.get_document.side_effect = stored

        result = await session_store.create("u1")

        assert result.ok
        document_id = appwrite_client.create_document.call_args.kwargs["document_id"]
        assert result.value.id == document_id
        appwrite_client.get_document.assert_awaited_once_with(
            "video_site_db", "sessions", document_id
        )

    async def test_conflict_with_other_document_fails(self, session_store, appwrite_client, wall_clock):
        appwrite_client.create_document.side_effect = AppwriteAPIError("exists", 409)
        appwrite_client.get_document.return_value = _document(wall_clock, token="someone-else")

        result = await session_store.create("u1")

        assert not result.ok
        assert isinstance(result.error.__cause__, AppwriteAPIError)


@pytest.mark.asyncio
class TestWithoutTokenStorage:
    async def test_nothing_is_remembered(self, appwrite_client, session_cache, wall_clock):
        store = SessionStore(appwrite_client, cache=session_cache, now=wall_clock)
        appwrite_client.create_document.return_value = {"$id": "s1"}

        assert (await store.create("u1")).ok
        assert (await store.current()).value is None
        assert (await store.revoke("s1")).ok
