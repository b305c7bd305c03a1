"""Tests for Appwrite provisioning."""

import httpx
import pytest

from vidstore.core import MemoryStorage
from vidstore.services.appwrite import AppwriteAPIError
from vidstore.services.credentials import CredentialsManager
from vidstore.services.provisioning import (
    INITIAL_SITE_CONFIG,
    Provisioner,
    SetupOrchestrator,
)
from vidstore.services.schema import (
    DEFAULT_PERMISSIONS,
    SESSION_ATTRIBUTES,
    attributes_for,
    bucket_specs,
    collection_specs,
    indexes_for,
)

CONFLICT = AppwriteAPIError("Document with the requested ID already exists.", 409, "document_already_exists")


@pytest.fixture
def provisioner(appwrite_client) -> Provisioner:
    appwrite_client.get_attribute.return_value = {"status": "available"}
    return Provisioner(appwrite_client, poll_interval=0, ready_timeout=0)


class TestSchema:
    def test_collections_in_order(self):
        assert [c.collection_type for c in collection_specs()] == ["video", "user", "config", "session"]

    def test_video_attributes_include_encryption_tag(self):
        keys = {a.key: a for a in attributes_for("video")}
        assert keys["encrypted_fields"].array
        assert keys["title"].required

    def test_session_attributes(self):
        keys = {a.key: a for a in SESSION_ATTRIBUTES}
        assert keys["is_active"].type == "boolean"
        assert keys["is_active"].default is True
        assert {i.key for i in indexes_for("session")} >= {"token_index", "user_id_index"}

    def test_unknown_type_has_no_attributes(self):
        assert attributes_for("unknown") == ()
        assert indexes_for("config") == ()

    def test_buckets(self):
        assert [b.bucket_id for b in bucket_specs()] == ["videos_bucket", "thumbnails_bucket"]

    def test_default_permissions(self):
        assert DEFAULT_PERMISSIONS[0] == 'read("any")'
        assert 'delete("users")' in DEFAULT_PERMISSIONS


@pytest.mark.asyncio
class TestProvisioner:
    async def test_connection_ok(self, provisioner):
        result = await provisioner.test_connection()
        assert result.success

    async def test_connection_failure(self, provisioner, appwrite_client):
        appwrite_client.list_databases.side_effect = AppwriteAPIError("Unauthorized", 401)
        result = await provisioner.test_connection()
        assert not result.success
        assert "Connection failed" in result.message

    async def test_create_database(self, provisioner, appwrite_client):
        result = await provisioner.create_database()
        assert result.success
        appwrite_client.create_database.assert_awaited_once_with("video_site_db", "Video Site Database")

    async def test_existing_database_is_success(self, provisioner, appwrite_client):
        appwrite_client.create_database.side_effect = CONFLICT
        result = await provisioner.create_database()
        assert result.success
        assert "already exists" in result.message

    async def test_database_failure_raises(self, provisioner, appwrite_client):
        appwrite_client.create_database.side_effect = AppwriteAPIError("server error", 500)
        with pytest.raises(AppwriteAPIError):
            await provisioner.create_database()

    async def test_create_collection(self, provisioner, appwrite_client):
        result = await provisioner.create_collection("sessions", "Sessions", "session")

        assert result.success
        assert result.warnings == []
        args = appwrite_client.create_collection.await_args
        assert args.args[:3] == ("video_site_db", "sessions", "Sessions")
        assert args.kwargs["permissions"] == list(DEFAULT_PERMISSIONS)
        created = [c.args[2].key for c in appwrite_client.create_attribute.await_args_list]
        assert created == [a.key for a in SESSION_ATTRIBUTES]
        assert appwrite_client.get_attribute.await_count == len(SESSION_ATTRIBUTES)
        assert appwrite_client.create_index.await_count == len(indexes_for("session"))

    async def test_existing_collection_is_completed(self, provisioner, appwrite_client):
        appwrite_client.create_collection.side_effect = CONFLICT
        appwrite_client.create_attribute.side_effect = CONFLICT

        result = await provisioner.create_collection("users", "Users", "user")

        assert result.success
        assert "already exists" in result.message
        assert result.warnings == []
        appwrite_client.get_attribute.assert_not_called()
        appwrite_client.create_index.assert_awaited()

    async def test_attribute_failures_are_warnings(self, provisioner, appwrite_client):
        appwrite_client.create_attribute.side_effect = AppwriteAPIError("invalid size", 400)
        appwrite_client.create_index.side_effect = httpx.ReadTimeout("slow")

        result = await provisioner.create_collection("users", "Users", "user")

        assert result.success
        assert len(result.warnings) == len(attributes_for("user")) + len(indexes_for("user"))

    async def test_attribute_never_ready_is_a_warning(self, provisioner, appwrite_client):
        appwrite_client.get_attribute.return_value = {"status": "processing"}
        result = await provisioner.create_collection("users", "Users", "user")
        assert result.success
        assert any("did not become available" in w for w in result.warnings)

    async def test_create_bucket(self, provisioner, appwrite_client):
        appwrite_client.create_bucket.side_effect = CONFLICT
        result = await provisioner.create_bucket("videos_bucket", "Videos")
        assert result.success
        assert "already exists" in result.message

    async def test_initial_data_created_once(self, provisioner, appwrite_client):
        result = await provisioner.create_initial_data()
        assert result.success
        data = appwrite_client.create_document.await_args.args[2]
        assert data == INITIAL_SITE_CONFIG

        appwrite_client.create_document.reset_mock()
        appwrite_client.list_documents.return_value = {"documents": [{"$id": "cfg"}]}
        result = await provisioner.create_initial_data()
        assert result.success
        appwrite_client.create_document.assert_not_called()


@pytest.mark.asyncio
class TestSetupOrchestrator:
    def _orchestrator(self, provisioner, codec, events):
        credentials = CredentialsManager(MemoryStorage(), codec=codec, env_project_id="", env_api_key="")
        orchestrator = SetupOrchestrator(
            provisioner, "proj-1", "key-1", credentials=credentials, on_progress=events.append
        )
        return orchestrator, credentials

    async def test_successful_run(self, provisioner, codec):
        events = []
        orchestrator, credentials = self._orchestrator(provisioner, codec, events)

        result = await orchestrator.run()

        assert result.success
        assert result.errors == []
        assert len(result.details) == 8
        progress = [e.progress for e in events]
        assert progress[0] == 0
        assert progress[-1] == 100
        assert progress == sorted(progress)
        assert events[-1].stage == "complete"
        assert not any(e.is_error for e in events)
        assert credentials.load() == ("proj-1", "key-1")

    async def test_step_failures_are_collected(self, provisioner, appwrite_client, codec):
        appwrite_client.create_bucket.side_effect = AppwriteAPIError("quota exceeded", 403)
        events = []
        orchestrator, credentials = self._orchestrator(provisioner, codec, events)

        result = await orchestrator.run()

        assert not result.success
        assert len(result.errors) == 2
        assert all("bucket" in e for e in result.errors)
        assert events[-1].progress == 100
        assert not credentials.has_credentials()

    async def test_unexpected_failure_reports_error(self, provisioner, appwrite_client, codec):
        appwrite_client.create_database.side_effect = RuntimeError("bug")
        events = []
        orchestrator, credentials = self._orchestrator(provisioner, codec, events)

        result = await orchestrator.run()

        assert not result.success
        assert "bug" in result.errors
        assert events[-1].stage == "error"
        assert events[-1].is_error
        assert not credentials.has_credentials()
