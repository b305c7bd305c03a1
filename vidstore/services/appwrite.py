"""Appwrite REST client - the subset of the Databases and Storage APIs vidstore uses."""

import json
import logging
import secrets
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from vidstore.core import settings
from vidstore.core.retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)

AttributeType = Literal["string", "integer", "float", "boolean", "datetime"]
IndexType = Literal["key", "unique", "fulltext"]

# Appwrite rejects single requests above 5 MiB; larger files go up in chunks
UPLOAD_CHUNK_SIZE = 5 * 1024 * 1024


class AppwriteAPIError(Exception):
    """Raised when Appwrite answers with a non-2xx status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type

    @property
    def is_conflict(self) -> bool:
        """True when the resource being created already exists."""
        if self.status_code == 409:
            return True
        if self.error_type and self.error_type.endswith("_already_exists"):
            return True
        return "already exists" in self.message.lower()

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


def new_id() -> str:
    """Client-side document id, valid for Appwrite (max 36 chars, [a-z0-9])."""
    return secrets.token_hex(10)


class Query:
    """Appwrite query strings (JSON syntax, Appwrite >= 1.5)."""

    @staticmethod
    def equal(attribute: str, value: Any) -> str:
        values = value if isinstance(value, list) else [value]
        return json.dumps({"method": "equal", "attribute": attribute, "values": values})

    @staticmethod
    def limit(count: int) -> str:
        return json.dumps({"method": "limit", "values": [count]})

    @staticmethod
    def cursor_after(document_id: str) -> str:
        return json.dumps({"method": "cursorAfter", "values": [document_id]})


class Role:
    @staticmethod
    def any() -> str:
        return "any"

    @staticmethod
    def users() -> str:
        return "users"


class Permission:
    @staticmethod
    def read(role: str) -> str:
        return f'read("{role}")'

    @staticmethod
    def write(role: str) -> str:
        return f'write("{role}")'

    @staticmethod
    def create(role: str) -> str:
        return f'create("{role}")'

    @staticmethod
    def update(role: str) -> str:
        return f'update("{role}")'

    @staticmethod
    def delete(role: str) -> str:
        return f'delete("{role}")'


@dataclass(frozen=True)
class AttributeSpec:
    """One collection attribute, as sent to the attribute creation endpoints."""

    key: str
    type: AttributeType
    required: bool = False
    size: int | None = None
    default: Any = None
    min: int | float | None = None
    max: int | float | None = None
    array: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "key": self.key,
            "required": self.required,
            "array": self.array,
        }
        if self.type == "string":
            payload["size"] = self.size or 255
        if self.type in ("integer", "float"):
            if self.min is not None:
                payload["min"] = self.min
            if self.max is not None:
                payload["max"] = self.max
        # Appwrite rejects a default on required attributes
        if self.default is not None and not self.required:
            payload["default"] = self.default
        return payload


@dataclass(frozen=True)
class IndexSpec:
    key: str
    type: IndexType
    attributes: tuple[str, ...] = field(default_factory=tuple)

    def to_payload(self) -> dict[str, Any]:
        return {"key": self.key, "type": self.type, "attributes": list(self.attributes)}


class AppwriteClient:
    """Async client for one Appwrite project, authenticated with a server API key."""

    def __init__(
        self,
        project_id: str,
        api_key: str,
        endpoint: str | None = None,
        timeout: float | None = None,
        retry_config: RetryConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.project_id = project_id
        self.endpoint = (endpoint or settings.appwrite_endpoint).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.appwrite_timeout_seconds
        self.retry_config = retry_config or RetryConfig()
        self._api_key = api_key
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.endpoint,
                timeout=self.timeout,
                transport=self._transport,
                headers={
                    "X-Appwrite-Project": self.project_id,
                    "X-Appwrite-Key": self._api_key,
                },
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "AppwriteClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return
        try:
            data = response.json()
        except ValueError:
            data = {}
        raise AppwriteAPIError(
            data.get("message") or f"Appwrite API error: HTTP {response.status_code}",
            status_code=response.status_code,
            error_type=data.get("type"),
        )

    async def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Make a request to the Appwrite API."""

        async def do_request() -> dict[str, Any]:
            response = await self._get_client().request(
                method, path, json=json, params=params, data=data, files=files, headers=headers
            )
            self._raise_for_status(response)
            if not response.content or not response.content.strip():
                return {}
            return response.json()

        return await retry_async(do_request, config=self.retry_config)

    async def _download(self, path: str) -> bytes:
        async def do_request() -> bytes:
            response = await self._get_client().get(path)
            self._raise_for_status(response)
            return response.content

        return await retry_async(do_request, config=self.retry_config)

    # =========================================================================
    # Databases and collections
    # =========================================================================

    async def list_databases(self) -> dict[str, Any]:
        return await self._request("GET", "/databases")

    async def create_database(self, database_id: str, name: str) -> dict[str, Any]:
        return await self._request("POST", "/databases", json={"databaseId": database_id, "name": name})

    async def create_collection(
        self,
        database_id: str,
        collection_id: str,
        name: str,
        permissions: list[str] | None = None,
        document_security: bool = False,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/databases/{database_id}/collections",
            json={
                "collectionId": collection_id,
                "name": name,
                "permissions": permissions or [],
                "documentSecurity": document_security,
            },
        )

    async def get_collection(self, database_id: str, collection_id: str) -> dict[str, Any]:
        return await self._request("GET", f"/databases/{database_id}/collections/{collection_id}")

    async def create_attribute(
        self, database_id: str, collection_id: str, attribute: AttributeSpec
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/databases/{database_id}/collections/{collection_id}/attributes/{attribute.type}",
            json=attribute.to_payload(),
        )

    async def get_attribute(self, database_id: str, collection_id: str, key: str) -> dict[str, Any]:
        return await self._request(
            "GET", f"/databases/{database_id}/collections/{collection_id}/attributes/{key}"
        )

    async def create_index(
        self, database_id: str, collection_id: str, index: IndexSpec
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/databases/{database_id}/collections/{collection_id}/indexes",
            json=index.to_payload(),
        )

    async def get_index(self, database_id: str, collection_id: str, key: str) -> dict[str, Any]:
        return await self._request(
            "GET", f"/databases/{database_id}/collections/{collection_id}/indexes/{key}"
        )

    # =========================================================================
    # Documents
    # =========================================================================

    async def list_documents(
        self,
        database_id: str,
        collection_id: str,
        queries: list[str] | None = None,
    ) -> dict[str, Any]:
        params = {"queries[]": queries} if queries else None
        return await self._request(
            "GET",
            f"/databases/{database_id}/collections/{collection_id}/documents",
            params=params,
        )

    async def get_document(
        self, database_id: str, collection_id: str, document_id: str
    ) -> dict[str, Any]:
        return await self._request(
            "GET", f"/databases/{database_id}/collections/{collection_id}/documents/{document_id}"
        )

    async def create_document(
        self,
        database_id: str,
        collection_id: str,
        data: dict[str, Any],
        document_id: str | None = None,
        permissions: list[str] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"documentId": document_id or new_id(), "data": data}
        if permissions is not None:
            payload["permissions"] = permissions
        return await self._request(
            "POST",
            f"/databases/{database_id}/collections/{collection_id}/documents",
            json=payload,
        )

    async def update_document(
        self,
        database_id: str,
        collection_id: str,
        document_id: str,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        return await self._request(
            "PATCH",
            f"/databases/{database_id}/collections/{collection_id}/documents/{document_id}",
            json={"data": data},
        )

    # =========================================================================
    # Storage
    # =========================================================================

    async def create_bucket(
        self,
        bucket_id: str,
        name: str,
        permissions: list[str] | None = None,
        file_security: bool = False,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/storage/buckets",
            json={
                "bucketId": bucket_id,
                "name": name,
                "permissions": permissions or [],
                "fileSecurity": file_security,
            },
        )

    async def list_files(self, bucket_id: str, queries: list[str] | None = None) -> dict[str, Any]:
        params = {"queries[]": queries} if queries else None
        return await self._request("GET", f"/storage/buckets/{bucket_id}/files", params=params)

    async def download_file(self, bucket_id: str, file_id: str) -> bytes:
        return await self._download(f"/storage/buckets/{bucket_id}/files/{file_id}/download")

    async def create_file(
        self,
        bucket_id: str,
        name: str,
        content: bytes,
        file_id: str | None = None,
        permissions: list[str] | None = None,
        mime_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        """Upload ``content`` as ``name``, in chunks when it exceeds one chunk.

        Every chunk names the same file id, so Appwrite appends the chunks
        to one file.
        """
        file_id = file_id or new_id()
        path = f"/storage/buckets/{bucket_id}/files"
        form: dict[str, Any] = {"fileId": file_id}
        if permissions is not None:
            form["permissions[]"] = permissions

        total = len(content)
        if total <= UPLOAD_CHUNK_SIZE:
            return await self._request(
                "POST", path, data=form, files={"file": (name, content, mime_type)}
            )

        result: dict[str, Any] = {}
        for start in range(0, total, UPLOAD_CHUNK_SIZE):
            chunk = content[start : start + UPLOAD_CHUNK_SIZE]
            headers = {"Content-Range": f"bytes {start}-{start + len(chunk) - 1}/{total}"}
            if start:
                headers["X-Appwrite-ID"] = file_id
            result = await self._request(
                "POST",
                path,
                data=form,
                files={"file": (name, chunk, mime_type)},
                headers=headers,
            )
        return result

    async def delete_file(self, bucket_id: str, file_id: str) -> dict[str, Any]:
        return await self._request("DELETE", f"/storage/buckets/{bucket_id}/files/{file_id}")


_default_client: AppwriteClient | None = None


def get_appwrite_client() -> AppwriteClient:
    """Shared client for the configured project."""
    global _default_client
    if _default_client is None:
        from vidstore.services.credentials import get_credentials_manager

        manager = get_credentials_manager()
        _default_client = AppwriteClient(manager.get_project_id(), manager.get_api_key())
    return _default_client


async def close_appwrite_client() -> None:
    global _default_client
    if _default_client is not None:
        await _default_client.close()
        _default_client = None
