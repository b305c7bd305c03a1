"""Bulk maintenance of encrypted video data.

``FieldEncryptionMigration`` encrypts video documents written before field
encryption was enabled, and re-encrypts them when the key is rotated.
``FileNameMigration`` moves stored files to obfuscated names. A failure on
one document or file is counted and logged; the run carries on.
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from vidstore.core import settings
from vidstore.services.appwrite import AppwriteAPIError, AppwriteClient, Query, new_id
from vidstore.services.crypto import (
    ENCRYPTED_FIELDS_KEY,
    ENCRYPTED_VIDEO_FIELDS,
    CryptoError,
    EncryptedValue,
    FieldCodec,
    get_codec,
    is_encrypted,
    parse_stored,
)
from vidstore.services.filenames import (
    build_obfuscated_filename,
    guess_mime_type,
    is_obfuscated_filename,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100

_DOCUMENT_ERRORS = (AppwriteAPIError, httpx.HTTPError, CryptoError)

# Video attributes holding storage file ids
FILE_REFERENCE_FIELDS = ("video_id", "thumbnail_id")


async def _paginate(
    fetch: Callable[[list[str]], Awaitable[dict[str, Any]]],
    key: str,
    page_size: int,
) -> AsyncIterator[dict[str, Any]]:
    """Every item of a listing, paged by cursor."""
    cursor: str | None = None
    while True:
        queries = [Query.limit(page_size)]
        if cursor:
            queries.append(Query.cursor_after(cursor))
        response = await fetch(queries)
        page = response.get(key, [])
        for item in page:
            yield item
        if len(page) < page_size:
            return
        cursor = page[-1]["$id"]


@dataclass
class DocumentStatus:
    """Encryption state per field: True encrypted, False plaintext, None empty."""

    document_id: str
    fields: dict[str, bool | None]

    @property
    def fully_encrypted(self) -> bool:
        return all(state is not False for state in self.fields.values())


@dataclass
class MigrationReport:
    updated: int = 0
    unchanged: int = 0
    errors: int = 0
    failed_ids: list[str] = field(default_factory=list)

    def record_error(self, document_id: str) -> None:
        self.errors += 1
        self.failed_ids.append(document_id)


class FieldEncryptionMigration:
    def __init__(
        self,
        client: AppwriteClient,
        codec: FieldCodec | None = None,
        database_id: str | None = None,
        collection_id: str | None = None,
        fields: tuple[str, ...] = ENCRYPTED_VIDEO_FIELDS,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.client = client
        self.codec = codec or get_codec()
        self.database_id = database_id or settings.database_id
        self.collection_id = collection_id or settings.video_collection_id
        self.fields = fields
        self.page_size = page_size

    async def documents(self) -> AsyncIterator[dict[str, Any]]:
        """Every document of the collection, paged by cursor."""

        def fetch(queries: list[str]) -> Awaitable[dict[str, Any]]:
            return self.client.list_documents(self.database_id, self.collection_id, queries)

        async for document in _paginate(fetch, "documents", self.page_size):
            yield document

    def field_status(self, document: dict[str, Any]) -> DocumentStatus:
        tagged = set(document.get(ENCRYPTED_FIELDS_KEY) or [])
        states: dict[str, bool | None] = {}
        for name in self.fields:
            value = document.get(name)
            if not isinstance(value, str) or not value.strip():
                states[name] = None
            else:
                states[name] = name in tagged or is_encrypted(value)
        return DocumentStatus(document_id=document["$id"], fields=states)

    async def check(self) -> list[DocumentStatus]:
        """Encryption status of every document."""
        statuses = [self.field_status(document) async for document in self.documents()]
        pending = sum(1 for status in statuses if not status.fully_encrypted)
        logger.info(
            "Checked %d documents: %d fully encrypted, %d pending",
            len(statuses),
            len(statuses) - pending,
            pending,
        )
        return statuses

    def _changes(self, document: dict[str, Any], updated: dict[str, Any]) -> dict[str, Any]:
        keys = (*self.fields, ENCRYPTED_FIELDS_KEY)
        return {key: updated[key] for key in keys if updated.get(key) != document.get(key)}

    async def encrypt(self, dry_run: bool = False) -> MigrationReport:
        """Encrypt and tag every field that still holds plaintext."""
        report = MigrationReport()
        async for document in self.documents():
            document_id = document["$id"]
            try:
                changes = self._changes(
                    document, self.codec.encrypt_document(document, self.fields)
                )
                if not changes:
                    report.unchanged += 1
                    continue
                if not dry_run:
                    await self.client.update_document(
                        self.database_id, self.collection_id, document_id, changes
                    )
                logger.info("Encrypted %s on document %s", sorted(changes), document_id)
                report.updated += 1
            except _DOCUMENT_ERRORS as e:
                logger.error("Error encrypting document %s: %s", document_id, e)
                report.record_error(document_id)
        return report

    async def rotate(self, new_codec: FieldCodec, dry_run: bool = False) -> MigrationReport:
        """Re-encrypt every encrypted field from this codec's key to ``new_codec``'s.

        A field that does not decrypt with the old key fails its document,
        which is then left untouched.
        """
        report = MigrationReport()
        async for document in self.documents():
            document_id = document["$id"]
            try:
                changes = self._rotate_document(document, new_codec)
                if not changes:
                    report.unchanged += 1
                    continue
                if not dry_run:
                    await self.client.update_document(
                        self.database_id, self.collection_id, document_id, changes
                    )
                logger.info("Rotated %d fields on document %s", len(changes), document_id)
                report.updated += 1
            except _DOCUMENT_ERRORS as e:
                logger.error("Error rotating document %s: %s", document_id, e)
                report.record_error(document_id)
        return report

    def _rotate_document(self, document: dict[str, Any], new_codec: FieldCodec) -> dict[str, str]:
        tagged = document.get(ENCRYPTED_FIELDS_KEY)
        changes: dict[str, str] = {}
        for name in self.fields:
            value = document.get(name)
            if not isinstance(value, str) or (tagged is not None and name not in tagged):
                continue
            stored = parse_stored(value)
            if not isinstance(stored, EncryptedValue):
                continue
            plaintext = self.codec.decrypt(stored.ciphertext, stored.iv)
            changes[name] = new_codec.encrypt(plaintext).to_text()
        return changes


@dataclass(frozen=True)
class FileCopy:
    bucket_id: str
    old_file_id: str
    new_file_id: str
    name: str


@dataclass
class FileMigrationReport(MigrationReport):
    references_updated: int = 0
    deleted: int = 0


class FileNameMigration:
    """Moves stored files to obfuscated names.

    Appwrite cannot rename a file in place, so each file with a readable
    name is copied to a new id under its obfuscated name. Video documents
    pointing at the old id are then repointed, keeping the reference
    encrypted if it was, and the old file is deleted. An old file stays
    when a document still pointing at it could not be updated.
    """

    def __init__(
        self,
        client: AppwriteClient,
        codec: FieldCodec | None = None,
        database_id: str | None = None,
        collection_id: str | None = None,
        buckets: tuple[tuple[str, str], ...] | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.client = client
        self.codec = codec or get_codec()
        self.database_id = database_id or settings.database_id
        self.collection_id = collection_id or settings.video_collection_id
        self.buckets = buckets or (
            (settings.videos_bucket_id, "video"),
            (settings.thumbnails_bucket_id, "thumbnail"),
        )
        self.page_size = page_size

    async def files(self, bucket_id: str) -> AsyncIterator[dict[str, Any]]:
        def fetch(queries: list[str]) -> Awaitable[dict[str, Any]]:
            return self.client.list_files(bucket_id, queries)

        async for file in _paginate(fetch, "files", self.page_size):
            yield file

    async def run(self, dry_run: bool = False) -> FileMigrationReport:
        report = FileMigrationReport()
        copies: dict[str, FileCopy] = {}
        for bucket_id, file_type in self.buckets:
            # Listed up front: the copies land in the same bucket
            files = [file async for file in self.files(bucket_id)]
            for file in files:
                copy = await self._copy_file(bucket_id, file_type, file, report, dry_run)
                if copy is not None:
                    copies[copy.old_file_id] = copy

        if copies:
            still_referenced = await self._update_references(copies, report)
            await self._delete_old_files(copies, still_referenced, report)
        return report

    async def _copy_file(
        self,
        bucket_id: str,
        file_type: str,
        file: dict[str, Any],
        report: FileMigrationReport,
        dry_run: bool,
    ) -> FileCopy | None:
        file_id = file["$id"]
        name = file.get("name") or ""
        if not name.strip() or is_obfuscated_filename(name):
            report.unchanged += 1
            return None
        if dry_run:
            logger.info("Would move %s/%s to an obfuscated name", bucket_id, file_id)
            report.updated += 1
            return None

        try:
            new_name = build_obfuscated_filename(name, file_type, self.codec)
            content = await self.client.download_file(bucket_id, file_id)
            new_file_id = new_id()
            await self.client.create_file(
                bucket_id,
                new_name,
                content,
                file_id=new_file_id,
                permissions=file.get("$permissions"),
                mime_type=file.get("mimeType") or guess_mime_type(name),
            )
        except _DOCUMENT_ERRORS as e:
            logger.error("Error copying file %s/%s: %s", bucket_id, file_id, e)
            report.record_error(file_id)
            return None

        logger.info("Copied %s/%s to %s", bucket_id, file_id, new_file_id)
        report.updated += 1
        return FileCopy(bucket_id, file_id, new_file_id, new_name)

    def _resolve_reference(
        self, document: dict[str, Any], name: str
    ) -> tuple[str | None, bool]:
        """The file id a reference field holds, and whether it is stored encrypted."""
        stored = document.get(name)
        if not isinstance(stored, str) or not stored.strip():
            return None, False
        tagged = document.get(ENCRYPTED_FIELDS_KEY)
        if tagged is not None and name not in tagged:
            return stored, False
        file_id = self.codec.decrypt_field(stored)
        return file_id, file_id != stored

    async def _update_references(
        self, copies: dict[str, FileCopy], report: FileMigrationReport
    ) -> set[str]:
        """Repoint video documents; returns old file ids a document still points at."""
        still_referenced: set[str] = set()
        videos = FieldEncryptionMigration(
            self.client,
            codec=self.codec,
            database_id=self.database_id,
            collection_id=self.collection_id,
            page_size=self.page_size,
        )
        try:
            async for document in videos.documents():
                changes: dict[str, str] = {}
                old_ids: list[str] = []
                for name in FILE_REFERENCE_FIELDS:
                    file_id, encrypted = self._resolve_reference(document, name)
                    copy = copies.get(file_id) if file_id else None
                    if copy is None:
                        continue
                    old_ids.append(copy.old_file_id)
                    changes[name] = (
                        self.codec.encrypt(copy.new_file_id).to_text()
                        if encrypted
                        else copy.new_file_id
                    )
                if not changes:
                    continue
                try:
                    await self.client.update_document(
                        self.database_id, self.collection_id, document["$id"], changes
                    )
                except _DOCUMENT_ERRORS as e:
                    logger.error("Error repointing video %s: %s", document["$id"], e)
                    report.record_error(document["$id"])
                    still_referenced.update(old_ids)
                    continue
                report.references_updated += 1
        except _DOCUMENT_ERRORS as e:
            logger.error("Error listing videos, keeping every old file: %s", e)
            report.errors += 1
            return set(copies)
        return still_referenced

    async def _delete_old_files(
        self,
        copies: dict[str, FileCopy],
        still_referenced: set[str],
        report: FileMigrationReport,
    ) -> None:
        for old_file_id, copy in copies.items():
            if old_file_id in still_referenced:
                logger.warning(
                    "Keeping %s/%s: a video still points at it", copy.bucket_id, old_file_id
                )
                continue
            try:
                await self.client.delete_file(copy.bucket_id, old_file_id)
            except _DOCUMENT_ERRORS as e:
                logger.error("Error deleting file %s/%s: %s", copy.bucket_id, old_file_id, e)
                report.record_error(old_file_id)
                continue
            report.deleted += 1
