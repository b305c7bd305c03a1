"""Provisioning of the storefront's Appwrite project.

``Provisioner`` runs the individual setup actions against one project. Each
action is idempotent: resources that already exist count as success.
``SetupOrchestrator`` runs the whole pipeline in a fixed order and reports
progress as it goes.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from vidstore.core import settings
from vidstore.core.retry import wait_until_ready
from vidstore.services.appwrite import AppwriteAPIError, AppwriteClient
from vidstore.services.credentials import CredentialsManager
from vidstore.services.schema import (
    DEFAULT_PERMISSIONS,
    attributes_for,
    bucket_specs,
    collection_specs,
    indexes_for,
)

logger = logging.getLogger(__name__)

INITIAL_SITE_CONFIG = {
    "site_name": "Video Site",
    "video_list_title": "Featured Videos",
    "crypto": [],
}

# Appwrite attribute status once it can be used in indexes and documents
ATTRIBUTE_AVAILABLE = "available"
ATTRIBUTE_FAILED = "failed"

BACKEND_ERRORS = (AppwriteAPIError, httpx.HTTPError)


@dataclass
class ActionResult:
    success: bool
    message: str
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SetupProgress:
    stage: str
    progress: int
    message: str
    is_error: bool = False


@dataclass
class SetupResult:
    success: bool
    message: str
    details: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class Provisioner:
    """Setup actions for one Appwrite project."""

    def __init__(
        self,
        client: AppwriteClient,
        database_id: str | None = None,
        database_name: str | None = None,
        poll_interval: float | None = None,
        ready_timeout: float | None = None,
    ):
        self.client = client
        self.database_id = database_id or settings.database_id
        self.database_name = database_name or settings.database_name
        self.poll_interval = (
            poll_interval
            if poll_interval is not None
            else settings.provisioning_poll_interval_seconds
        )
        self.ready_timeout = (
            ready_timeout
            if ready_timeout is not None
            else settings.provisioning_ready_timeout_seconds
        )

    async def test_connection(self) -> ActionResult:
        try:
            await self.client.list_databases()
        except BACKEND_ERRORS as e:
            logger.warning("Connection test failed for project %s: %s", self.client.project_id, e)
            return ActionResult(
                False, "Connection failed: invalid credentials or project not found"
            )
        return ActionResult(True, "Connection established")

    async def create_database(self) -> ActionResult:
        try:
            await self.client.create_database(self.database_id, self.database_name)
        except AppwriteAPIError as e:
            if e.is_conflict:
                return ActionResult(True, "Database already exists")
            raise
        logger.info("Created database %s", self.database_id)
        return ActionResult(True, "Database created")

    async def create_collection(
        self, collection_id: str, name: str, collection_type: str
    ) -> ActionResult:
        """Create a collection with its attributes and indexes.

        An existing collection is completed instead: attributes and indexes
        it lacks are added. Attribute and index failures are reported as
        warnings and do not fail the action.
        """
        existed = False
        try:
            await self.client.create_collection(
                self.database_id,
                collection_id,
                name,
                permissions=list(DEFAULT_PERMISSIONS),
            )
        except AppwriteAPIError as e:
            if not e.is_conflict:
                raise
            existed = True

        warnings: list[str] = []
        created: list[str] = []
        for attribute in attributes_for(collection_type):
            try:
                await self.client.create_attribute(self.database_id, collection_id, attribute)
                created.append(attribute.key)
            except BACKEND_ERRORS as e:
                if isinstance(e, AppwriteAPIError) and e.is_conflict:
                    continue
                logger.warning("Error creating attribute %s.%s: %s", collection_id, attribute.key, e)
                warnings.append(f"attribute '{attribute.key}': {e}")

        for key in created:
            if not await self._wait_for_attribute(collection_id, key):
                warnings.append(f"attribute '{key}' did not become available")

        for index in indexes_for(collection_type):
            try:
                await self.client.create_index(self.database_id, collection_id, index)
            except BACKEND_ERRORS as e:
                if isinstance(e, AppwriteAPIError) and e.is_conflict:
                    continue
                logger.warning("Error creating index %s.%s: %s", collection_id, index.key, e)
                warnings.append(f"index '{index.key}': {e}")

        if existed:
            message = f"Collection '{name}' already exists"
        else:
            message = f"Collection '{name}' created and configured"
        return ActionResult(True, message, warnings)

    async def _wait_for_attribute(self, collection_id: str, key: str) -> bool:
        async def attribute_ready() -> bool:
            attribute = await self.client.get_attribute(self.database_id, collection_id, key)
            status = attribute.get("status")
            if status == ATTRIBUTE_FAILED:
                raise AppwriteAPIError(attribute.get("error") or f"attribute {key} failed")
            return status == ATTRIBUTE_AVAILABLE

        return await wait_until_ready(
            attribute_ready,
            interval=self.poll_interval,
            timeout=self.ready_timeout,
            description=f"attribute {collection_id}.{key}",
        )

    async def create_bucket(self, bucket_id: str, name: str) -> ActionResult:
        try:
            await self.client.create_bucket(bucket_id, name, permissions=list(DEFAULT_PERMISSIONS))
        except AppwriteAPIError as e:
            if e.is_conflict:
                return ActionResult(True, f"Bucket '{name}' already exists")
            raise
        logger.info("Created bucket %s", bucket_id)
        return ActionResult(True, f"Bucket '{name}' created")

    async def create_initial_data(self) -> ActionResult:
        """Create the singleton site configuration document if it is missing."""
        response = await self.client.list_documents(
            self.database_id, settings.site_config_collection_id
        )
        if response.get("documents"):
            return ActionResult(True, "Site configuration already exists")

        await self.client.create_document(
            self.database_id, settings.site_config_collection_id, dict(INITIAL_SITE_CONFIG)
        )
        logger.info("Created initial site configuration")
        return ActionResult(True, "Initial site configuration created")


ProgressCallback = Callable[[SetupProgress], None]


class SetupOrchestrator:
    """Runs database, collections, buckets and initial data, in that order.

    Step failures are collected and the pipeline moves on; the run succeeds
    only when no step failed, in which case the credentials are saved.
    """

    def __init__(
        self,
        provisioner: Provisioner,
        project_id: str,
        api_key: str,
        credentials: CredentialsManager | None = None,
        on_progress: ProgressCallback | None = None,
    ):
        self.provisioner = provisioner
        self.project_id = project_id
        self.api_key = api_key
        self.credentials = credentials
        self.on_progress = on_progress

    def _report(self, stage: str, progress: int, message: str, is_error: bool = False) -> None:
        logger.info("Setup %s (%d%%): %s", stage, progress, message)
        if self.on_progress:
            self.on_progress(SetupProgress(stage, progress, message, is_error))

    async def run(self) -> SetupResult:
        details: list[str] = []
        errors: list[str] = []

        try:
            self._report("init", 0, "Starting database setup")

            try:
                result = await self.provisioner.create_database()
                details.append(result.message)
            except BACKEND_ERRORS as e:
                errors.append(f"Error configuring database: {e}")
            self._report("database", 20, "Database configured")

            progress = 20
            for spec in collection_specs():
                try:
                    result = await self.provisioner.create_collection(
                        spec.collection_id, spec.name, spec.collection_type
                    )
                    details.append(result.message)
                    details.extend(f"{spec.name}: {w}" for w in result.warnings)
                except BACKEND_ERRORS as e:
                    errors.append(f"Error configuring collection '{spec.name}': {e}")
                progress += 10
                self._report("collections", progress, f"Collection '{spec.name}' configured")

            for bucket in bucket_specs():
                try:
                    result = await self.provisioner.create_bucket(bucket.bucket_id, bucket.name)
                    details.append(result.message)
                except BACKEND_ERRORS as e:
                    errors.append(f"Error configuring bucket '{bucket.name}': {e}")
                progress += 10
                self._report("storage", progress, f"Bucket '{bucket.name}' configured")

            try:
                result = await self.provisioner.create_initial_data()
                details.append(result.message)
            except BACKEND_ERRORS as e:
                errors.append(f"Error creating initial data: {e}")
            self._report("initial_data", 90, "Initial data configured")

            if not errors and self.credentials is not None:
                self.credentials.save(self.project_id, self.api_key)

            self._report("complete", 100, "Setup complete")
        except Exception as e:
            logger.exception("Database setup failed")
            self._report("error", 0, f"Error during setup: {e}", is_error=True)
            return SetupResult(
                success=False,
                message="Database setup failed",
                details=details,
                errors=[*errors, str(e)],
            )

        if errors:
            return SetupResult(False, "Setup completed with errors", details, errors)
        return SetupResult(True, "Database configured successfully", details, errors)
