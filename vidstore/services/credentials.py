"""Saved Appwrite project credentials.

Credentials saved by the setup wizard take precedence over the ones in the
environment. Environment credentials are copied into storage the first time
they are read, so later runs keep working if the environment changes.
The API key is stored encrypted.
"""

import logging
from functools import lru_cache

from vidstore.core import LocalStorage, get_local_storage, settings
from vidstore.core.local_storage import API_KEY_KEY, PROJECT_ID_KEY
from vidstore.services.crypto import FieldCodec, get_codec

logger = logging.getLogger(__name__)


class CredentialsManager:
    """Read and write the Appwrite project id and API key."""

    def __init__(
        self,
        storage: LocalStorage,
        codec: FieldCodec | None = None,
        env_project_id: str | None = None,
        env_api_key: str | None = None,
    ):
        self.storage = storage
        self.codec = codec or get_codec()
        self.env_project_id = (
            env_project_id if env_project_id is not None else settings.appwrite_project_id
        )
        self.env_api_key = env_api_key if env_api_key is not None else settings.appwrite_api_key

    def save(self, project_id: str, api_key: str) -> None:
        self.storage.set_item(PROJECT_ID_KEY, project_id)
        self.storage.set_item(API_KEY_KEY, self.codec.encrypt_field(api_key) or "")
        logger.info("Saved Appwrite credentials for project %s", project_id)

    def load(self) -> tuple[str, str]:
        """Return the stored ``(project_id, api_key)``, empty strings when unset."""
        project_id = self.storage.get_item(PROJECT_ID_KEY) or ""
        stored_key = self.storage.get_item(API_KEY_KEY) or ""
        return project_id, self.codec.decrypt_field(stored_key) or ""

    def has_credentials(self) -> bool:
        project_id, api_key = self.load()
        return bool(project_id and api_key)

    def clear(self) -> None:
        self.storage.remove_item(PROJECT_ID_KEY)
        self.storage.remove_item(API_KEY_KEY)
        logger.info("Cleared saved Appwrite credentials")

    def has_environment_credentials(self) -> bool:
        return bool(self.env_project_id and self.env_api_key)

    def get_project_id(self) -> str:
        saved = self.storage.get_item(PROJECT_ID_KEY)
        if not saved and self.env_project_id:
            self.storage.set_item(PROJECT_ID_KEY, self.env_project_id)
            return self.env_project_id
        return saved or ""

    def get_api_key(self) -> str:
        _, saved = self.load()
        if not saved and self.env_api_key:
            self.storage.set_item(API_KEY_KEY, self.codec.encrypt_field(self.env_api_key) or "")
            return self.env_api_key
        return saved


@lru_cache
def get_credentials_manager() -> CredentialsManager:
    return CredentialsManager(get_local_storage())
