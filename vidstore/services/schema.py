"""Collections and buckets the storefront needs in its Appwrite project.

Fields that are stored encrypted (see ``crypto.ENCRYPTED_VIDEO_FIELDS``) are
sized for the ``<ciphertext>:<iv>`` form, which is roughly 4/3 of the
plaintext length plus 33 characters.
"""

from dataclasses import dataclass, field
from typing import Literal

from vidstore.core import settings
from vidstore.services.appwrite import AttributeSpec, IndexSpec, Permission, Role

CollectionType = Literal["video", "user", "config", "session"]

DEFAULT_PERMISSIONS: tuple[str, ...] = (
    Permission.read(Role.any()),
    Permission.write(Role.users()),
    Permission.create(Role.users()),
    Permission.update(Role.users()),
    Permission.delete(Role.users()),
)


@dataclass(frozen=True)
class CollectionSpec:
    collection_id: str
    name: str
    collection_type: CollectionType
    attributes: tuple[AttributeSpec, ...] = field(default_factory=tuple)
    indexes: tuple[IndexSpec, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class BucketSpec:
    bucket_id: str
    name: str


VIDEO_ATTRIBUTES = (
    AttributeSpec("title", "string", required=True, size=1024),
    AttributeSpec("description", "string", size=8192),
    AttributeSpec("price", "float", required=True, min=0),
    AttributeSpec("duration", "integer", min=0),
    AttributeSpec("video_id", "string", size=1024),
    AttributeSpec("thumbnail_id", "string", size=1024),
    AttributeSpec("created_at", "datetime"),
    AttributeSpec("is_active", "boolean", default=True),
    AttributeSpec("views", "integer", min=0, default=0),
    AttributeSpec("product_link", "string", size=2048),
    AttributeSpec("encrypted_fields", "string", size=64, array=True),
)

VIDEO_INDEXES = (
    IndexSpec("created_at_index", "key", ("created_at",)),
    IndexSpec("is_active_index", "key", ("is_active",)),
)

USER_ATTRIBUTES = (
    AttributeSpec("email", "string", required=True, size=255),
    AttributeSpec("name", "string", required=True, size=255),
    AttributeSpec("password", "string", required=True, size=255),
    AttributeSpec("created_at", "datetime"),
)

USER_INDEXES = (IndexSpec("email_index", "unique", ("email",)),)

CONFIG_ATTRIBUTES = (
    AttributeSpec("site_name", "string", required=True, size=255),
    AttributeSpec("paypal_client_id", "string", size=255),
    AttributeSpec("stripe_publishable_key", "string", size=255),
    AttributeSpec("stripe_secret_key", "string", size=512),
    AttributeSpec("telegram_username", "string", size=255),
    AttributeSpec("video_list_title", "string", size=255),
    AttributeSpec("crypto", "string", size=2000, array=True),
    AttributeSpec("email_host", "string", size=255),
    AttributeSpec("email_port", "string", size=10),
    AttributeSpec("email_secure", "boolean"),
    AttributeSpec("email_user", "string", size=255),
    AttributeSpec("email_pass", "string", size=512),
    AttributeSpec("email_from", "string", size=255),
)

SESSION_ATTRIBUTES = (
    AttributeSpec("user_id", "string", required=True, size=255),
    AttributeSpec("token", "string", required=True, size=255),
    AttributeSpec("expires_at", "datetime", required=True),
    AttributeSpec("created_at", "datetime"),
    AttributeSpec("is_active", "boolean", default=True),
    AttributeSpec("ip_address", "string", size=45),
    AttributeSpec("user_agent", "string", size=1000),
)

SESSION_INDEXES = (
    IndexSpec("token_index", "unique", ("token",)),
    IndexSpec("user_id_index", "key", ("user_id",)),
    IndexSpec("expires_at_index", "key", ("expires_at",)),
    IndexSpec("is_active_index", "key", ("is_active",)),
)

_ATTRIBUTES: dict[str, tuple[AttributeSpec, ...]] = {
    "video": VIDEO_ATTRIBUTES,
    "user": USER_ATTRIBUTES,
    "config": CONFIG_ATTRIBUTES,
    "session": SESSION_ATTRIBUTES,
}

_INDEXES: dict[str, tuple[IndexSpec, ...]] = {
    "video": VIDEO_INDEXES,
    "user": USER_INDEXES,
    "session": SESSION_INDEXES,
}


def attributes_for(collection_type: str) -> tuple[AttributeSpec, ...]:
    """Attributes of a collection type; unknown types have none."""
    return _ATTRIBUTES.get(collection_type, ())


def indexes_for(collection_type: str) -> tuple[IndexSpec, ...]:
    return _INDEXES.get(collection_type, ())


def collection_specs() -> tuple[CollectionSpec, ...]:
    """The four storefront collections, in creation order."""
    return tuple(
        CollectionSpec(
            collection_id=collection_id,
            name=name,
            collection_type=collection_type,
            attributes=attributes_for(collection_type),
            indexes=indexes_for(collection_type),
        )
        for collection_id, name, collection_type in (
            (settings.video_collection_id, "Videos", "video"),
            (settings.user_collection_id, "Users", "user"),
            (settings.site_config_collection_id, "Site Configuration", "config"),
            (settings.session_collection_id, "Sessions", "session"),
        )
    )


def bucket_specs() -> tuple[BucketSpec, ...]:
    return (
        BucketSpec(settings.videos_bucket_id, "Videos"),
        BucketSpec(settings.thumbnails_bucket_id, "Thumbnails"),
    )
