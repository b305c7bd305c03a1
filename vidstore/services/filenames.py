"""Obfuscated names for uploaded video and thumbnail files.

Format: ``{type}_{timestampMillis}_{suffix}_{ciphertext}:{iv}.{extension}``.
The whole original name is encrypted; the extension is repeated in clear text
so storage can infer the MIME type.
"""

import logging
import secrets
import string
import time

from vidstore.services.crypto import FieldCodec, get_codec, is_encrypted

logger = logging.getLogger(__name__)

FILE_TYPES = ("video", "thumbnail")
SUFFIX_LENGTH = 6
_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits

MIME_TYPES = {
    "mp4": "video/mp4",
    "avi": "video/x-msvideo",
    "mov": "video/quicktime",
    "wmv": "video/x-ms-wmv",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
}


def _extension(filename: str) -> str:
    _, dot, extension = filename.rpartition(".")
    return extension if dot else ""


def build_obfuscated_filename(
    original_name: str,
    file_type: str,
    codec: FieldCodec | None = None,
    now_ms: int | None = None,
) -> str:
    """Build a unique storage name for ``original_name``.

    Two calls with the same arguments never return the same name: the
    timestamp, the random suffix and the IV all change.
    """
    if file_type not in FILE_TYPES:
        raise ValueError(f"file_type must be one of {', '.join(FILE_TYPES)}, got {file_type!r}")
    if not original_name or not original_name.strip():
        raise ValueError("original_name must not be empty")

    codec = codec or get_codec()
    timestamp = now_ms if now_ms is not None else time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    encrypted = codec.encrypt(original_name).to_text()
    name = f"{file_type}_{timestamp}_{suffix}_{encrypted}"

    extension = _extension(original_name)
    return f"{name}.{extension}" if extension else name


def extract_original_filename(filename: str, codec: FieldCodec | None = None) -> str:
    """Recover the original name from an obfuscated one.

    Names that do not follow the obfuscated format, or do not decrypt,
    are returned unchanged.
    """
    if not filename:
        return filename

    # Ciphertext is base64 and the IV is hex, neither contains a dot.
    stem = filename.split(".", 1)[0]
    parts = stem.split("_")
    if len(parts) < 4:
        return filename

    encrypted_part = "_".join(parts[3:])
    codec = codec or get_codec()
    original = codec.decrypt_field(encrypted_part)
    if original == encrypted_part:
        logger.debug("Could not extract original name from %s", filename)
        return filename
    return original


def is_obfuscated_filename(filename: str) -> bool:
    """True when ``filename`` already has the obfuscated structure; no key needed."""
    parts = filename.split(".", 1)[0].split("_")
    if len(parts) < 4 or parts[0] not in FILE_TYPES or not parts[1].isdigit():
        return False
    return is_encrypted("_".join(parts[3:]))


def guess_mime_type(filename: str) -> str:
    return MIME_TYPES.get(_extension(filename).lower(), "application/octet-stream")
