"""Reversible encryption for video fields and file names stored in Appwrite.

Values are AES-256-CBC with PKCS7 padding and a fresh random 16-byte IV per
call. The stored text form is ``"<ciphertext>:<iv>"``: URL-safe base64
ciphertext, then the IV as 32 hex characters.

Encrypted and legacy plaintext values coexist in storage, so reads never
fail: anything that cannot be decrypted is returned as it was stored.
Documents written by this module carry an ``encrypted_fields`` list naming
the fields that hold ciphertext; only documents written before that list
existed fall back to parsing the stored text.
"""

import base64
import hashlib
import logging
import re
import secrets
from collections.abc import Iterable
from functools import lru_cache
from typing import Any, NamedTuple

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from vidstore.core import settings

logger = logging.getLogger(__name__)

KEY_LENGTH = 32
BLOCK_SIZE = 16
# OpenSSL header used by the passphrase-based format of the previous frontend
SALTED_HEADER = b"Salted__"

ENCRYPTED_FIELDS_KEY = "encrypted_fields"
ENCRYPTED_VIDEO_FIELDS = ("title", "description", "product_link", "video_id", "thumbnail_id")

_IV_RE = re.compile(r"[0-9a-fA-F]{32}")


class CryptoError(Exception):
    """Base exception for cryptographic operations."""


class InvalidKeyError(CryptoError):
    """Raised when an encryption key is missing or has the wrong length."""


class EncryptionError(CryptoError):
    """Raised when a value cannot be encrypted."""


class DecryptionError(CryptoError):
    """Raised when a value cannot be decrypted.

    Covers malformed text, a wrong key, bad padding and non-UTF-8 output.
    The message never carries the underlying library error.
    """


class PlainValue(NamedTuple):
    """A stored value that is not ciphertext."""

    text: str

    def to_text(self) -> str:
        return self.text


class EncryptedValue(NamedTuple):
    """A ciphertext and the IV it was produced with."""

    ciphertext: str
    iv: str

    def to_text(self) -> str:
        return f"{self.ciphertext}:{self.iv}"


StoredValue = PlainValue | EncryptedValue


def _b64decode(text: str) -> bytes:
    # Accept both alphabets: legacy values use the standard one.
    return base64.b64decode(text.replace("-", "+").replace("_", "/"), validate=True)


def parse_stored(text: str | None) -> StoredValue:
    """Classify a stored string as ciphertext or plaintext by its structure.

    Ciphertext has exactly one ``:``, a 32-hex-character IV and a base64
    payload whose length is a non-zero multiple of the AES block size.
    This is a structural check, not a cryptographic one.
    """
    if not text or text.count(":") != 1:
        return PlainValue(text or "")

    ciphertext, iv = text.split(":")
    if not _IV_RE.fullmatch(iv):
        return PlainValue(text)
    try:
        raw = _b64decode(ciphertext)
    except ValueError:
        return PlainValue(text)
    if not raw or len(raw) % BLOCK_SIZE:
        return PlainValue(text)
    return EncryptedValue(ciphertext, iv)


def is_encrypted(text: str | None) -> bool:
    return isinstance(parse_stored(text), EncryptedValue)


def _evp_bytes_to_key(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    """OpenSSL EVP_BytesToKey with MD5, one iteration: 32-byte key, 16-byte IV."""
    derived = b""
    block = b""
    while len(derived) < KEY_LENGTH + BLOCK_SIZE:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:KEY_LENGTH], derived[KEY_LENGTH : KEY_LENGTH + BLOCK_SIZE]


def _cbc_decrypt(key: bytes, iv: bytes, raw: bytes) -> str:
    decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(raw) + decryptor.finalize()
    unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
    data = unpadder.update(padded) + unpadder.finalize()
    return data.decode("utf-8")


class FieldCodec:
    """Encrypts and decrypts text values with a single shared key.

    ``old_key`` is tried for decryption only, so values written before a key
    rotation stay readable until they are re-encrypted.
    """

    def __init__(
        self,
        key: bytes,
        old_key: bytes | None = None,
        legacy_passphrase: str | None = None,
    ):
        for name, value in (("key", key), ("old_key", old_key)):
            if value is not None and len(value) != KEY_LENGTH:
                raise InvalidKeyError(
                    f"{name} must be {KEY_LENGTH} bytes, got {len(value)} bytes"
                )
        self._key = key
        self._old_key = old_key
        self._legacy_passphrase = legacy_passphrase.encode("utf-8") if legacy_passphrase else None

    @classmethod
    def from_hex(
        cls,
        key_hex: str,
        old_key_hex: str | None = None,
        legacy_passphrase: str | None = None,
    ) -> "FieldCodec":
        try:
            key = bytes.fromhex(key_hex)
            old_key = bytes.fromhex(old_key_hex) if old_key_hex else None
        except ValueError as e:
            raise InvalidKeyError(f"Encryption key must be valid hexadecimal: {e}") from e
        return cls(key, old_key=old_key, legacy_passphrase=legacy_passphrase)

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: str) -> EncryptedValue:
        """Encrypt ``plaintext`` under a fresh random IV."""
        try:
            iv = secrets.token_bytes(BLOCK_SIZE)
            padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
            padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
            encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
            raw = encryptor.update(padded) + encryptor.finalize()
        except Exception as e:
            logger.error("Encryption failed (%s)", type(e).__name__)
            raise EncryptionError("encryption failed") from e
        return EncryptedValue(base64.urlsafe_b64encode(raw).decode("ascii"), iv.hex())

    def decrypt(self, ciphertext: str, iv: str) -> str:
        """Decrypt a ciphertext produced by :meth:`encrypt`.

        Raises:
            DecryptionError: If the input is malformed or no key fits.
        """
        try:
            raw = _b64decode(ciphertext)
        except ValueError as e:
            raise DecryptionError("decryption failed") from e

        if raw.startswith(SALTED_HEADER):
            return self._decrypt_salted(raw)

        if not raw or len(raw) % BLOCK_SIZE:
            raise DecryptionError("decryption failed")
        try:
            iv_bytes = bytes.fromhex(iv)
        except ValueError as e:
            raise DecryptionError("decryption failed") from e
        if len(iv_bytes) != BLOCK_SIZE:
            raise DecryptionError("decryption failed")

        try:
            return _cbc_decrypt(self._key, iv_bytes, raw)
        except ValueError as primary_error:
            if self._old_key is not None:
                try:
                    plaintext = _cbc_decrypt(self._old_key, iv_bytes, raw)
                    logger.info("Decrypted with old key; re-encrypt to finish the rotation")
                    return plaintext
                except ValueError:
                    pass
            raise DecryptionError("decryption failed") from primary_error

    def _decrypt_salted(self, raw: bytes) -> str:
        """Decrypt ``Salted__`` + salt + ciphertext using the legacy passphrase.

        The IV stored next to such values was never used by the legacy
        format; key and IV both come from the passphrase and salt.
        """
        if self._legacy_passphrase is None:
            raise DecryptionError("decryption failed")
        salt = raw[len(SALTED_HEADER) : len(SALTED_HEADER) + 8]
        body = raw[len(SALTED_HEADER) + 8 :]
        if len(salt) != 8 or not body or len(body) % BLOCK_SIZE:
            raise DecryptionError("decryption failed")
        key, iv = _evp_bytes_to_key(self._legacy_passphrase, salt)
        try:
            return _cbc_decrypt(key, iv, body)
        except ValueError as e:
            raise DecryptionError("decryption failed") from e

    # ------------------------------------------------------------------
    # Field helpers
    # ------------------------------------------------------------------

    def encrypt_field(self, value: str | None) -> str | None:
        """Encrypt a field value to its stored text form; blank values pass through."""
        if value is None or not value.strip():
            return value
        return self.encrypt(value).to_text()

    def decrypt_field(self, value: str | None) -> str | None:
        """Decrypt a stored field value, returning it unchanged if it is not ciphertext."""
        if value is None or not value.strip():
            return value
        stored = parse_stored(value)
        if isinstance(stored, PlainValue):
            return value
        try:
            return self.decrypt(stored.ciphertext, stored.iv)
        except DecryptionError:
            logger.debug("Stored value looks encrypted but did not decrypt; returning as-is")
            return value

    def encrypt_document(
        self,
        document: dict[str, Any],
        fields: Iterable[str] = ENCRYPTED_VIDEO_FIELDS,
    ) -> dict[str, Any]:
        """Return a copy of ``document`` with ``fields`` encrypted and tagged.

        Fields already listed in ``encrypted_fields`` are left alone. Untagged
        fields that already hold ciphertext (written before tagging existed)
        are tagged without being encrypted a second time.
        """
        result = dict(document)
        tagged = set(document.get(ENCRYPTED_FIELDS_KEY) or [])
        for field in fields:
            value = document.get(field)
            if field in tagged or not isinstance(value, str) or not value.strip():
                continue
            if not is_encrypted(value):
                result[field] = self.encrypt_field(value)
            tagged.add(field)
        result[ENCRYPTED_FIELDS_KEY] = sorted(tagged)
        return result

    def decrypt_document(
        self,
        document: dict[str, Any],
        fields: Iterable[str] = ENCRYPTED_VIDEO_FIELDS,
    ) -> dict[str, Any]:
        """Return a copy of ``document`` with its encrypted fields decrypted."""
        result = dict(document)
        tagged = document.get(ENCRYPTED_FIELDS_KEY)
        for field in fields:
            value = document.get(field)
            if not isinstance(value, str):
                continue
            if tagged is not None and field not in tagged:
                continue
            result[field] = self.decrypt_field(value)
        return result


@lru_cache
def get_codec() -> FieldCodec:
    """Codec built from the configured keys."""
    return FieldCodec.from_hex(
        settings.vidstore_encryption_key,
        old_key_hex=settings.vidstore_encryption_key_old,
        legacy_passphrase=settings.legacy_passphrase,
    )
