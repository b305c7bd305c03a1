#!/usr/bin/env python3
"""Encryption key rotation utility for vidstore.

Re-encrypts every encrypted video field from an old key to a new key.
Run this script, then update VIDSTORE_ENCRYPTION_KEY in your environment.
Keeping the old key in VIDSTORE_ENCRYPTION_KEY_OLD meanwhile lets running
services read values that have not been rotated yet.

Usage:
    python scripts/rotate_encryption_key.py --old-key <old_hex> --new-key <new_hex>
    python scripts/rotate_encryption_key.py --old-key <old_hex> --generate-new

Encrypted video fields:
    title, description, product_link, video_id, thumbnail_id
"""

import argparse
import asyncio
import secrets
import sys

from vidstore.core import settings, setup_logging
from vidstore.services.appwrite import AppwriteClient
from vidstore.services.credentials import get_credentials_manager
from vidstore.services.crypto import FieldCodec
from vidstore.services.migration import FieldEncryptionMigration


def _validate_key(key_hex: str, name: str) -> bytes:
    """Validate and convert a hex key string to bytes."""
    if len(key_hex) != 64:
        print(f"ERROR: {name} must be 64 hex characters (32 bytes). Got {len(key_hex)}.")
        sys.exit(1)
    try:
        return bytes.fromhex(key_hex)
    except ValueError:
        print(f"ERROR: {name} is not valid hexadecimal.")
        sys.exit(1)


async def rotate(old_key: bytes, new_key: bytes, args: argparse.Namespace) -> tuple[int, int]:
    manager = get_credentials_manager()
    project_id = args.project_id or manager.get_project_id()
    api_key = args.api_key or manager.get_api_key()
    if not project_id or not api_key:
        print("ERROR: No Appwrite credentials. Run the setup wizard or pass --project-id/--api-key")
        sys.exit(1)

    async with AppwriteClient(project_id, api_key) as client:
        migration = FieldEncryptionMigration(client, codec=FieldCodec(old_key))
        report = await migration.rotate(FieldCodec(new_key), dry_run=args.dry_run)

    for document_id in report.failed_ids:
        print(f"  videos (id={document_id}): FAILED")
    return report.updated, report.errors


def main():
    parser = argparse.ArgumentParser(description="Rotate vidstore encryption key")
    parser.add_argument("--old-key", required=True, help="Current 64-char hex key")
    parser.add_argument("--new-key", help="New 64-char hex key")
    parser.add_argument(
        "--generate-new",
        action="store_true",
        help="Generate a new key instead of providing one",
    )
    parser.add_argument("--project-id", help="Appwrite project id")
    parser.add_argument("--api-key", help="Appwrite server API key")
    parser.add_argument(
        "--dry-run", action="store_true", help="Show what would change without writing"
    )
    args = parser.parse_args()

    old_key = _validate_key(args.old_key, "--old-key")

    if args.generate_new:
        new_key_hex = secrets.token_hex(32)
        new_key = bytes.fromhex(new_key_hex)
        print(f"Generated new key: {new_key_hex}")
    elif args.new_key:
        new_key_hex = args.new_key
        new_key = _validate_key(args.new_key, "--new-key")
    else:
        print("ERROR: Provide --new-key or --generate-new")
        sys.exit(1)

    if old_key == new_key:
        print("ERROR: Old and new keys are identical.")
        sys.exit(1)

    setup_logging(settings.log_level, settings.log_format)
    rotated, errors = asyncio.run(rotate(old_key, new_key, args))

    if args.dry_run:
        print(f"\nDry run complete: {rotated} documents would be rotated, {errors} errors")
    else:
        print(f"\nRotation complete: {rotated} documents rotated, {errors} errors")

    if errors > 0:
        print("\nWARNING: Some documents failed to rotate. Do NOT update the encryption key.")
        print("Investigate the errors above and re-run.")
        sys.exit(1)
    elif rotated > 0:
        print(f"\nUpdate your environment: VIDSTORE_ENCRYPTION_KEY={new_key_hex}")
        print(f"and keep VIDSTORE_ENCRYPTION_KEY_OLD={args.old_key} until all services restart.")
    else:
        print("\nNo encrypted values found. Key rotation not needed.")


if __name__ == "__main__":
    main()
