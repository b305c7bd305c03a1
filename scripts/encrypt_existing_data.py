#!/usr/bin/env python3
"""Encrypt video fields stored before field encryption was enabled.

Encrypts title, description, product_link, video_id and thumbnail_id on
every video document that still holds them in plaintext, and tags them in
the document's encrypted_fields list. Already encrypted fields are skipped,
so the command can be re-run safely.

The files command moves video and thumbnail files whose names are still
readable to obfuscated names, repointing video_id and thumbnail_id.

Usage:
    python scripts/encrypt_existing_data.py check
    python scripts/encrypt_existing_data.py encrypt [--dry-run]
    python scripts/encrypt_existing_data.py files [--dry-run]

Credentials come from the saved setup wizard credentials, then from
APPWRITE_PROJECT_ID / APPWRITE_API_KEY.
"""

import argparse
import asyncio
import sys

from vidstore.core import settings, setup_logging
from vidstore.services.appwrite import AppwriteClient
from vidstore.services.credentials import get_credentials_manager
from vidstore.services.migration import FieldEncryptionMigration, FileNameMigration


def _client(args: argparse.Namespace) -> AppwriteClient:
    manager = get_credentials_manager()
    project_id = args.project_id or manager.get_project_id()
    api_key = args.api_key or manager.get_api_key()
    if not project_id or not api_key:
        print("ERROR: No Appwrite credentials. Run the setup wizard or pass --project-id/--api-key")
        sys.exit(1)
    return AppwriteClient(project_id, api_key)


async def check(migration: FieldEncryptionMigration) -> int:
    statuses = await migration.check()
    pending = [s for s in statuses if not s.fully_encrypted]
    for status in pending:
        print(f"Video {status.document_id} is not fully encrypted:")
        for name, state in status.fields.items():
            mark = "-" if state is None else ("yes" if state else "NO")
            print(f"  {name}: {mark}")

    print(f"\nEncrypted videos: {len(statuses) - len(pending)}")
    print(f"Videos pending encryption: {len(pending)}")
    return 0


async def encrypt(migration: FieldEncryptionMigration, dry_run: bool) -> int:
    report = await migration.encrypt(dry_run=dry_run)
    verb = "would be updated" if dry_run else "updated"
    print(f"\nVideos {verb}: {report.updated}")
    print(f"Videos already encrypted: {report.unchanged}")
    print(f"Errors: {report.errors}")
    if report.errors:
        print(f"Failed documents: {', '.join(report.failed_ids)}")
        return 1
    return 0


async def rename_files(migration: FileNameMigration, dry_run: bool) -> int:
    report = await migration.run(dry_run=dry_run)
    verb = "would be moved" if dry_run else "moved"
    print(f"\nFiles {verb}: {report.updated}")
    print(f"Files already obfuscated: {report.unchanged}")
    if not dry_run:
        print(f"Videos repointed: {report.references_updated}")
        print(f"Old files deleted: {report.deleted}")
    print(f"Errors: {report.errors}")
    if report.errors:
        print(f"Failed ids: {', '.join(report.failed_ids)}")
        return 1
    return 0


async def run(args: argparse.Namespace) -> int:
    async with _client(args) as client:
        if args.command == "files":
            return await rename_files(FileNameMigration(client), args.dry_run)
        migration = FieldEncryptionMigration(client)
        if args.command == "check":
            return await check(migration)
        return await encrypt(migration, args.dry_run)


def main():
    parser = argparse.ArgumentParser(description="Encrypt existing vidstore video data")
    parser.add_argument("command", choices=["check", "encrypt", "files"])
    parser.add_argument("--project-id", help="Appwrite project id")
    parser.add_argument("--api-key", help="Appwrite server API key")
    parser.add_argument(
        "--dry-run", action="store_true", help="Show what would change without writing"
    )
    args = parser.parse_args()

    setup_logging(settings.log_level, settings.log_format)
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
