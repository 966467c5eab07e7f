#!/usr/bin/env python3
"""Provision a login record in the file-backed memory store.

Usage:
    # Password account:
    python scripts/seed_record.py --scope app --identifier alice --password 'Correct-Horse-42'

    # Passwordless (social-linked) account with extra attributes:
    python scripts/seed_record.py --scope github --identifier 1234 --attr name=Alice --attr plan=pro

Environment Variables:
    SHARED_FS_ROOT: Directory holding the store state (default /srv/sessionkit)
    SEED_PASSWORD: Password if --password is not given
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from typing import Optional

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def parse_attributes(pairs: list[str]) -> dict[str, str]:
    attributes: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"attribute must look like key=value: {pair!r}")
        attributes[key] = value
    return attributes


def seed_record(
    scope: str,
    identifier: str,
    password: Optional[str],
    attributes: dict[str, str],
    *,
    fs_root: str,
    dry_run: bool = False,
) -> dict:
    """Create the record and return a summary dict with its status."""
    # Import here to avoid loading config before env vars are set
    from sessionkit.service.credentials import Argon2Comparer
    from sessionkit.storage.memory import MemoryStore
    from sessionkit.storage.models import make_identifier_token

    store = MemoryStore(fs_root=fs_root)
    identifier_token = make_identifier_token(scope, identifier)
    existing = store.get_record_by_identifier_token(identifier_token)
    if existing:
        return {"user_id": existing.user_id, "identifier_token": identifier_token, "status": "exists"}
    if dry_run:
        return {"user_id": None, "identifier_token": identifier_token, "status": "dry_run"}

    hashed = Argon2Comparer().hash(password) if password else None
    record = store.create_record(
        scope, identifier, hashed_password=hashed, attributes=attributes
    )
    return {"user_id": record.user_id, "identifier_token": identifier_token, "status": "created"}


def main():
    parser = argparse.ArgumentParser(
        description="Provision a login record for sessionkit",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--scope", required=True, help="Tenant or application scope")
    parser.add_argument("--identifier", required=True, help="Identifier within the scope")
    parser.add_argument(
        "--password",
        default=os.environ.get("SEED_PASSWORD"),
        help="Password (or set SEED_PASSWORD); omit for a passwordless record",
    )
    parser.add_argument(
        "--attr",
        action="append",
        default=[],
        help="User attribute as key=value; repeatable",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )
    args = parser.parse_args()

    if ":" in args.scope:
        print("Error: --scope must not contain ':'")
        sys.exit(1)

    try:
        attributes = parse_attributes(args.attr)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    fs_root = os.environ.get("SHARED_FS_ROOT", "/srv/sessionkit")
    result = seed_record(
        args.scope,
        args.identifier,
        args.password,
        attributes,
        fs_root=fs_root,
        dry_run=args.dry_run,
    )
    if result["status"] == "created":
        print(f"Created record {result['identifier_token']} (user id: {result['user_id']})")
    elif result["status"] == "exists":
        print(f"Record {result['identifier_token']} already exists (user id: {result['user_id']})")
    else:
        print(f"[DRY RUN] Would create record {result['identifier_token']}")


if __name__ == "__main__":
    main()
