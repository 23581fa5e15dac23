#!/usr/bin/env python3
import argparse
import json
import os
from typing import Dict, Tuple

import firebase_admin
from firebase_admin import credentials, firestore

from massclip.repositories import memberships_repo, usage_repo
from massclip.services import content_utils, membership_service


def init_firestore():
    if os.path.exists("firebase-credentials.json"):
        cred = credentials.Certificate("firebase-credentials.json")
    else:
        raw = (os.getenv("FIREBASE_CREDENTIALS", "") or "").strip()
        if not raw:
            raise RuntimeError("Missing firebase-credentials.json and FIREBASE_CREDENTIALS env var.")
        cred = credentials.Certificate(json.loads(raw))
    if not firebase_admin._apps:
        firebase_admin.initialize_app(cred)
    return firestore.client()


def collect_memberships(db) -> Dict[str, dict]:
    """Legacy records keyed by uid. Creator Pro wins over a free record for the same user."""
    memberships = {}
    for doc in usage_repo.list_free_users(db):
        data = doc.to_dict() or {}
        memberships[doc.id] = membership_service.map_free_to_membership(doc.id, data, email=data.get('email'))
    for doc in memberships_repo.list_creator_pro(db):
        data = doc.to_dict() or {}
        memberships[doc.id] = membership_service.map_creator_pro_to_membership(doc.id, data, email=data.get('email'))
    return memberships


def migrate_memberships(db, apply_changes: bool, overwrite: bool = False) -> Tuple[int, int, int]:
    memberships = collect_memberships(db)
    written = 0
    skipped = 0
    for uid, membership in memberships.items():
        if not overwrite and memberships_repo.get_doc(db, uid).exists:
            skipped += 1
            continue
        written += 1
        if apply_changes:
            record = content_utils.clean_for_firestore(dict(membership))
            record['migratedAt'] = firestore.SERVER_TIMESTAMP
            record['updatedAt'] = firestore.SERVER_TIMESTAMP
            record.setdefault('createdAt', firestore.SERVER_TIMESTAMP)
            memberships_repo.set_doc(db, uid, record, merge=True)
    return len(memberships), written, skipped


def main():
    parser = argparse.ArgumentParser(description="Build memberships/{uid} from legacy creatorProUsers and freeUsers records.")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Apply changes. Without this flag, the script runs in dry-run mode.",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Rewrite users that already have a memberships document.",
    )
    args = parser.parse_args()

    db = init_firestore()
    found, written, skipped = migrate_memberships(db, apply_changes=args.apply, overwrite=args.overwrite)
    mode = "APPLY" if args.apply else "DRY-RUN"
    print(f"[{mode}] legacy_users={found}, to_write={written}, already_migrated={skipped}")
    if not args.apply:
        print("No changes were written. Re-run with --apply to persist.")


if __name__ == "__main__":
    main()
