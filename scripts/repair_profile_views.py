#!/usr/bin/env python3
import argparse
import json
import os
from typing import Tuple

import firebase_admin
from firebase_admin import credentials, firestore

from massclip.repositories import profile_views_repo, users_repo
from massclip.services import profile_view_service


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


def repair_profile_views(db, apply_changes: bool) -> Tuple[int, int]:
    scanned = 0
    mismatched = 0
    for doc in users_repo.list_with_profile_views(db):
        scanned += 1
        if apply_changes:
            result = profile_view_service.verify_and_repair_view_count(db, doc.id)
            if result['repaired']:
                mismatched += 1
                print(f"  {doc.id}: {result['originalCount']} -> {result['actualCount']}")
            continue
        stored = int((doc.to_dict() or {}).get('profileViews', 0) or 0)
        actual = len(profile_views_repo.list_views_for_profile(db, doc.id))
        if stored != actual:
            mismatched += 1
            print(f"  {doc.id}: {stored} -> {actual}")
    return scanned, mismatched


def main():
    parser = argparse.ArgumentParser(description="Recount users.profileViews from profile_views records.")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Apply changes. Without this flag, the script runs in dry-run mode.",
    )
    args = parser.parse_args()

    db = init_firestore()
    scanned, mismatched = repair_profile_views(db, apply_changes=args.apply)
    mode = "APPLY" if args.apply else "DRY-RUN"
    print(f"[{mode}] scanned={scanned} users, mismatched_counts={mismatched}")
    if not args.apply:
        print("No changes were written. Re-run with --apply to persist.")


if __name__ == "__main__":
    main()
