#!/usr/bin/env python3
import argparse
import json
import os
from typing import Tuple

import firebase_admin
from firebase_admin import credentials, firestore

from massclip.repositories import purchases_repo


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


def mirror_record(session_id, data):
    record = dict(data)
    record.setdefault('id', session_id)
    record.setdefault('sessionId', session_id)
    record.setdefault('itemId', data.get('bundleId') or data.get('productBoxId'))
    record.setdefault('itemType', 'bundle' if data.get('bundleId') else 'product_box')
    record.setdefault('userId', data.get('buyerUid'))
    record.setdefault('status', 'completed')
    record.setdefault('purchasedAt', data.get('createdAt') or data.get('completedAt'))
    record['migratedFrom'] = 'bundlePurchases'
    return {key: value for key, value in record.items() if value is not None}


def migrate_purchases(db, apply_changes: bool) -> Tuple[int, int, int]:
    scanned = 0
    missing = 0
    skipped = 0
    for doc in purchases_repo.list_all_bundle_purchases(db):
        scanned += 1
        data = doc.to_dict() or {}
        buyer_uid = data.get('buyerUid') or data.get('userId')
        session_id = data.get('sessionId') or doc.id
        if not buyer_uid:
            skipped += 1
            continue
        ref = purchases_repo.user_purchase_ref(db, buyer_uid, session_id)
        if ref.get().exists:
            continue
        missing += 1
        if apply_changes:
            ref.set(mirror_record(session_id, data))
    return scanned, missing, skipped


def main():
    parser = argparse.ArgumentParser(description="Copy legacy bundlePurchases into userPurchases/{uid}/purchases/{sessionId}.")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Apply changes. Without this flag, the script runs in dry-run mode.",
    )
    args = parser.parse_args()

    db = init_firestore()
    scanned, missing, skipped = migrate_purchases(db, apply_changes=args.apply)
    mode = "APPLY" if args.apply else "DRY-RUN"
    print(f"[{mode}] scanned={scanned} bundlePurchases, missing_mirror={missing}, no_buyer={skipped}")
    if not args.apply:
        print("No changes were written. Re-run with --apply to persist.")


if __name__ == "__main__":
    main()
