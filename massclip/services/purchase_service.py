"""Unified purchase records and content access checks."""

import logging
from datetime import datetime, timezone

from google.api_core.exceptions import AlreadyExists

from massclip.errors import Forbidden, NotFound
from massclip.repositories import bundles_repo, purchases_repo, uploads_repo, users_repo
from massclip.repositories.query_utils import sort_key_for, to_datetime
from massclip.services import bundle_service, content_utils

logger = logging.getLogger('massclip')

ANONYMOUS_UID = 'anonymous'


def _lookup_buyer(app_ctx, buyer_uid, user_email, user_name):
    email = user_email or ''
    name = user_name or 'Anonymous User'
    if buyer_uid == ANONYMOUS_UID or buyer_uid.startswith('guest_'):
        return email, name, False
    try:
        record = app_ctx.auth.get_user(buyer_uid)
        email = record.email or email
        name = record.display_name or (record.email.split('@')[0] if record.email else name)
    except Exception as e:
        logger.warning(f"⚠️ Could not load auth record for buyer {buyer_uid[:8]}...: {e}")
    return email, name, True


def fetch_bundle_items(db, bundle_id, bundle_data):
    if bundle_data.get('downloadUrl') or bundle_data.get('fileUrl'):
        item = content_utils.normalize_bundle_item(bundle_id, bundle_data)
        if item:
            return [item]
    items = []
    for raw in bundle_service.resolve_bundle_contents(db, bundle_id, bundle_data):
        item = content_utils.normalize_content_item(raw.get('id') or raw.get('contentId'), raw, 'bundle')
        if item:
            items.append(item)
    return items


def fetch_product_box_items(db, product_box_id):
    items = []
    for doc in uploads_repo.list_by_product_box(db, product_box_id):
        item = content_utils.normalize_content_item(doc.id, doc.to_dict() or {}, 'uploads')
        if item:
            items.append(item)
    if items:
        return items

    for doc in bundles_repo.list_product_box_content(db, product_box_id):
        data = doc.to_dict() or {}
        if data.get('uploadId'):
            upload = uploads_repo.get_doc(db, data['uploadId'])
            if upload.exists:
                data = dict(data, **(upload.to_dict() or {}))
        item = content_utils.normalize_content_item(doc.id, data, 'productBoxContent')
        if item:
            items.append(item)
    return items


def create_unified_purchase(
    app_ctx,
    buyer_uid,
    *,
    bundle_id=None,
    product_box_id=None,
    session_id,
    amount,
    currency,
    creator_id,
    user_email='',
    user_name='',
    extra=None,
):
    """Write one purchase per Checkout Session. Returns ``(session_id, created)``."""
    if bool(bundle_id) == bool(product_box_id):
        raise ValueError('Exactly one of bundle_id or product_box_id must be provided')
    if not session_id:
        raise ValueError('session_id is required')

    db = app_ctx.db
    user_purchase_ref = purchases_repo.user_purchase_ref(db, buyer_uid, session_id)
    if user_purchase_ref.get().exists:
        logger.info(f"ℹ️ Purchase {session_id} already recorded for {buyer_uid[:8]}...")
        return session_id, False

    is_bundle = bool(bundle_id)
    item_id = bundle_id or product_box_id
    item_ref = bundles_repo.doc_ref(db, item_id) if is_bundle else bundles_repo.legacy_product_box_ref(db, item_id)
    item_snapshot = item_ref.get()
    if not item_snapshot.exists:
        raise NotFound(f"{'bundle' if is_bundle else 'product_box'} {item_id} not found")
    item_data = item_snapshot.to_dict() or {}

    email, name, is_authenticated = _lookup_buyer(app_ctx, buyer_uid, user_email, user_name)
    creator_snapshot = users_repo.get_doc(db, creator_id) if creator_id else None
    creator = (creator_snapshot.to_dict() or {}) if creator_snapshot is not None and creator_snapshot.exists else {}

    items = fetch_bundle_items(db, item_id, item_data) if is_bundle else fetch_product_box_items(db, item_id)
    titles = [item['displayTitle'] for item in items]
    record = {
        'id': session_id,
        'bundleId': bundle_id,
        'productBoxId': product_box_id,
        'itemId': item_id,
        'itemType': 'bundle' if is_bundle else 'product_box',
        'productBoxTitle': item_data.get('title') or f"Untitled {'bundle' if is_bundle else 'product_box'}",
        'productBoxDescription': item_data.get('description') or '',
        'productBoxThumbnail': item_data.get('thumbnailUrl') or item_data.get('customPreviewThumbnail') or '',
        'creatorId': creator_id,
        'creatorName': creator.get('displayName') or creator.get('name') or 'Unknown Creator',
        'creatorUsername': creator.get('username') or '',
        'buyerUid': buyer_uid,
        'userId': buyer_uid,
        'userEmail': email,
        'userName': name,
        'isAuthenticated': is_authenticated,
        'purchasedAt': datetime.now(timezone.utc),
        'amount': amount,
        'currency': currency or 'usd',
        'sessionId': session_id,
        'status': 'completed',
        'items': items,
        'itemNames': titles,
        'contentTitles': titles,
        'totalItems': len(items),
        'totalSize': sum(content_utils.as_number(item.get('fileSize')) for item in items),
    }
    record.update(extra or {})
    record = content_utils.clean_for_firestore(record)

    mirror_ref = (
        purchases_repo.bundle_purchase_ref(db, session_id) if is_bundle
        else purchases_repo.product_box_purchase_ref(db, session_id)
    )
    batch = db.batch()
    batch.create(user_purchase_ref, record)
    batch.set(mirror_ref, record)
    try:
        batch.commit()
    except AlreadyExists:
        logger.info(f"ℹ️ Purchase {session_id} was recorded concurrently for {buyer_uid[:8]}...")
        return session_id, False
    logger.info(f"✅ Recorded purchase {session_id}: {buyer_uid[:8]}... -> {item_id} ({len(items)} items)")
    return session_id, True


def find_access(db, uid, item_id):
    """Return ``(record, source)`` for the caller's purchase of an item, or ``(None, None)``."""
    for collection_name, field_name in (('bundlePurchases', 'bundleId'), ('productBoxPurchases', 'productBoxId')):
        docs = purchases_repo.find_completed(db, collection_name, field_name, uid, item_id)
        if docs:
            return docs[0].to_dict() or {}, collection_name
    for doc in purchases_repo.list_user_purchases(db, uid):
        data = doc.to_dict() or {}
        if item_id in (data.get('itemId'), data.get('bundleId'), data.get('productBoxId')):
            return data, 'userPurchases'
    return None, None


def has_access(db, uid, item_id):
    bundle = bundle_service.get_bundle(db, item_id)
    if bundle and bundle.get('creatorId') == uid:
        return True
    record, _ = find_access(db, uid, item_id)
    return record is not None


def get_purchased_content(db, uid, item_id):
    bundle = bundle_service.get_bundle(db, item_id)
    if bundle and bundle.get('creatorId') == uid:
        raw_items = bundle_service.resolve_bundle_contents(db, item_id, bundle)
        return [content_utils.to_api_item(i.get('id'), i) for i in raw_items], 'owner'

    record, source = find_access(db, uid, item_id)
    if record is None:
        raise Forbidden('Access denied')
    stored = record.get('items') or record.get('contents') or []
    if stored:
        return [content_utils.to_api_item(i.get('id') or i.get('contentId'), i) for i in stored], source

    docs = bundles_repo.list_product_box_content(db, item_id)
    return [content_utils.to_api_item(doc.id, doc.to_dict() or {}) for doc in docs], 'productBoxContent'


def serialize_purchase(data):
    purchased_at = to_datetime(data.get('purchasedAt') or data.get('createdAt'))
    return {
        'id': data.get('sessionId') or data.get('id'),
        'sessionId': data.get('sessionId') or data.get('id'),
        'itemId': data.get('itemId') or data.get('bundleId') or data.get('productBoxId'),
        'itemType': data.get('itemType') or ('bundle' if data.get('bundleId') else 'product_box'),
        'title': data.get('productBoxTitle') or data.get('bundleTitle') or 'Untitled',
        'description': data.get('productBoxDescription') or data.get('bundleDescription') or '',
        'thumbnailUrl': data.get('productBoxThumbnail') or data.get('bundleThumbnailUrl') or '',
        'creatorId': data.get('creatorId'),
        'creatorName': data.get('creatorName') or 'Unknown Creator',
        'creatorUsername': data.get('creatorUsername') or '',
        'amount': data.get('amount') or data.get('price') or 0,
        'currency': data.get('currency') or 'usd',
        'totalItems': data.get('totalItems') or data.get('contentCount') or len(data.get('items') or []),
        'status': data.get('status') or 'completed',
        'purchasedAt': purchased_at.isoformat() if purchased_at else None,
    }


def list_user_purchases(db, uid):
    merged = {}
    for doc in purchases_repo.list_user_purchases(db, uid):
        data = doc.to_dict() or {}
        merged[data.get('sessionId') or doc.id] = data
    for doc in purchases_repo.list_bundle_purchases_by_buyer(db, uid):
        data = doc.to_dict() or {}
        merged.setdefault(data.get('sessionId') or doc.id, dict(data, id=data.get('id') or doc.id))
    records = list(merged.values())
    records.sort(key=lambda data: sort_key_for('purchasedAt')(data) if data.get('purchasedAt') else sort_key_for('createdAt')(data), reverse=True)
    return [serialize_purchase(data) for data in records]
