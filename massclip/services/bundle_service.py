"""Creator bundles: Stripe catalog objects plus their content listings."""

import logging
from datetime import datetime, timezone

from firebase_admin import firestore

from massclip.errors import ApiError, Forbidden, NotFound
from massclip.repositories import bundles_repo, uploads_repo
from massclip.repositories.query_utils import sort_key_for
from massclip.services import connect_service, content_utils, membership_service, usage_service

logger = logging.getLogger('massclip')

EDITABLE_FIELDS = ('title', 'description', 'price', 'thumbnailUrl', 'active')
LEGACY_CONTENT_FIELDS = ('contents', 'items', 'videos', 'files', 'content', 'bundleContent')
MAX_TITLE_LENGTH = 120


def _now_iso():
    return datetime.now(timezone.utc).isoformat()


def _parse_price(raw_price):
    try:
        price = round(float(raw_price), 2)
    except (TypeError, ValueError):
        return None
    return price if price > 0 else None


def build_content_item(index, item):
    now_iso = _now_iso()
    file_url = item.get('fileUrl') or item.get('downloadUrl') or item.get('publicUrl') or ''
    mime_type = item.get('mimeType') or 'video/mp4'
    file_size = item.get('fileSize') or 0
    duration = item.get('duration') or 0
    return {
        'id': item.get('id') or f"content_{index}",
        'title': item.get('title') or f"Content {index + 1}",
        'description': item.get('description') or '',
        'fileUrl': file_url,
        'downloadUrl': item.get('downloadUrl') or file_url,
        'publicUrl': item.get('publicUrl') or file_url,
        'thumbnailUrl': item.get('thumbnailUrl') or '',
        'fileSize': file_size,
        'fileSizeFormatted': content_utils.format_file_size(file_size),
        'duration': duration,
        'durationFormatted': content_utils.format_duration(duration),
        'mimeType': mime_type,
        'format': item.get('format') or content_utils.file_extension_for(mime_type),
        'quality': item.get('quality') or 'HD',
        'tags': item.get('tags') or [],
        'contentType': item.get('contentType') or content_utils.detect_content_type(mime_type, file_url),
        'createdAt': item.get('createdAt') or now_iso,
        'uploadedAt': item.get('uploadedAt') or item.get('createdAt') or now_iso,
    }


def upload_to_content_item(upload_id, upload):
    return {
        'id': upload_id,
        'title': upload.get('title') or upload.get('filename') or 'Untitled',
        'fileUrl': upload.get('fileUrl') or upload.get('publicUrl') or '',
        'publicUrl': upload.get('publicUrl') or upload.get('fileUrl') or '',
        'thumbnailUrl': upload.get('thumbnailUrl') or '',
        'fileSize': upload.get('fileSize') or 0,
        'duration': upload.get('duration') or 0,
        'mimeType': upload.get('mimeType') or 'application/octet-stream',
        'contentType': upload.get('type') or None,
        'createdAt': upload.get('createdAt'),
    }


def denormalized_fields(items):
    """Quick-access arrays kept in sync with ``detailedContentItems``."""
    return {
        'detailedContentItems': items,
        'contentItems': [item['id'] for item in items],
        'contentUrls': [item.get('fileUrl', '') for item in items],
        'contentTitles': [item.get('title', '') for item in items],
        'contentThumbnails': [item.get('thumbnailUrl', '') for item in items],
        'contentMetadata': content_utils.summarize_content(items),
        'contentLastUpdated': _now_iso(),
    }


def _resolve_payload_items(db, uid, raw_items):
    items = []
    for index, raw in enumerate(raw_items):
        if isinstance(raw, str):
            raw = {'id': raw}
        if not isinstance(raw, dict):
            continue
        if not (raw.get('fileUrl') or raw.get('downloadUrl')) and raw.get('id'):
            snapshot = uploads_repo.get_doc(db, raw['id'])
            upload = (snapshot.to_dict() or {}) if snapshot.exists else {}
            if upload.get('uid') != uid:
                continue
            raw = upload_to_content_item(snapshot.id, upload)
        items.append(build_content_item(index, raw))
    return items


def _check_item_capacity(db, uid, membership, current_count):
    """Return ``(allowed, reason)`` for adding one more item to a bundle that holds ``current_count``."""
    if membership_service.is_pro(membership):
        return True, ''
    usage_service.ensure_free_user(db, uid, membership.get('email') or '')
    return usage_service.can_add_video_to_bundle(db, uid, current_count)


def get_bundle(db, bundle_id):
    snapshot = bundles_repo.get_doc(db, bundle_id)
    if not snapshot.exists:
        return None
    data = snapshot.to_dict() or {}
    data.setdefault('id', snapshot.id)
    return data


def _owned_bundle(db, uid, bundle_id):
    bundle = get_bundle(db, bundle_id)
    if bundle is None:
        raise NotFound('Bundle not found')
    if bundle.get('creatorId') != uid:
        raise Forbidden('You do not have permission to modify this bundle')
    return bundle


def is_active(bundle):
    return bool(bundle) and bundle.get('active', True) is not False and not bundle.get('deletedAt')


def create_bundle(app_ctx, uid, payload):
    db = app_ctx.db
    title = str(payload.get('title') or '').strip()
    description = str(payload.get('description') or '').strip()
    price = _parse_price(payload.get('price'))
    raw_items = payload.get('contentItems') or payload.get('uploadIds') or []
    if not title or not description or price is None or not raw_items:
        raise ApiError('Missing required fields: title, description, price, and contentItems are required')
    if len(title) > MAX_TITLE_LENGTH:
        raise ApiError(f"Title must be at most {MAX_TITLE_LENGTH} characters")

    account = connect_service.get_connected_account(db, uid)
    if not account:
        raise ApiError('Please connect your Stripe account before creating bundles', code='NO_STRIPE_ACCOUNT')
    if not account.get('charges_enabled') or not account.get('details_submitted'):
        raise ApiError('Please complete your Stripe account setup before creating bundles', code='STRIPE_ACCOUNT_INCOMPLETE')
    stripe_account_id = account.get('stripe_user_id')

    membership = membership_service.get_effective_membership(db, uid)
    allowed, reason = usage_service.check_bundle_creation_allowed(db, uid, membership=membership)
    if not allowed:
        raise ApiError(reason, status=403, code='BUNDLE_LIMIT_REACHED')

    items = _resolve_payload_items(db, uid, raw_items)
    if not items:
        raise ApiError('No valid content items were provided')
    allowed, reason = _check_item_capacity(db, uid, membership, len(items) - 1)
    if not allowed:
        raise ApiError(reason, status=403, code='CONTENT_LIMIT_REACHED')

    product = app_ctx.stripe.Product.create(
        name=title,
        description=description,
        metadata={'bundleType': 'content_bundle', 'creatorId': uid, 'contentCount': str(len(items))},
        stripe_account=stripe_account_id,
    )
    stripe_price = app_ctx.stripe.Price.create(
        product=product['id'],
        unit_amount=int(round(price * 100)),
        currency='usd',
        metadata={'bundleType': 'content_bundle', 'creatorId': uid},
        stripe_account=stripe_account_id,
    )

    ref = bundles_repo.new_doc_ref(db)
    thumbnail_url = str(payload.get('thumbnailUrl') or '').strip()
    bundle = {
        'id': ref.id,
        'title': title,
        'description': description,
        'price': price,
        'currency': 'usd',
        'billingType': payload.get('billingType') or 'one_time',
        'type': 'one_time',
        'creatorId': uid,
        'stripeAccountId': stripe_account_id,
        'stripeProductId': product['id'],
        'stripePriceId': stripe_price['id'],
        'thumbnailUrl': thumbnail_url or items[0].get('thumbnailUrl', ''),
        'coverImageUrl': thumbnail_url,
        'active': True,
        'status': 'active',
        'isPublic': True,
        'salesCount': 0,
        'totalRevenue': 0,
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }
    bundle.update(denormalized_fields(items))
    ref.set(content_utils.clean_for_firestore(bundle))

    if not membership_service.is_pro(membership):
        usage_service.ensure_free_user(db, uid, membership.get('email') or '')
        ok, reason = usage_service.increment_bundles(db, uid)
        if not ok:
            logger.warning(f"⚠️ Bundle {ref.id} created but usage counter not incremented: {reason}")
    logger.info(f"✅ Created bundle {ref.id} ({len(items)} items, ${price}) for {uid[:8]}...")
    return bundle


def list_creator_bundles(db, uid, include_deleted=False):
    bundles = []
    for doc in bundles_repo.list_by_creator(db, uid):
        data = doc.to_dict() or {}
        if data.get('deletedAt') and not include_deleted:
            continue
        data.setdefault('id', doc.id)
        bundles.append(data)
    bundles.sort(key=sort_key_for('createdAt'), reverse=True)
    return bundles


def list_public_bundles_for_creator(db, creator_uid):
    return [b for b in list_creator_bundles(db, creator_uid) if is_active(b)]


def update_bundle(app_ctx, uid, bundle_id, fields):
    db = app_ctx.db
    bundle = _owned_bundle(db, uid, bundle_id)
    updates = {}
    for key in EDITABLE_FIELDS:
        if key not in fields:
            continue
        value = fields[key]
        if key in ('title', 'description'):
            value = str(value or '').strip()
            if not value:
                raise ApiError(f"{key} cannot be empty")
        elif key == 'active':
            value = bool(value)
        elif key == 'thumbnailUrl':
            value = str(value or '').strip()
        updates[key] = value

    if 'price' in updates:
        new_price = _parse_price(updates['price'])
        if new_price is None:
            raise ApiError('Price must be greater than zero')
        updates['price'] = new_price
        if new_price != bundle.get('price') and bundle.get('stripeProductId'):
            stripe_account_id = bundle.get('stripeAccountId')
            new_stripe_price = app_ctx.stripe.Price.create(
                product=bundle['stripeProductId'],
                unit_amount=int(round(new_price * 100)),
                currency=bundle.get('currency') or 'usd',
                metadata={'bundleType': 'content_bundle', 'creatorId': uid},
                stripe_account=stripe_account_id,
            )
            old_price_id = bundle.get('stripePriceId')
            if old_price_id:
                try:
                    app_ctx.stripe.Price.modify(old_price_id, active=False, stripe_account=stripe_account_id)
                except app_ctx.stripe.error.StripeError as e:
                    logger.warning(f"⚠️ Could not archive price {old_price_id}: {e}")
            updates['stripePriceId'] = new_stripe_price['id']

    if not updates:
        raise ApiError('No valid fields to update')
    if 'active' in updates:
        updates['status'] = 'active' if updates['active'] else 'inactive'
    updates['updatedAt'] = firestore.SERVER_TIMESTAMP
    bundles_repo.doc_ref(db, bundle_id).update(updates)
    return get_bundle(db, bundle_id)


def delete_bundle(db, uid, bundle_id):
    bundle = _owned_bundle(db, uid, bundle_id)
    if bundle.get('deletedAt'):
        return False
    bundles_repo.doc_ref(db, bundle_id).update({
        'active': False,
        'status': 'deleted',
        'deletedAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    })
    usage_service.decrement_bundles(db, uid)
    logger.info(f"🗑️ Soft-deleted bundle {bundle_id}")
    return True


def add_content(db, uid, bundle_id, upload_ids):
    """Append the caller's uploads to a bundle. Returns ``(added_ids, skipped)``."""
    bundle = _owned_bundle(db, uid, bundle_id)
    items = list(bundle.get('detailedContentItems') or [])
    existing_ids = {item.get('id') for item in items}
    membership = membership_service.get_effective_membership(db, uid)

    added, skipped = [], []
    for upload_id in upload_ids:
        upload_id = str(upload_id or '').strip()
        if not upload_id:
            continue
        if upload_id in existing_ids:
            skipped.append({'id': upload_id, 'reason': 'already_in_bundle'})
            continue
        snapshot = uploads_repo.get_doc(db, upload_id)
        if not snapshot.exists:
            skipped.append({'id': upload_id, 'reason': 'not_found'})
            continue
        upload = snapshot.to_dict() or {}
        if upload.get('uid') != uid:
            skipped.append({'id': upload_id, 'reason': 'not_owner'})
            continue
        allowed, _ = _check_item_capacity(db, uid, membership, len(items))
        if not allowed:
            skipped.append({'id': upload_id, 'reason': 'limit_reached'})
            continue
        items.append(build_content_item(len(items), upload_to_content_item(upload_id, upload)))
        existing_ids.add(upload_id)
        added.append(upload_id)

    if added:
        updates = denormalized_fields(items)
        updates['updatedAt'] = firestore.SERVER_TIMESTAMP
        bundles_repo.doc_ref(db, bundle_id).update(content_utils.clean_for_firestore(updates))
    return added, skipped


def remove_content(db, uid, bundle_id, content_id):
    bundle = _owned_bundle(db, uid, bundle_id)
    items = list(bundle.get('detailedContentItems') or [])
    remaining = [item for item in items if item.get('id') != content_id]
    if len(remaining) == len(items):
        raise NotFound('Content item not found in bundle')
    updates = denormalized_fields(remaining)
    updates['updatedAt'] = firestore.SERVER_TIMESTAMP
    bundles_repo.doc_ref(db, bundle_id).update(content_utils.clean_for_firestore(updates))
    return remaining


def resolve_bundle_contents(db, bundle_id, bundle_data):
    """Find a bundle's content items across the current and legacy storage layouts."""
    detailed = bundle_data.get('detailedContentItems')
    if isinstance(detailed, list) and detailed:
        return list(detailed)

    content_items = bundle_data.get('contentItems')
    content_urls = bundle_data.get('contentUrls')
    if content_items and content_urls:
        titles = bundle_data.get('contentTitles') or []
        thumbnails = bundle_data.get('contentThumbnails') or []
        zipped = []
        for index, item_id in enumerate(content_items):
            url = content_urls[index] if index < len(content_urls) else ''
            zipped.append({
                'id': item_id,
                'title': titles[index] if index < len(titles) and titles[index] else f"Content {index + 1}",
                'fileUrl': url,
                'downloadUrl': url,
                'thumbnailUrl': thumbnails[index] if index < len(thumbnails) else '',
                'contentType': 'video',
                'mimeType': 'video/mp4',
                'bundleId': bundle_id,
            })
        return zipped

    for field_name in LEGACY_CONTENT_FIELDS:
        value = bundle_data.get(field_name)
        if isinstance(value, list) and value:
            return list(value)

    legacy_docs = bundles_repo.list_bundle_content(db, bundle_id)
    if legacy_docs:
        return [dict(doc.to_dict() or {}, id=doc.id) for doc in legacy_docs]

    box_docs = bundles_repo.list_product_box_content(db, bundle_id)
    return [dict(doc.to_dict() or {}, id=doc.id) for doc in box_docs]


def public_bundle_card(bundle):
    metadata = bundle.get('contentMetadata') or {}
    return {
        'id': bundle.get('id'),
        'title': bundle.get('title', ''),
        'description': bundle.get('description', ''),
        'price': bundle.get('price', 0),
        'currency': bundle.get('currency', 'usd'),
        'thumbnailUrl': bundle.get('thumbnailUrl') or bundle.get('coverImageUrl') or '',
        'creatorId': bundle.get('creatorId'),
        'contentCount': len(bundle.get('detailedContentItems') or bundle.get('contentItems') or []),
        'contentMetadata': metadata,
        'contentTitles': bundle.get('contentTitles') or [],
    }
