"""Free-tier usage counters, monthly resets and purchasable bundle slots."""

import logging
import math
from datetime import datetime, timezone

from firebase_admin import firestore

from massclip.errors import UsageRecordNotFound
from massclip.repositories import memberships_repo, usage_repo
from massclip.repositories.query_utils import to_datetime
from massclip.services import membership_service

logger = logging.getLogger('massclip')

FREE_TIER_DEFAULTS = {
    'downloadsLimit': 15,
    'bundlesLimit': 2,
    'maxVideosPerBundle': 10,
    'platformFeePercentage': 20,
    'hasUnlimitedDownloads': False,
    'hasPremiumContent': False,
    'hasNoWatermark': False,
    'hasPrioritySupport': False,
    'hasLimitedOrganization': True,
}

BUNDLE_SLOT_TIERS = {
    '1_bundle': {'slots': 1, 'amount': 399, 'description': '1 Extra Bundle'},
    '3_bundle': {'slots': 3, 'amount': 799, 'description': '3 Extra Bundles'},
    '5_bundle': {'slots': 5, 'amount': 1199, 'description': '5 Extra Bundles'},
}


def _now(now=None):
    return now or datetime.now(timezone.utc)


def month_start(now=None):
    now = _now(now)
    return datetime(now.year, now.month, 1, tzinfo=timezone.utc)


def next_month_start(now=None):
    now = _now(now)
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)


def days_until_reset(now=None):
    now = _now(now)
    return math.ceil((next_month_start(now) - now).total_seconds() / 86400)


def get_free_user(db, uid):
    snapshot = usage_repo.free_user_ref(db, uid).get()
    if not snapshot.exists:
        return None
    return snapshot.to_dict() or {}


def build_free_user_doc(uid, email, now=None):
    doc = {
        'uid': uid,
        'email': email or '',
        'downloadsUsed': 0,
        'bundlesCreated': 0,
        'createdAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
        'lastResetDate': firestore.SERVER_TIMESTAMP,
        'currentPeriodStart': month_start(now),
    }
    doc.update(FREE_TIER_DEFAULTS)
    return doc


def ensure_free_user(db, uid, email, now=None):
    existing = get_free_user(db, uid)
    if existing is not None:
        return existing
    doc = build_free_user_doc(uid, email, now=now)
    usage_repo.free_user_ref(db, uid).set(doc)
    logger.info(f"✅ Created free usage record for {uid[:8]}...")
    return get_free_user(db, uid) or doc


def check_and_reset_monthly_limits(db, uid, now=None):
    free_user = get_free_user(db, uid)
    if free_user is None:
        raise UsageRecordNotFound(f"Free user not found: {uid}")

    current_start = month_start(now)
    last_reset = to_datetime(free_user.get('lastResetDate'))
    if last_reset is None or last_reset < current_start:
        usage_repo.free_user_ref(db, uid).update({
            'downloadsUsed': 0,
            'lastResetDate': firestore.SERVER_TIMESTAMP,
            'currentPeriodStart': current_start,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })
        logger.info(f"🔄 Reset monthly limits for {uid[:8]}...")
        return get_free_user(db, uid)
    return free_user


def _increment_counter(db, uid, counter_field, limit_field, reason_template):
    ref = usage_repo.free_user_ref(db, uid)
    transaction = db.transaction()

    @firestore.transactional
    def _txn(txn):
        snapshot = ref.get(transaction=txn)
        if not snapshot.exists:
            raise UsageRecordNotFound(f"Free user not found: {uid}")
        data = snapshot.to_dict() or {}
        used = int(data.get(counter_field, 0) or 0)
        limit = int(data.get(limit_field, FREE_TIER_DEFAULTS[limit_field]) or 0)
        if used >= limit:
            return False, reason_template.format(limit=limit)
        txn.update(ref, {
            counter_field: firestore.Increment(1),
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })
        return True, ''

    return _txn(transaction)


def increment_downloads(db, uid, now=None):
    check_and_reset_monthly_limits(db, uid, now=now)
    return _increment_counter(
        db, uid, 'downloadsUsed', 'downloadsLimit',
        'Monthly download limit reached ({limit} downloads)',
    )


def increment_bundles(db, uid):
    return _increment_counter(
        db, uid, 'bundlesCreated', 'bundlesLimit',
        'Bundle limit reached ({limit} bundles max)',
    )


def decrement_bundles(db, uid):
    ref = usage_repo.free_user_ref(db, uid)
    transaction = db.transaction()

    @firestore.transactional
    def _txn(txn):
        snapshot = ref.get(transaction=txn)
        if not snapshot.exists:
            return 0
        current = int((snapshot.to_dict() or {}).get('bundlesCreated', 0) or 0)
        updated = max(0, current - 1)
        txn.update(ref, {'bundlesCreated': updated, 'updatedAt': firestore.SERVER_TIMESTAMP})
        return updated

    return _txn(transaction)


def can_add_video_to_bundle(db, uid, current_count):
    free_user = get_free_user(db, uid)
    if free_user is None:
        raise UsageRecordNotFound(f"Free user not found: {uid}")
    max_videos = int(free_user.get('maxVideosPerBundle', FREE_TIER_DEFAULTS['maxVideosPerBundle']))
    if current_count >= max_videos:
        return False, f"Video limit reached ({max_videos} videos per bundle max)"
    return True, ''


def get_limits(db, uid, now=None):
    free_user = check_and_reset_monthly_limits(db, uid, now=now)
    downloads_used = int(free_user.get('downloadsUsed', 0) or 0)
    downloads_limit = int(free_user.get('downloadsLimit', FREE_TIER_DEFAULTS['downloadsLimit']))
    bundles_created = int(free_user.get('bundlesCreated', 0) or 0)
    bundles_limit = int(free_user.get('bundlesLimit', FREE_TIER_DEFAULTS['bundlesLimit']))
    limits = {
        'tier': 'free',
        'downloadsUsed': downloads_used,
        'downloadsLimit': downloads_limit,
        'bundlesCreated': bundles_created,
        'bundlesLimit': bundles_limit,
        'maxVideosPerBundle': free_user.get('maxVideosPerBundle', FREE_TIER_DEFAULTS['maxVideosPerBundle']),
        'platformFeePercentage': free_user.get('platformFeePercentage', FREE_TIER_DEFAULTS['platformFeePercentage']),
        'reachedDownloadLimit': downloads_used >= downloads_limit,
        'reachedBundleLimit': bundles_created >= bundles_limit,
        'daysUntilReset': days_until_reset(now),
    }
    for flag in ('hasUnlimitedDownloads', 'hasPremiumContent', 'hasNoWatermark', 'hasPrioritySupport', 'hasLimitedOrganization'):
        limits[flag] = bool(free_user.get(flag, FREE_TIER_DEFAULTS[flag]))
    return limits


def pro_limits(membership):
    features = membership.get('features') or {}
    return {
        'tier': membership_service.PLAN_PRO,
        'downloadsUsed': int(membership.get('downloadsUsed') or 0),
        'downloadsLimit': None,
        'bundlesCreated': int(membership.get('bundlesCreated') or 0),
        'bundlesLimit': None,
        'maxVideosPerBundle': None,
        'platformFeePercentage': features.get('platformFeePercentage', 10),
        'reachedDownloadLimit': False,
        'reachedBundleLimit': False,
        'hasUnlimitedDownloads': True,
        'hasPremiumContent': True,
        'hasNoWatermark': True,
        'hasPrioritySupport': True,
        'hasLimitedOrganization': False,
        'daysUntilReset': None,
    }


def upgrade_to_pro(db, uid):
    usage_repo.free_user_ref(db, uid).set({
        'upgradedToPro': True,
        'upgradeDate': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }, merge=True)


def record_download(db, uid, email='', now=None):
    """Count one download against the caller's tier. Returns ``(allowed, reason)``."""
    membership = membership_service.get_effective_membership(db, uid)
    if membership_service.is_pro(membership) and (membership.get('features') or {}).get('unlimitedDownloads'):
        membership_service.ensure_membership_record(db, uid, membership)
        memberships_repo.set_doc(db, uid, {
            'downloadsUsed': firestore.Increment(1),
            'updatedAt': firestore.SERVER_TIMESTAMP,
        }, merge=True)
        return True, ''
    ensure_free_user(db, uid, email, now=now)
    return increment_downloads(db, uid, now=now)


def check_bundle_creation_allowed(db, uid, membership=None):
    membership = membership or membership_service.get_effective_membership(db, uid)
    if membership_service.is_pro(membership):
        return True, ''
    free_user = get_free_user(db, uid) or {}
    created = int(free_user.get('bundlesCreated', 0) or 0)
    limit = int(free_user.get('bundlesLimit', FREE_TIER_DEFAULTS['bundlesLimit']))
    if created >= limit:
        return False, f"Bundle limit reached ({limit} bundles max)"
    return True, ''


def create_bundle_slot_purchase(db, uid, email, tier, session_id):
    tier_info = BUNDLE_SLOT_TIERS.get(tier)
    if tier_info is None:
        raise ValueError(f"Unknown bundle slot tier: {tier}")
    ref = usage_repo.slot_purchase_ref(db, session_id)
    ref.set({
        'id': session_id,
        'uid': uid,
        'email': email or '',
        'bundleSlots': tier_info['slots'],
        'amount': tier_info['amount'],
        'stripeSessionId': session_id,
        'status': 'pending',
        'purchaseDate': firestore.SERVER_TIMESTAMP,
        'metadata': {'tier': tier, 'description': tier_info['description']},
    })
    return session_id


def _read_slot_docs(txn, db, uid):
    free_ref = usage_repo.free_user_ref(db, uid)
    slots_ref = usage_repo.user_slots_ref(db, uid)
    return free_ref, free_ref.get(transaction=txn).exists, slots_ref, slots_ref.get(transaction=txn).exists


def _write_slot_grant(txn, slot_docs, uid, slots, purchase_id, email=''):
    free_ref, free_exists, slots_ref, slots_exists = slot_docs
    if free_exists:
        txn.update(free_ref, {
            'bundlesLimit': firestore.Increment(slots),
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })
    else:
        doc = build_free_user_doc(uid, email)
        doc['bundlesLimit'] = FREE_TIER_DEFAULTS['bundlesLimit'] + slots
        txn.set(free_ref, doc)

    if slots_exists:
        txn.update(slots_ref, {
            'totalPurchasedSlots': firestore.Increment(slots),
            'availableSlots': firestore.Increment(slots),
            'purchases': firestore.ArrayUnion([purchase_id]),
            'lastUpdated': firestore.SERVER_TIMESTAMP,
        })
    else:
        txn.set(slots_ref, {
            'uid': uid,
            'totalPurchasedSlots': slots,
            'totalUsedSlots': 0,
            'availableSlots': slots,
            'purchases': [purchase_id],
            'lastUpdated': firestore.SERVER_TIMESTAMP,
        })


def complete_bundle_slot_purchase(db, session_id, payment_intent_id=''):
    """Mark a slot purchase completed and grant its slots. Returns False when already applied.

    Status check and grant run in one transaction; concurrent completions of a session apply the slots once.
    """
    found = usage_repo.find_slot_purchase_by_session(db, session_id)
    if found is None:
        raise ValueError(f"Bundle slot purchase not found for session: {session_id}")
    purchase_ref = found.reference
    transaction = db.transaction()

    @firestore.transactional
    def _txn(txn):
        purchase = purchase_ref.get(transaction=txn).to_dict() or {}
        if purchase.get('status') == 'completed':
            return None
        uid = purchase.get('uid', '')
        slots = int(purchase.get('bundleSlots', 0) or 0)
        slot_docs = _read_slot_docs(txn, db, uid)
        txn.update(purchase_ref, {
            'status': 'completed',
            'stripePaymentIntentId': payment_intent_id or '',
            'appliedDate': firestore.SERVER_TIMESTAMP,
        })
        _write_slot_grant(txn, slot_docs, uid, slots, purchase_ref.id, email=purchase.get('email', ''))
        return uid, slots

    applied = _txn(transaction)
    if applied is None:
        logger.info(f"ℹ️ Bundle slot purchase {purchase_ref.id} already completed")
        return False
    uid, slots = applied
    logger.info(f"✅ Applied {slots} bundle slot(s) to {uid[:8]}...")
    return True


def apply_bundle_slots(db, uid, slots, purchase_id, email=''):
    transaction = db.transaction()

    @firestore.transactional
    def _txn(txn):
        _write_slot_grant(txn, _read_slot_docs(txn, db, uid), uid, slots, purchase_id, email=email)

    _txn(transaction)
    logger.info(f"✅ Applied {slots} bundle slot(s) to {uid[:8]}...")
