"""Membership records and the features each plan unlocks."""

from firebase_admin import firestore

from massclip.repositories import memberships_repo, usage_repo
from massclip.repositories.query_utils import to_datetime

PLAN_FREE = 'free'
PLAN_PRO = 'creator_pro'
MEMBERSHIP_STATUSES = {'active', 'trialing', 'past_due', 'canceled', 'inactive'}
ACTIVE_STATUSES = {'active', 'trialing'}
NULLABLE_FIELDS = {'currentPeriodEnd'}

FREE_DEFAULTS = {
    'unlimitedDownloads': False,
    'premiumContent': False,
    'noWatermark': False,
    'prioritySupport': False,
    'platformFeePercentage': 20,
    'maxVideosPerBundle': 10,
    'maxBundles': 2,
}

PRO_DEFAULTS = {
    'unlimitedDownloads': True,
    'premiumContent': True,
    'noWatermark': True,
    'prioritySupport': True,
    'platformFeePercentage': 10,
    'maxVideosPerBundle': None,
    'maxBundles': None,
}


def is_active_status(status):
    return str(status or '').lower() in ACTIVE_STATUSES


def normalize_status(raw_status):
    status = str(raw_status or '').lower()
    return status if status in MEMBERSHIP_STATUSES else 'inactive'


def compute_features(plan, is_active, free_overrides=None):
    if plan == PLAN_PRO and is_active:
        return dict(PRO_DEFAULTS)
    features = dict(FREE_DEFAULTS)
    features.update(free_overrides or {})
    return features


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def free_overrides_from(data):
    overrides = {}
    if _is_number(data.get('platformFeePercentage')):
        overrides['platformFeePercentage'] = data['platformFeePercentage']
    if _is_number(data.get('maxVideosPerBundle')):
        overrides['maxVideosPerBundle'] = data['maxVideosPerBundle']
    if _is_number(data.get('bundlesLimit')):
        overrides['maxBundles'] = data['bundlesLimit']
    return overrides


def map_creator_pro_to_membership(uid, data, email=None):
    """Map a legacy ``creatorProUsers/{uid}`` document to a membership dict."""
    status = normalize_status(data.get('subscriptionStatus'))
    is_active = is_active_status(status)
    renewal = data.get('renewalDate') or data.get('currentPeriodEnd')
    return {
        'uid': uid,
        'email': email,
        'plan': PLAN_PRO,
        'status': status,
        'isActive': is_active,
        'stripeCustomerId': data.get('stripeCustomerId') or data.get('customerId'),
        'stripeSubscriptionId': data.get('subscriptionId') or data.get('stripeSubscriptionId'),
        'priceId': data.get('priceId'),
        'connectedAccountId': data.get('connectedAccountId'),
        'currentPeriodEnd': to_datetime(renewal) if renewal else None,
        'downloadsUsed': data.get('downloadsUsed') if _is_number(data.get('downloadsUsed')) else None,
        'bundlesCreated': data.get('bundlesCreated') if _is_number(data.get('bundlesCreated')) else None,
        'features': compute_features(PLAN_PRO, is_active),
    }


def map_free_to_membership(uid, data, email=None):
    """Map a legacy ``freeUsers/{uid}`` document. Status ``active`` means the record is valid, not paid."""
    return {
        'uid': uid,
        'email': email,
        'plan': PLAN_FREE,
        'status': 'active',
        'isActive': False,
        'downloadsUsed': data.get('downloadsUsed') if _is_number(data.get('downloadsUsed')) else None,
        'bundlesCreated': data.get('bundlesCreated') if _is_number(data.get('bundlesCreated')) else None,
        'features': compute_features(PLAN_FREE, False, free_overrides_from(data)),
    }


def default_free_membership(uid, email=None):
    return {
        'uid': uid,
        'email': email,
        'plan': PLAN_FREE,
        'status': 'active',
        'isActive': False,
        'features': compute_features(PLAN_FREE, False),
    }


def get_membership(db, uid):
    snapshot = memberships_repo.get_doc(db, uid)
    if not snapshot.exists:
        return None
    return snapshot.to_dict() or {}


def upsert_membership(db, uid, free_overrides=None, **fields):
    ref = memberships_repo.doc_ref(db, uid)
    existing = ref.get()
    current = (existing.to_dict() or {}) if existing.exists else {}
    merged = dict(current)
    merged.update(fields)

    plan = merged.get('plan') or PLAN_FREE
    status = normalize_status(merged.get('status') or 'active')
    is_active = plan == PLAN_PRO and is_active_status(status)

    payload = {k: v for k, v in fields.items() if v is not None or k in NULLABLE_FIELDS}
    payload.update({
        'uid': uid,
        'plan': plan,
        'status': status,
        'isActive': is_active,
        'features': compute_features(plan, is_active, free_overrides),
        'updatedAt': firestore.SERVER_TIMESTAMP,
    })
    if not existing.exists:
        payload['createdAt'] = firestore.SERVER_TIMESTAMP
    memberships_repo.set_doc(db, uid, payload, merge=True)
    return payload


def get_effective_membership(db, uid, email=None):
    membership = get_membership(db, uid)
    if membership and membership.get('plan'):
        return membership

    pro_snapshot = memberships_repo.creator_pro_ref(db, uid).get()
    if pro_snapshot.exists:
        return map_creator_pro_to_membership(uid, pro_snapshot.to_dict() or {}, email)

    free_snapshot = usage_repo.free_user_ref(db, uid).get()
    if free_snapshot.exists:
        return map_free_to_membership(uid, free_snapshot.to_dict() or {}, email)

    return default_free_membership(uid, email)


def ensure_membership_record(db, uid, membership):
    """Persist a membership that was mapped from a legacy collection so later writes merge into a full record."""
    stored = get_membership(db, uid)
    if stored and stored.get('plan'):
        return stored
    fields = {k: v for k, v in (membership or {}).items() if k not in ('uid', 'isActive', 'features')}
    overrides = None
    if fields.get('plan') != PLAN_PRO:
        free_snapshot = usage_repo.free_user_ref(db, uid).get()
        overrides = free_overrides_from(free_snapshot.to_dict() or {}) if free_snapshot.exists else None
    return upsert_membership(db, uid, free_overrides=overrides, **fields)


def is_pro(membership):
    return bool(membership) and membership.get('plan') == PLAN_PRO and bool(membership.get('isActive'))


def platform_fee_percentage(membership):
    features = (membership or {}).get('features') or {}
    fee = features.get('platformFeePercentage')
    return fee if _is_number(fee) else FREE_DEFAULTS['platformFeePercentage']


def serialize_membership(membership):
    data = dict(membership or {})
    for key in ('currentPeriodEnd', 'createdAt', 'updatedAt'):
        value = to_datetime(data.get(key))
        data[key] = value.isoformat() if value else None
    return data
