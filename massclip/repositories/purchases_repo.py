"""Firestore accessors for purchase collections."""

from .query_utils import apply_where


def user_purchase_ref(db, uid, session_id):
    return db.collection('userPurchases').document(uid).collection('purchases').document(session_id)


def list_user_purchases(db, uid):
    return list(db.collection('userPurchases').document(uid).collection('purchases').stream())


def bundle_purchase_ref(db, session_id):
    return db.collection('bundlePurchases').document(session_id)


def product_box_purchase_ref(db, session_id):
    return db.collection('productBoxPurchases').document(session_id)


def list_bundle_purchases_by_buyer(db, uid):
    return list(apply_where(db.collection('bundlePurchases'), 'buyerUid', '==', uid).stream())


def list_bundle_purchases_by_creator(db, creator_id):
    return list(apply_where(db.collection('bundlePurchases'), 'creatorId', '==', creator_id).stream())


def list_all_bundle_purchases(db):
    return list(db.collection('bundlePurchases').stream())


def find_completed(db, collection_name, item_field, uid, item_id):
    query = apply_where(db.collection(collection_name), 'buyerUid', '==', uid)
    query = apply_where(query, item_field, '==', item_id)
    query = apply_where(query, 'status', '==', 'completed')
    return list(query.limit(1).stream())


def add_checkout_log(db, data):
    return db.collection('stripeCheckoutLogs').add(data)


def stripe_event_ref(db, event_id):
    return db.collection('stripeEvents').document(event_id)
