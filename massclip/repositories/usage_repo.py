"""Firestore accessors for free-tier usage and bundle slot purchases."""

from .query_utils import apply_where, first_doc


def free_user_ref(db, uid):
    return db.collection('freeUsers').document(uid)


def list_free_users(db):
    return list(db.collection('freeUsers').stream())


def slot_purchase_ref(db, purchase_id):
    return db.collection('bundleSlotPurchases').document(purchase_id)


def find_slot_purchase_by_session(db, session_id):
    return first_doc(apply_where(db.collection('bundleSlotPurchases'), 'stripeSessionId', '==', session_id))


def user_slots_ref(db, uid):
    return db.collection('userBundleSlots').document(uid)
