"""Firestore accessors for notifications collection."""

from .query_utils import apply_where


def doc_ref(db, notification_id):
    return db.collection('notifications').document(notification_id)


def add_doc(db, data):
    return db.collection('notifications').add(data)


def list_by_user(db, uid):
    return list(apply_where(db.collection('notifications'), 'userId', '==', uid).stream())


def list_unread(db, uid):
    query = apply_where(db.collection('notifications'), 'userId', '==', uid)
    return list(apply_where(query, 'read', '==', False).stream())
