"""Firestore accessors for users, usernames and creators collections."""

from .query_utils import apply_where, first_doc


def doc_ref(db, uid):
    return db.collection('users').document(uid)


def get_doc(db, uid):
    return doc_ref(db, uid).get()


def set_doc(db, uid, data, merge=False):
    return doc_ref(db, uid).set(data, merge=merge)


def update_doc(db, uid, updates):
    return doc_ref(db, uid).update(updates)


def find_by_username(db, username):
    return first_doc(apply_where(db.collection('users'), 'username', '==', username))


def find_by_email(db, email):
    return first_doc(apply_where(db.collection('users'), 'email', '==', email))


def list_with_profile_views(db):
    return list(apply_where(db.collection('users'), 'profileViews', '>=', 0).stream())


def username_ref(db, username):
    return db.collection('usernames').document(username)


def creator_ref(db, username):
    return db.collection('creators').document(username)
