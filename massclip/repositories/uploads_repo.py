"""Firestore accessors for uploads collection."""

from .query_utils import apply_where


def doc_ref(db, upload_id):
    return db.collection('uploads').document(upload_id)


def get_doc(db, upload_id):
    return doc_ref(db, upload_id).get()


def add_doc(db, data):
    return db.collection('uploads').add(data)


def list_by_uid(db, uid):
    return list(apply_where(db.collection('uploads'), 'uid', '==', uid).stream())


def list_by_product_box(db, product_box_id):
    return list(apply_where(db.collection('uploads'), 'productBoxId', '==', product_box_id).stream())
