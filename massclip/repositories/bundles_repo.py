"""Firestore accessors for bundles and their content collections."""

from .query_utils import apply_where


def doc_ref(db, bundle_id):
    return db.collection('bundles').document(bundle_id)


def get_doc(db, bundle_id):
    return doc_ref(db, bundle_id).get()


def new_doc_ref(db):
    return db.collection('bundles').document()


def list_by_creator(db, creator_id):
    return list(apply_where(db.collection('bundles'), 'creatorId', '==', creator_id).stream())


def legacy_product_box_ref(db, product_box_id):
    return db.collection('productBoxes').document(product_box_id)


def list_bundle_content(db, bundle_id):
    return list(apply_where(db.collection('bundleContent'), 'bundleId', '==', bundle_id).stream())


def list_product_box_content(db, product_box_id):
    return list(apply_where(db.collection('productBoxContent'), 'productBoxId', '==', product_box_id).stream())
