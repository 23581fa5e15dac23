"""Firestore accessors for memberships and legacy tier collections."""


def doc_ref(db, uid):
    return db.collection('memberships').document(uid)


def get_doc(db, uid):
    return doc_ref(db, uid).get()


def set_doc(db, uid, data, merge=True):
    return doc_ref(db, uid).set(data, merge=merge)


def creator_pro_ref(db, uid):
    return db.collection('creatorProUsers').document(uid)


def list_creator_pro(db):
    return list(db.collection('creatorProUsers').stream())
