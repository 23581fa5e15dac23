"""Firestore accessors for request and profile-view rate limit documents."""


def counter_doc_ref(db, collection_name, counter_id):
    return db.collection(collection_name).document(counter_id)


def view_rate_limit_ref(db, uid, ip):
    safe_ip = str(ip or 'unknown').replace('/', '_')
    return db.collection('view_rate_limits').document(f"{uid}_{safe_ip}")
