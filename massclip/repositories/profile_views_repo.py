"""Firestore accessors for profile view tracking."""

from .query_utils import apply_where


def new_view_ref(db):
    return db.collection('profile_views').document()


def list_views_for_profile(db, uid):
    return list(apply_where(db.collection('profile_views'), 'profileUserId', '==', uid).stream())


def recent_session_views(db, uid, session_id, since):
    query = apply_where(db.collection('profile_views'), 'profileUserId', '==', uid)
    query = apply_where(query, 'sessionId', '==', session_id)
    query = apply_where(query, 'timestamp', '>', since)
    return list(query.limit(1).stream())


def daily_stats_ref(db, uid, day):
    return db.collection('profile_view_stats').document(f"{uid}_{day}")


def list_daily_stats(db, uid, since_day):
    query = apply_where(db.collection('profile_view_stats'), 'profileUserId', '==', uid)
    return [doc for doc in query.stream() if str((doc.to_dict() or {}).get('date', '')) >= since_day]

