"""Profile view tracking with per-IP throttling and session de-duplication."""

import base64
import logging
from datetime import datetime, timedelta, timezone

from firebase_admin import firestore

from massclip.repositories import profile_views_repo, rate_limit_repo, users_repo
from massclip.repositories.query_utils import to_datetime

logger = logging.getLogger('massclip')

RATE_LIMIT_WINDOW = timedelta(seconds=60)
MAX_VIEWS_PER_WINDOW = 3
SESSION_DURATION = timedelta(minutes=30)


class ProfileUserNotFound(Exception):
    pass


class ViewRateLimited(Exception):
    pass


def _now(now=None):
    return now or datetime.now(timezone.utc)


def generate_session_id(ip_address, user_agent, now=None):
    epoch_ms = int(_now(now).timestamp() * 1000)
    raw = f"{ip_address}_{user_agent}_{epoch_ms}".encode('utf-8')
    return base64.b64encode(raw).decode('ascii')[:16]


def _open_window(limit_data, now):
    """Return the start of the still-open window, or None when a new one begins at ``now``."""
    window_start = to_datetime(limit_data.get('windowStart'))
    if window_start is None or now - window_start > RATE_LIMIT_WINDOW:
        return None
    return window_start


def _window_allows(limit_data, now):
    if _open_window(limit_data, now) is None:
        return True
    return int(limit_data.get('viewCount', 0) or 0) < MAX_VIEWS_PER_WINDOW


def check_view_rate_limit(db, profile_user_id, ip_address, now=None):
    snapshot = rate_limit_repo.view_rate_limit_ref(db, profile_user_id, ip_address).get()
    if not snapshot.exists:
        return True
    return _window_allows(snapshot.to_dict() or {}, _now(now))


def is_duplicate_view(db, profile_user_id, session_id, now=None):
    cutoff = _now(now) - SESSION_DURATION
    return bool(profile_views_repo.recent_session_views(db, profile_user_id, session_id, cutoff))


def _record_view(db, profile_user_id, viewer_id, ip_address, user_agent, session_id, now):
    user_ref = users_repo.doc_ref(db, profile_user_id)
    view_ref = profile_views_repo.new_view_ref(db)
    date_key = now.strftime('%Y-%m-%d')
    stats_ref = profile_views_repo.daily_stats_ref(db, profile_user_id, date_key)
    limit_ref = rate_limit_repo.view_rate_limit_ref(db, profile_user_id, ip_address)
    transaction = db.transaction()

    @firestore.transactional
    def _txn(txn):
        user_snapshot = user_ref.get(transaction=txn)
        if not user_snapshot.exists:
            raise ProfileUserNotFound(profile_user_id)
        limit_snapshot = limit_ref.get(transaction=txn)
        current_views = int((user_snapshot.to_dict() or {}).get('profileViews', 0) or 0)

        limit_data = (limit_snapshot.to_dict() or {}) if limit_snapshot.exists else {}
        if not _window_allows(limit_data, now):
            raise ViewRateLimited(ip_address)
        window_start = _open_window(limit_data, now)
        window_expired = window_start is None

        txn.set(user_ref, {
            'profileViews': firestore.Increment(1),
            'lastProfileView': now,
            'updatedAt': now,
        }, merge=True)
        txn.set(view_ref, {
            'profileUserId': profile_user_id,
            'viewerId': viewer_id or None,
            'timestamp': now,
            'ipAddress': ip_address,
            'userAgent': user_agent,
            'sessionId': session_id,
        })
        txn.set(stats_ref, {
            'profileUserId': profile_user_id,
            'date': date_key,
            'viewCount': firestore.Increment(1),
            'lastViewAt': now,
            'updatedAt': now,
        }, merge=True)
        txn.set(limit_ref, {
            'profileUserId': profile_user_id,
            'ipAddress': ip_address,
            'viewCount': 1 if window_expired else firestore.Increment(1),
            'windowStart': now if window_expired else window_start,
            'lastViewAt': now,
        }, merge=True)
        return current_views + 1

    return _txn(transaction)


def track_profile_view(db, profile_user_id, viewer_id, ip_address, user_agent, session_id=None, now=None):
    if not profile_user_id:
        return {'success': False, 'message': 'Profile user ID is required'}
    if viewer_id and viewer_id == profile_user_id:
        return {'success': False, 'message': 'Self-views are not tracked'}

    now = _now(now)
    if not check_view_rate_limit(db, profile_user_id, ip_address, now=now):
        return {'success': False, 'message': 'Rate limit exceeded'}

    session_id = session_id or generate_session_id(ip_address, user_agent, now=now)
    if is_duplicate_view(db, profile_user_id, session_id, now=now):
        return {'success': False, 'message': 'Duplicate view within session'}

    try:
        view_count = _record_view(db, profile_user_id, viewer_id, ip_address, user_agent, session_id, now)
    except ProfileUserNotFound:
        return {'success': False, 'message': 'Profile user not found'}
    except ViewRateLimited:
        return {'success': False, 'message': 'Rate limit exceeded'}
    return {'success': True, 'message': 'Profile view tracked successfully', 'viewCount': view_count}


def empty_stats():
    return {
        'totalViews': 0,
        'uniqueViews': 0,
        'todayViews': 0,
        'weekViews': 0,
        'monthViews': 0,
        'lastViewAt': None,
    }


def get_profile_view_stats(db, uid, now=None):
    snapshot = users_repo.get_doc(db, uid)
    if not snapshot.exists:
        return empty_stats()
    user = snapshot.to_dict() or {}

    now = _now(now)
    today = now.strftime('%Y-%m-%d')
    week_ago = (now - timedelta(days=7)).strftime('%Y-%m-%d')
    month_ago = (now - timedelta(days=30)).strftime('%Y-%m-%d')

    today_views = week_views = month_views = 0
    for doc in profile_views_repo.list_daily_stats(db, uid, month_ago):
        data = doc.to_dict() or {}
        count = int(data.get('viewCount', 0) or 0)
        date_key = str(data.get('date', ''))
        month_views += count
        if date_key >= week_ago:
            week_views += count
        if date_key == today:
            today_views += count

    viewers = set()
    for doc in profile_views_repo.list_views_for_profile(db, uid):
        data = doc.to_dict() or {}
        viewers.add(data.get('viewerId') or data.get('sessionId'))
    viewers.discard(None)

    last_view = to_datetime(user.get('lastProfileView'))
    return {
        'totalViews': int(user.get('profileViews', 0) or 0),
        'uniqueViews': len(viewers),
        'todayViews': today_views,
        'weekViews': week_views,
        'monthViews': month_views,
        'lastViewAt': last_view.isoformat() if last_view else None,
    }


def verify_and_repair_view_count(db, uid):
    snapshot = users_repo.get_doc(db, uid)
    stored = int(((snapshot.to_dict() or {}) if snapshot.exists else {}).get('profileViews', 0) or 0)
    actual = len(profile_views_repo.list_views_for_profile(db, uid))
    repaired = stored != actual
    if repaired and snapshot.exists:
        users_repo.update_doc(db, uid, {'profileViews': actual, 'updatedAt': firestore.SERVER_TIMESTAMP})
        logger.info(f"🔧 Repaired profile view count for {uid[:8]}...: {stored} -> {actual}")
    return {'success': True, 'originalCount': stored, 'actualCount': actual, 'repaired': repaired and snapshot.exists}


def reset_profile_view_count(db, uid):
    users_repo.update_doc(db, uid, {
        'profileViews': 0,
        'lastProfileView': None,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    })
    return {'success': True, 'message': 'Profile view count reset successfully'}
