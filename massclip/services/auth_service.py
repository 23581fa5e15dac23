"""Firebase ID-token and session-cookie helpers."""

import time
from datetime import timedelta

SESSION_COOKIE_NAME = 'session'
RECENT_SIGN_IN_SECONDS = 5 * 60


def extract_bearer_token(request):
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header.split('Bearer ', 1)[1].strip()
    if request.is_json:
        body = request.get_json(silent=True) or {}
        if isinstance(body, dict):
            return str(body.get('idToken', '') or '').strip()
    return ''


def verify_firebase_token(request, auth_module, logger):
    """Return decoded Firebase token dict, or None when invalid/missing.

    Bearer header first, then an ``idToken`` JSON field, then the session cookie.
    """
    token = extract_bearer_token(request)
    if token:
        try:
            return auth_module.verify_id_token(token)
        except Exception as exc:
            if logger is not None:
                logger.info(f"Token verification failed: {exc}")
            return None
    cookie = request.cookies.get(SESSION_COOKIE_NAME, '')
    if not cookie:
        return None
    try:
        return auth_module.verify_session_cookie(cookie, check_revoked=True)
    except Exception as exc:
        if logger is not None:
            logger.info(f"Session cookie verification failed: {exc}")
        return None


def is_recent_sign_in(decoded_token, now_ts=None):
    auth_time = decoded_token.get('auth_time') if decoded_token else None
    if not isinstance(auth_time, (int, float)):
        return False
    now_ts = time.time() if now_ts is None else now_ts
    return (now_ts - auth_time) < RECENT_SIGN_IN_SECONDS


def create_session_cookie(id_token, expires_in_seconds, auth_module):
    return auth_module.create_session_cookie(id_token, expires_in=timedelta(seconds=expires_in_seconds))


def is_admin_user(decoded_token, *, admin_uids, admin_emails):
    if not decoded_token:
        return False
    uid = decoded_token.get('uid', '')
    email = str(decoded_token.get('email', '') or '').lower()
    return uid in admin_uids or email in admin_emails
