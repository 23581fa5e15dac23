"""Business logic handlers for auth/session APIs."""

from massclip.errors import ApiError
from massclip.services import auth_service, membership_service, profile_service


def _set_session_cookie(app_ctx, request, response, value, max_age):
    response.set_cookie(
        auth_service.SESSION_COOKIE_NAME,
        value,
        max_age=max_age,
        expires=0 if max_age == 0 else None,
        httponly=True,
        secure=bool(request.is_secure or not app_ctx.config.is_dev_like),
        samesite='Lax',
        path='/',
    )


def create_session(app_ctx, request):
    id_token = auth_service.extract_bearer_token(request)
    if not id_token:
        return app_ctx.jsonify({'error': 'Missing ID token'}), 400
    try:
        decoded_token = app_ctx.auth.verify_id_token(id_token)
    except Exception as e:
        app_ctx.logger.info(f"Session login rejected: {e}")
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    if not auth_service.is_recent_sign_in(decoded_token):
        return app_ctx.jsonify({'error': 'Recent sign-in required'}), 401

    max_age = app_ctx.config.session_cookie_days * 24 * 60 * 60
    try:
        session_cookie = auth_service.create_session_cookie(id_token, max_age, app_ctx.auth)
    except Exception as e:
        app_ctx.logger.error(f"Error creating session cookie: {e}")
        return app_ctx.jsonify({'error': 'Could not create session'}), 500

    response = app_ctx.jsonify({'ok': True, 'uid': decoded_token.get('uid', '')})
    _set_session_cookie(app_ctx, request, response, session_cookie, max_age)
    return response


def clear_session(app_ctx, request):
    session_cookie = request.cookies.get(auth_service.SESSION_COOKIE_NAME, '')
    if session_cookie:
        try:
            decoded = app_ctx.auth.verify_session_cookie(session_cookie)
            app_ctx.auth.revoke_refresh_tokens(decoded['sub'])
        except Exception as e:
            app_ctx.logger.info(f"Session logout without revoke: {e}")
    response = app_ctx.jsonify({'ok': True})
    _set_session_cookie(app_ctx, request, response, '', 0)
    return response


def get_me(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    uid = decoded_token['uid']
    email = decoded_token.get('email', '')
    try:
        profile = profile_service.get_profile(db, uid)
        membership = membership_service.get_effective_membership(db, uid, email=email)
        return app_ctx.jsonify({
            'uid': uid,
            'email': email,
            'profile': profile,
            'membership': membership_service.serialize_membership(membership),
            'isAdmin': app_ctx.is_admin_user(decoded_token),
        })
    except Exception as e:
        app_ctx.logger.error(f"Error loading account for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not load account', 'details': str(e)}), 500


def create_user(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    data = request.get_json(silent=True) or {}
    uid = decoded_token['uid']
    email = decoded_token.get('email', '') or str(data.get('email', '') or '')
    display_name = str(data.get('displayName') or decoded_token.get('name') or '').strip() or None
    photo_url = data.get('photoURL') or decoded_token.get('picture')
    try:
        profile, created = profile_service.setup_complete_profile(db, uid, email, display_name, photo_url)
        return app_ctx.jsonify({
            'success': True,
            'created': created,
            'username': profile.get('username'),
            'profile': profile,
        }), 201 if created else 200
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error setting up profile for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Failed to create user profile', 'details': str(e)}), 500
