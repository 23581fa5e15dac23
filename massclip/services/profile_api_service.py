"""Business logic handlers for profile, creator and profile-view APIs."""

from massclip.errors import ApiError
from massclip.services import profile_service, profile_view_service

VIEW_TRACK_RATE_LIMIT_MAX_REQUESTS = 30
VIEW_TRACK_RATE_LIMIT_WINDOW_SECONDS = 60

_TRACK_STATUS_BY_MESSAGE = {
    'Profile user ID is required': 400,
    'Rate limit exceeded': 429,
    'Profile user not found': 404,
}


def username_available(app_ctx, request):
    db = app_ctx.require_db()
    username = str(request.args.get('username', '') or '').strip().lower()
    error = profile_service.validate_username(username)
    if error:
        return app_ctx.jsonify({'available': False, 'error': error})
    try:
        return app_ctx.jsonify({'available': profile_service.is_username_available(db, username)})
    except Exception as e:
        app_ctx.logger.error(f"Error checking username {username}: {e}")
        return app_ctx.jsonify({'error': 'Failed to check username', 'details': str(e)}), 500


def update_profile(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    fields = request.get_json(silent=True) or {}
    try:
        profile = profile_service.update_profile(db, decoded_token['uid'], fields)
        return app_ctx.jsonify({'success': True, 'profile': profile})
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error updating profile for {decoded_token['uid']}: {e}")
        return app_ctx.jsonify({'error': 'Failed to update profile', 'details': str(e)}), 500


def get_creator(app_ctx, request, username):
    db = app_ctx.require_db()
    try:
        return app_ctx.jsonify({'creator': profile_service.get_public_creator(db, username)})
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error loading creator {username}: {e}")
        return app_ctx.jsonify({'error': 'Failed to load creator', 'details': str(e)}), 500


def track_profile_view(app_ctx, request):
    db = app_ctx.require_db()
    data = request.get_json(silent=True) or {}
    client_ip = app_ctx.client_ip(request)
    allowed, retry_after = app_ctx.check_rate_limit(
        key=f"profile_view:{app_ctx.normalize_rate_limit_key_part(client_ip, fallback='unknown')}",
        limit=VIEW_TRACK_RATE_LIMIT_MAX_REQUESTS,
        window_seconds=VIEW_TRACK_RATE_LIMIT_WINDOW_SECONDS,
    )
    if not allowed:
        return app_ctx.build_rate_limited_response('Too many profile view events. Please retry shortly.', retry_after)

    decoded_token = app_ctx.verify_firebase_token(request)
    viewer_id = decoded_token.get('uid', '') if decoded_token else ''
    profile_user_id = str(data.get('profileUserId', '') or '').strip()
    try:
        result = profile_view_service.track_profile_view(
            db,
            profile_user_id,
            viewer_id,
            client_ip,
            request.headers.get('User-Agent', 'unknown'),
            session_id=str(data.get('sessionId', '') or '').strip() or None,
        )
    except Exception as e:
        app_ctx.logger.error(f"Error tracking profile view for {profile_user_id}: {e}")
        return app_ctx.jsonify({'success': False, 'message': 'Internal error tracking view', 'details': str(e)}), 500
    return app_ctx.jsonify(result), _TRACK_STATUS_BY_MESSAGE.get(result.get('message'), 200)


def get_profile_view_stats(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    try:
        return app_ctx.jsonify({'stats': profile_view_service.get_profile_view_stats(db, decoded_token['uid'])})
    except Exception as e:
        app_ctx.logger.error(f"Error loading profile view stats: {e}")
        return app_ctx.jsonify({'error': 'Failed to get profile view stats', 'details': str(e)}), 500


def repair_profile_views(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    try:
        return app_ctx.jsonify(profile_view_service.verify_and_repair_view_count(db, decoded_token['uid']))
    except Exception as e:
        app_ctx.logger.error(f"Error repairing profile views: {e}")
        return app_ctx.jsonify({'error': 'Failed to repair profile views', 'details': str(e)}), 500


def admin_reset_profile_views(app_ctx, request, uid):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    if not app_ctx.is_admin_user(decoded_token):
        return app_ctx.jsonify({'error': 'Forbidden'}), 403
    db = app_ctx.require_db()
    try:
        result = profile_view_service.reset_profile_view_count(db, uid)
        app_ctx.logger.info(f"🧹 Admin {decoded_token['uid'][:8]}... reset profile views for {uid}")
        return app_ctx.jsonify(result)
    except Exception as e:
        app_ctx.logger.error(f"Error resetting profile views for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Failed to reset profile views', 'details': str(e)}), 500
