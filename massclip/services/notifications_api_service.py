"""Business logic handlers for notification APIs."""

from massclip.errors import ApiError
from massclip.services import notification_service

MAX_LIST_LIMIT = 100


def list_notifications(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    uid = decoded_token['uid']
    try:
        limit = min(MAX_LIST_LIMIT, max(1, int(request.args.get('limit', 20))))
    except (TypeError, ValueError):
        limit = 20
    try:
        return app_ctx.jsonify({
            'notifications': notification_service.list_notifications(db, uid, limit=limit),
            'unreadCount': notification_service.unread_count(db, uid),
        })
    except Exception as e:
        app_ctx.logger.error(f"Error fetching notifications for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Failed to fetch notifications', 'details': str(e)}), 500


def mark_as_read(app_ctx, request, notification_id):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    try:
        notification_service.mark_as_read(db, decoded_token['uid'], notification_id)
        return app_ctx.jsonify({'success': True})
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error marking notification {notification_id} read: {e}")
        return app_ctx.jsonify({'error': 'Failed to update notification', 'details': str(e)}), 500


def mark_all_as_read(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    try:
        updated = notification_service.mark_all_as_read(db, decoded_token['uid'])
        return app_ctx.jsonify({'success': True, 'updated': updated})
    except Exception as e:
        app_ctx.logger.error(f"Error marking notifications read: {e}")
        return app_ctx.jsonify({'error': 'Failed to update notifications', 'details': str(e)}), 500
