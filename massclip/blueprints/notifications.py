from flask import Blueprint, request

notifications_bp = Blueprint('notifications_api', __name__)


@notifications_bp.route('/api/notifications', methods=['GET'])
def list_notifications():
    from massclip import runtime
    from massclip.services import notifications_api_service

    return notifications_api_service.list_notifications(runtime, request)


@notifications_bp.route('/api/notifications/<notification_id>/read', methods=['POST'])
def mark_as_read(notification_id):
    from massclip import runtime
    from massclip.services import notifications_api_service

    return notifications_api_service.mark_as_read(runtime, request, notification_id)


@notifications_bp.route('/api/notifications/read-all', methods=['POST'])
def mark_all_as_read():
    from massclip import runtime
    from massclip.services import notifications_api_service

    return notifications_api_service.mark_all_as_read(runtime, request)
