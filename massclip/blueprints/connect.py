from flask import Blueprint, request

connect_bp = Blueprint('connect_api', __name__)


@connect_bp.route('/api/stripe/connect/oauth', methods=['POST'])
def start_oauth():
    from massclip import runtime
    from massclip.services import connect_api_service

    return connect_api_service.start_oauth(runtime, request)


@connect_bp.route('/api/stripe/connect/oauth-callback', methods=['GET'])
def oauth_callback():
    from massclip import runtime
    from massclip.services import connect_api_service

    return connect_api_service.oauth_callback(runtime, request)


@connect_bp.route('/api/stripe/connect/manual', methods=['POST'])
def manual_connect():
    from massclip import runtime
    from massclip.services import connect_api_service

    return connect_api_service.manual_connect(runtime, request)


@connect_bp.route('/api/stripe/connect/status', methods=['GET'])
def get_status():
    from massclip import runtime
    from massclip.services import connect_api_service

    return connect_api_service.get_status(runtime, request)


@connect_bp.route('/api/stripe/disconnect', methods=['POST'])
def disconnect():
    from massclip import runtime
    from massclip.services import connect_api_service

    return connect_api_service.disconnect(runtime, request)
