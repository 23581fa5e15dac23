from flask import Blueprint, request

auth_bp = Blueprint('auth_api', __name__)


@auth_bp.route('/api/auth/session', methods=['POST'])
def create_session():
    from massclip import runtime
    from massclip.services import auth_api_service

    return auth_api_service.create_session(runtime, request)


@auth_bp.route('/api/auth/session', methods=['DELETE'])
def clear_session():
    from massclip import runtime
    from massclip.services import auth_api_service

    return auth_api_service.clear_session(runtime, request)


@auth_bp.route('/api/auth/me', methods=['GET'])
def get_me():
    from massclip import runtime
    from massclip.services import auth_api_service

    return auth_api_service.get_me(runtime, request)


@auth_bp.route('/api/auth/create-user', methods=['POST'])
def create_user():
    from massclip import runtime
    from massclip.services import auth_api_service

    return auth_api_service.create_user(runtime, request)
