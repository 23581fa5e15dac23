from flask import Blueprint, request

profiles_bp = Blueprint('profiles_api', __name__)


@profiles_bp.route('/api/profile/username-available', methods=['GET'])
def username_available():
    from massclip import runtime
    from massclip.services import profile_api_service

    return profile_api_service.username_available(runtime, request)


@profiles_bp.route('/api/profile', methods=['PATCH'])
def update_profile():
    from massclip import runtime
    from massclip.services import profile_api_service

    return profile_api_service.update_profile(runtime, request)


@profiles_bp.route('/api/creators/<username>', methods=['GET'])
def get_creator(username):
    from massclip import runtime
    from massclip.services import profile_api_service

    return profile_api_service.get_creator(runtime, request, username)


@profiles_bp.route('/api/profile-views/track', methods=['POST'])
def track_profile_view():
    from massclip import runtime
    from massclip.services import profile_api_service

    return profile_api_service.track_profile_view(runtime, request)


@profiles_bp.route('/api/profile-views/stats', methods=['GET'])
def get_profile_view_stats():
    from massclip import runtime
    from massclip.services import profile_api_service

    return profile_api_service.get_profile_view_stats(runtime, request)


@profiles_bp.route('/api/profile-views/repair', methods=['POST'])
def repair_profile_views():
    from massclip import runtime
    from massclip.services import profile_api_service

    return profile_api_service.repair_profile_views(runtime, request)


@profiles_bp.route('/api/admin/profile-views/<uid>/reset', methods=['POST'])
def admin_reset_profile_views(uid):
    from massclip import runtime
    from massclip.services import profile_api_service

    return profile_api_service.admin_reset_profile_views(runtime, request, uid)
