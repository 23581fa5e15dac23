from flask import Blueprint, request

bundles_bp = Blueprint('bundles_api', __name__)


@bundles_bp.route('/api/creator/bundles', methods=['GET'])
def list_bundles():
    from massclip import runtime
    from massclip.services import bundle_api_service

    return bundle_api_service.list_bundles(runtime, request)


@bundles_bp.route('/api/creator/bundles', methods=['POST'])
def create_bundle():
    from massclip import runtime
    from massclip.services import bundle_api_service

    return bundle_api_service.create_bundle(runtime, request)


@bundles_bp.route('/api/creator/bundles/<bundle_id>', methods=['GET'])
def get_bundle(bundle_id):
    from massclip import runtime
    from massclip.services import bundle_api_service

    return bundle_api_service.get_bundle(runtime, request, bundle_id)


@bundles_bp.route('/api/creator/bundles/<bundle_id>', methods=['PATCH'])
def update_bundle(bundle_id):
    from massclip import runtime
    from massclip.services import bundle_api_service

    return bundle_api_service.update_bundle(runtime, request, bundle_id)


@bundles_bp.route('/api/creator/bundles/<bundle_id>', methods=['DELETE'])
def delete_bundle(bundle_id):
    from massclip import runtime
    from massclip.services import bundle_api_service

    return bundle_api_service.delete_bundle(runtime, request, bundle_id)


@bundles_bp.route('/api/creator/bundles/<bundle_id>/add-content', methods=['POST'])
def add_content(bundle_id):
    from massclip import runtime
    from massclip.services import bundle_api_service

    return bundle_api_service.add_content(runtime, request, bundle_id)


@bundles_bp.route('/api/creator/bundles/<bundle_id>/content/<content_id>', methods=['DELETE'])
def remove_content(bundle_id, content_id):
    from massclip import runtime
    from massclip.services import bundle_api_service

    return bundle_api_service.remove_content(runtime, request, bundle_id, content_id)


@bundles_bp.route('/api/bundles/<bundle_id>', methods=['GET'])
def get_public_bundle(bundle_id):
    from massclip import runtime
    from massclip.services import bundle_api_service

    return bundle_api_service.get_public_bundle(runtime, request, bundle_id)
