from flask import Blueprint, request

purchases_bp = Blueprint('purchases_api', __name__)


@purchases_bp.route('/api/user/purchases', methods=['GET'])
def list_user_purchases():
    from massclip import runtime
    from massclip.services import purchase_api_service

    return purchase_api_service.list_user_purchases(runtime, request)


@purchases_bp.route('/api/bundles/<bundle_id>/content', methods=['GET'])
def get_bundle_content(bundle_id):
    from massclip import runtime
    from massclip.services import purchase_api_service

    return purchase_api_service.get_bundle_content(runtime, request, bundle_id)


@purchases_bp.route('/api/purchase/verify-and-complete', methods=['POST'])
def verify_and_complete():
    from massclip import runtime
    from massclip.services import purchase_api_service

    return purchase_api_service.verify_and_complete(runtime, request)
