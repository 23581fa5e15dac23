from flask import Blueprint, request

uploads_bp = Blueprint('uploads_api', __name__)


@uploads_bp.route('/api/uploads/presign', methods=['POST'])
def presign_upload():
    from massclip import runtime
    from massclip.services import upload_api_service

    return upload_api_service.presign_upload(runtime, request)


@uploads_bp.route('/api/uploads', methods=['GET'])
def list_uploads():
    from massclip import runtime
    from massclip.services import upload_api_service

    return upload_api_service.list_uploads(runtime, request)


@uploads_bp.route('/api/uploads', methods=['POST'])
def register_upload():
    from massclip import runtime
    from massclip.services import upload_api_service

    return upload_api_service.register_upload(runtime, request)


@uploads_bp.route('/api/uploads/<upload_id>', methods=['GET'])
def get_upload(upload_id):
    from massclip import runtime
    from massclip.services import upload_api_service

    return upload_api_service.get_upload(runtime, request, upload_id)


@uploads_bp.route('/api/uploads/<upload_id>', methods=['PATCH'])
def update_upload(upload_id):
    from massclip import runtime
    from massclip.services import upload_api_service

    return upload_api_service.update_upload(runtime, request, upload_id)


@uploads_bp.route('/api/uploads/<upload_id>', methods=['DELETE'])
def delete_upload(upload_id):
    from massclip import runtime
    from massclip.services import upload_api_service

    return upload_api_service.delete_upload(runtime, request, upload_id)
