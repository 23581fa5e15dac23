"""Business logic handlers for upload APIs."""

from massclip.errors import ApiError
from massclip.services import content_utils, upload_service

UPLOAD_RATE_LIMIT_MAX_REQUESTS = 60
UPLOAD_RATE_LIMIT_WINDOW_SECONDS = 600


def presign_upload(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    app_ctx.require_db()
    uid = decoded_token['uid']
    allowed, retry_after = app_ctx.check_rate_limit(
        key=f"upload:{app_ctx.normalize_rate_limit_key_part(uid)}",
        limit=UPLOAD_RATE_LIMIT_MAX_REQUESTS,
        window_seconds=UPLOAD_RATE_LIMIT_WINDOW_SECONDS,
    )
    if not allowed:
        return app_ctx.build_rate_limited_response('Too many upload requests. Please wait a moment.', retry_after)

    data = request.get_json(silent=True) or {}
    try:
        result = upload_service.request_upload(
            app_ctx,
            uid,
            data.get('fileName'),
            data.get('fileType'),
            data.get('fileSize'),
            product_box_id=str(data.get('productBoxId', '') or '').strip() or None,
        )
        return app_ctx.jsonify(dict(result, success=True))
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error preparing upload for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Failed to prepare file upload', 'details': str(e)}), 500


def register_upload(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    payload = request.get_json(silent=True) or {}
    try:
        upload_id, record = upload_service.register_upload(db, decoded_token['uid'], payload)
        return app_ctx.jsonify({'success': True, 'id': upload_id, 'upload': content_utils.json_safe(record)}), 201
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error registering upload: {e}")
        return app_ctx.jsonify({'error': 'Failed to save upload', 'details': str(e)}), 500


def list_uploads(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    args = request.args
    try:
        uploads = upload_service.list_uploads(
            db,
            decoded_token['uid'],
            upload_type=args.get('type') or None,
            search=args.get('search') or None,
            folder_id=args.get('folderId') or None,
            folder=args.get('folder') or None,
        )
        return app_ctx.jsonify({'uploads': content_utils.json_safe(uploads), 'count': len(uploads)})
    except Exception as e:
        app_ctx.logger.error(f"Error listing uploads: {e}")
        return app_ctx.jsonify({'error': 'Failed to fetch uploads', 'details': str(e)}), 500


def get_upload(app_ctx, request, upload_id):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    try:
        return app_ctx.jsonify({'upload': content_utils.json_safe(upload_service.get_upload(db, decoded_token['uid'], upload_id))})
    except ApiError as e:
        return e.to_response()


def update_upload(app_ctx, request, upload_id):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    fields = request.get_json(silent=True) or {}
    try:
        upload = upload_service.update_upload(db, decoded_token['uid'], upload_id, fields)
        return app_ctx.jsonify({'success': True, 'upload': content_utils.json_safe(upload)})
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error updating upload {upload_id}: {e}")
        return app_ctx.jsonify({'error': 'Failed to update upload', 'details': str(e)}), 500


def delete_upload(app_ctx, request, upload_id):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    app_ctx.require_db()
    try:
        upload_service.delete_upload(app_ctx, decoded_token['uid'], upload_id)
        return app_ctx.jsonify({'success': True})
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error deleting upload {upload_id}: {e}")
        return app_ctx.jsonify({'error': 'Failed to delete upload', 'details': str(e)}), 500
