"""Business logic handlers for creator bundle APIs."""

from massclip.errors import ApiError
from massclip.services import bundle_service, content_utils


def _authenticated_db(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return None, None
    return decoded_token, app_ctx.require_db()


def list_bundles(app_ctx, request):
    decoded_token, db = _authenticated_db(app_ctx, request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    try:
        bundles = bundle_service.list_creator_bundles(db, decoded_token['uid'])
        return app_ctx.jsonify({'bundles': content_utils.json_safe(bundles), 'count': len(bundles)})
    except Exception as e:
        app_ctx.logger.error(f"Error listing bundles: {e}")
        return app_ctx.jsonify({'error': 'Failed to fetch bundles', 'details': str(e)}), 500


def create_bundle(app_ctx, request):
    decoded_token, _db = _authenticated_db(app_ctx, request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    payload = request.get_json(silent=True) or {}
    try:
        bundle = bundle_service.create_bundle(app_ctx, decoded_token['uid'], payload)
        return app_ctx.jsonify({
            'success': True,
            'bundleId': bundle['id'],
            'bundle': content_utils.json_safe(bundle),
            'message': 'Bundle created successfully',
        }), 201
    except ApiError as e:
        return e.to_response()
    except app_ctx.stripe.error.StripeError as e:
        app_ctx.logger.error(f"Stripe error creating bundle: {e}")
        return app_ctx.jsonify({'error': 'Failed to create bundle in Stripe', 'details': str(e)}), 400
    except Exception as e:
        app_ctx.logger.error(f"Error creating bundle: {e}")
        return app_ctx.jsonify({'error': 'Failed to create bundle', 'details': str(e)}), 500


def get_bundle(app_ctx, request, bundle_id):
    decoded_token, db = _authenticated_db(app_ctx, request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    bundle = bundle_service.get_bundle(db, bundle_id)
    if bundle is None:
        return app_ctx.jsonify({'error': 'Bundle not found'}), 404
    if bundle.get('creatorId') != decoded_token['uid']:
        return app_ctx.jsonify({'error': 'Access denied'}), 403
    return app_ctx.jsonify({'bundle': content_utils.json_safe(bundle)})


def update_bundle(app_ctx, request, bundle_id):
    decoded_token, _db = _authenticated_db(app_ctx, request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    fields = request.get_json(silent=True) or {}
    try:
        bundle = bundle_service.update_bundle(app_ctx, decoded_token['uid'], bundle_id, fields)
        return app_ctx.jsonify({'success': True, 'bundle': content_utils.json_safe(bundle)})
    except ApiError as e:
        return e.to_response()
    except app_ctx.stripe.error.StripeError as e:
        app_ctx.logger.error(f"Stripe error updating bundle {bundle_id}: {e}")
        return app_ctx.jsonify({'error': 'Failed to update bundle price', 'details': str(e)}), 400
    except Exception as e:
        app_ctx.logger.error(f"Error updating bundle {bundle_id}: {e}")
        return app_ctx.jsonify({'error': 'Failed to update bundle', 'details': str(e)}), 500


def delete_bundle(app_ctx, request, bundle_id):
    decoded_token, db = _authenticated_db(app_ctx, request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    try:
        deleted = bundle_service.delete_bundle(db, decoded_token['uid'], bundle_id)
        return app_ctx.jsonify({'success': True, 'alreadyDeleted': not deleted})
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error deleting bundle {bundle_id}: {e}")
        return app_ctx.jsonify({'error': 'Failed to delete bundle', 'details': str(e)}), 500


def add_content(app_ctx, request, bundle_id):
    decoded_token, db = _authenticated_db(app_ctx, request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    data = request.get_json(silent=True) or {}
    upload_ids = data.get('uploadIds') or data.get('contentIds') or []
    if not isinstance(upload_ids, list) or not upload_ids:
        return app_ctx.jsonify({'error': 'uploadIds must be a non-empty list'}), 400
    try:
        added, skipped = bundle_service.add_content(db, decoded_token['uid'], bundle_id, upload_ids)
        return app_ctx.jsonify({'success': bool(added), 'added': added, 'skipped': skipped})
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error adding content to bundle {bundle_id}: {e}")
        return app_ctx.jsonify({'error': 'Failed to add content', 'details': str(e)}), 500


def remove_content(app_ctx, request, bundle_id, content_id):
    decoded_token, db = _authenticated_db(app_ctx, request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    try:
        remaining = bundle_service.remove_content(db, decoded_token['uid'], bundle_id, content_id)
        return app_ctx.jsonify({'success': True, 'remainingCount': len(remaining)})
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error removing content {content_id} from bundle {bundle_id}: {e}")
        return app_ctx.jsonify({'error': 'Failed to remove content', 'details': str(e)}), 500


def get_public_bundle(app_ctx, request, bundle_id):
    db = app_ctx.require_db()
    bundle = bundle_service.get_bundle(db, bundle_id)
    if not bundle_service.is_active(bundle):
        return app_ctx.jsonify({'error': 'Bundle not found'}), 404
    return app_ctx.jsonify({'bundle': content_utils.json_safe(bundle_service.public_bundle_card(bundle))})
