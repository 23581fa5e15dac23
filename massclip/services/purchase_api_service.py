"""Business logic handlers for buyer purchase APIs."""

from massclip.errors import ApiError
from massclip.services import purchase_service, usage_service, webhook_service


def list_user_purchases(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    try:
        purchases = purchase_service.list_user_purchases(db, decoded_token['uid'])
        return app_ctx.jsonify({'purchases': purchases, 'count': len(purchases)})
    except Exception as e:
        app_ctx.logger.error(f"Error listing purchases for {decoded_token['uid']}: {e}")
        return app_ctx.jsonify({'error': 'Failed to fetch purchases', 'details': str(e)}), 500


def get_bundle_content(app_ctx, request, bundle_id):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    try:
        items, source = purchase_service.get_purchased_content(db, decoded_token['uid'], bundle_id)
        return app_ctx.jsonify({
            'success': True,
            'bundleId': bundle_id,
            'contents': items,
            'totalItems': len(items),
            'source': source,
        })
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error fetching content for bundle {bundle_id}: {e}")
        return app_ctx.jsonify({'error': 'Failed to fetch content', 'details': str(e)}), 500


def _session_belongs_to(session, uid, email):
    metadata = session.get('metadata') or {}
    if metadata.get('buyerUid'):
        return metadata['buyerUid'] == uid
    if session.get('client_reference_id'):
        return session['client_reference_id'] == uid
    customer_details = session.get('customer_details') or {}
    session_email = str(customer_details.get('email') or session.get('customer_email') or '').lower()
    return bool(email) and session_email == str(email).lower()


def verify_and_complete(app_ctx, request):
    """Success-page fallback for a webhook that has not arrived yet."""
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    app_ctx.require_db()
    uid = decoded_token['uid']
    data = request.get_json(silent=True) or {}
    session_id = str(data.get('sessionId', '') or '').strip()
    if not session_id.startswith('cs_'):
        return app_ctx.jsonify({'error': 'Invalid session ID'}), 400

    try:
        session = app_ctx.stripe.checkout.Session.retrieve(session_id)
    except app_ctx.stripe.error.StripeError as e:
        app_ctx.logger.warning(f"Could not retrieve checkout session {session_id}: {e}")
        return app_ctx.jsonify({'error': 'Checkout session not found', 'details': str(e)}), 404

    if not _session_belongs_to(session, uid, decoded_token.get('email', '')):
        return app_ctx.jsonify({'error': 'This checkout session belongs to another account'}), 403
    if session.get('payment_status') != 'paid':
        return app_ctx.jsonify({'error': 'Payment not completed', 'paymentStatus': session.get('payment_status')}), 400

    metadata = dict(session.get('metadata') or {})
    session_data = dict(session)
    session_data['metadata'] = dict(metadata, buyerUid=metadata.get('buyerUid') or uid)
    try:
        if metadata.get('contentType') == 'bundle_slots':
            created = usage_service.complete_bundle_slot_purchase(
                app_ctx.db, session_id, session.get('payment_intent') or '',
            )
        else:
            created = webhook_service.process_bundle_purchase(app_ctx, session_data)
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"❌ verify-and-complete failed for {session_id}: {e}")
        return app_ctx.jsonify({'error': 'Failed to complete purchase', 'details': str(e)}), 500

    return app_ctx.jsonify({
        'success': True,
        'sessionId': session_id,
        'alreadyProcessed': not created,
        'bundleId': metadata.get('bundleId') or metadata.get('productBoxId'),
    })
