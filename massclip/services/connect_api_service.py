"""Business logic handlers for Stripe Connect APIs."""

from massclip.errors import ApiError
from massclip.services import connect_service, content_utils


def start_oauth(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    app_ctx.require_db()
    try:
        result = connect_service.start_oauth(app_ctx, decoded_token['uid'], decoded_token.get('email', ''))
        return app_ctx.jsonify({'success': True, 'url': result['url']})
    except ApiError as e:
        return e.to_response()
    except Exception as e:
        app_ctx.logger.error(f"Error starting Stripe OAuth: {e}")
        return app_ctx.jsonify({'error': 'Failed to start Stripe onboarding', 'details': str(e)}), 500


def oauth_callback(app_ctx, request):
    app_ctx.require_db()
    args = request.args
    target = connect_service.complete_oauth(
        app_ctx,
        args.get('code', ''),
        args.get('state', ''),
        error=args.get('error') or None,
        error_description=args.get('error_description', ''),
    )
    return app_ctx.redirect(target)


def manual_connect(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    app_ctx.require_db()
    data = request.get_json(silent=True) or {}
    account_id = str(data.get('accountId', '') or '').strip()
    try:
        account = connect_service.manual_connect(app_ctx, decoded_token['uid'], account_id)
        return app_ctx.jsonify({'success': True, 'account': connect_service.account_status(account)})
    except ApiError as e:
        return e.to_response()
    except app_ctx.stripe.error.StripeError as e:
        app_ctx.logger.warning(f"Stripe account {account_id} could not be retrieved: {e}")
        return app_ctx.jsonify({'error': 'Stripe account not found or not accessible', 'details': str(e)}), 400
    except Exception as e:
        app_ctx.logger.error(f"Error linking Stripe account {account_id}: {e}")
        return app_ctx.jsonify({'error': 'Failed to connect Stripe account', 'details': str(e)}), 500


def get_status(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    app_ctx.require_db()
    uid = decoded_token['uid']
    try:
        if request.args.get('refresh') == 'true':
            account = connect_service.refresh_account_status(app_ctx, uid)
        else:
            account = connect_service.get_connected_account(app_ctx.db, uid)
        return app_ctx.jsonify(content_utils.json_safe(connect_service.account_status(account)))
    except Exception as e:
        app_ctx.logger.error(f"Error checking Stripe status for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Failed to check Stripe status', 'details': str(e)}), 500


def disconnect(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    app_ctx.require_db()
    try:
        if not connect_service.disconnect(app_ctx, decoded_token['uid']):
            return app_ctx.jsonify({'error': 'No connected Stripe account'}), 404
        return app_ctx.jsonify({'success': True})
    except Exception as e:
        app_ctx.logger.error(f"Error disconnecting Stripe account: {e}")
        return app_ctx.jsonify({'error': 'Failed to disconnect Stripe account', 'details': str(e)}), 500
