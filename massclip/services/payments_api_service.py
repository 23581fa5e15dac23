"""Business logic handlers for usage-limit and earnings APIs."""

from massclip.services import connect_service, earnings_service, membership_service, usage_service


def get_usage_limits(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    uid = decoded_token['uid']
    email = decoded_token.get('email', '')
    try:
        membership = membership_service.get_effective_membership(db, uid, email=email)
        if membership_service.is_pro(membership):
            return app_ctx.jsonify({'tier': 'creator_pro', 'limits': usage_service.pro_limits(membership)})
        usage_service.ensure_free_user(db, uid, email)
        return app_ctx.jsonify({'tier': 'free', 'limits': usage_service.get_limits(db, uid)})
    except Exception as e:
        app_ctx.logger.error(f"Error loading usage limits for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Failed to get usage limits', 'details': str(e)}), 500


def record_download(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    uid = decoded_token['uid']
    try:
        allowed, reason = usage_service.record_download(db, uid, email=decoded_token.get('email', ''))
    except Exception as e:
        app_ctx.logger.error(f"Error recording download for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Failed to record download', 'details': str(e)}), 500
    if not allowed:
        return app_ctx.jsonify({'success': False, 'error': reason}), 429
    return app_ctx.jsonify({'success': True})


def get_earnings(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Unauthorized'}), 401
    db = app_ctx.require_db()
    uid = decoded_token['uid']
    try:
        sales = earnings_service.get_sales_summary(db, uid)
        account = connect_service.get_connected_account(db, uid)
        balance = earnings_service.get_stripe_balance(app_ctx, (account or {}).get('stripe_user_id'))
        membership = membership_service.get_effective_membership(db, uid, email=decoded_token.get('email'))
        return app_ctx.jsonify({
            'sales': sales,
            'balance': balance,
            'platformFeePercentage': membership_service.platform_fee_percentage(membership),
        })
    except Exception as e:
        app_ctx.logger.error(f"Error loading earnings for {uid}: {e}")
        return app_ctx.jsonify({'error': 'Failed to fetch earnings data', 'details': str(e)}), 500
