"""Checkout Session creation for bundles, Creator Pro and bundle slots."""

import logging
import time
from datetime import datetime, timezone

from massclip.repositories import purchases_repo
from massclip.services import bundle_service, connect_service, membership_service, purchase_service, usage_service

STRIPE_RETRY_ATTEMPTS = 3
STRIPE_RETRY_INITIAL_DELAY = 0.3


def with_stripe_retry(app_ctx, operation, attempts=STRIPE_RETRY_ATTEMPTS, initial_delay=STRIPE_RETRY_INITIAL_DELAY, sleep=time.sleep):
    """Run a Stripe call, retrying transient failures with exponential backoff."""
    errors = app_ctx.stripe.error
    retryable = (errors.APIConnectionError, errors.RateLimitError, errors.APIError)
    for attempt in range(attempts):
        try:
            return operation()
        except retryable as e:
            if attempt == attempts - 1:
                raise
            delay = initial_delay * (2 ** attempt)
            app_ctx.logger.warning(f"⚠️ Stripe call failed (attempt {attempt + 1}/{attempts}), retrying in {delay:.1f}s: {e}")
            sleep(delay)


def _site_url(app_ctx, request):
    return app_ctx.config.site_url or request.host_url.rstrip('/')


def _checkout_rate_limited(app_ctx, request, identity):
    allowed, retry_after = app_ctx.check_rate_limit(
        key=f"checkout:{app_ctx.normalize_rate_limit_key_part(identity, fallback='anon')}",
        limit=app_ctx.config.checkout_rate_limit_max_requests,
        window_seconds=app_ctx.config.checkout_rate_limit_window_seconds,
    )
    if allowed:
        return None
    app_ctx.log_event(logging.WARNING, 'rate_limit_hit', limit_name='checkout', retry_after=retry_after)
    return app_ctx.build_rate_limited_response(
        'Too many checkout attempts. Please wait before starting another checkout.',
        retry_after,
    )


def creator_fee_percentage(app_ctx, creator_id):
    try:
        membership = membership_service.get_effective_membership(app_ctx.db, creator_id)
        return membership_service.platform_fee_percentage(membership)
    except Exception as e:
        app_ctx.logger.warning(f"⚠️ Membership lookup failed for creator {creator_id[:8]}..., using free-tier fee: {e}")
        return membership_service.FREE_DEFAULTS['platformFeePercentage']


def application_fee_amount(amount_cents, fee_percentage):
    return int(round(amount_cents * (fee_percentage / 100.0)))


def create_bundle_checkout(app_ctx, request):
    app_ctx.require_db()
    decoded_token = app_ctx.verify_firebase_token(request)
    data = request.get_json(silent=True) or {}
    buyer_uid = decoded_token.get('uid', '') if decoded_token else ''
    buyer_email = (decoded_token.get('email', '') if decoded_token else '') or str(data.get('email', '') or '').strip()
    is_guest = not buyer_uid

    limited = _checkout_rate_limited(app_ctx, request, buyer_uid or app_ctx.client_ip(request))
    if limited is not None:
        return limited

    bundle_id = str(data.get('bundleId', '') or data.get('productBoxId', '') or '').strip()
    if not bundle_id:
        return app_ctx.jsonify({'error': 'Missing bundleId'}), 400
    if is_guest and '@' not in buyer_email:
        return app_ctx.jsonify({'error': 'Email is required for guest checkout'}), 400

    db = app_ctx.db
    bundle = bundle_service.get_bundle(db, bundle_id)
    if not bundle_service.is_active(bundle):
        return app_ctx.jsonify({'error': 'Bundle not found or no longer available'}), 404
    creator_id = bundle.get('creatorId', '')
    if buyer_uid and buyer_uid == creator_id:
        return app_ctx.jsonify({'error': 'You cannot purchase your own bundle'}), 400
    if buyer_uid and purchase_service.has_access(db, buyer_uid, bundle_id):
        return app_ctx.jsonify({'error': 'You already own this bundle', 'alreadyPurchased': True}), 409

    account = connect_service.get_connected_account(db, creator_id)
    if not account or not account.get('charges_enabled'):
        return app_ctx.jsonify({'error': 'This creator cannot accept payments right now', 'code': 'CREATOR_NOT_CONNECTED'}), 400

    amount_cents = int(round(float(bundle.get('price', 0) or 0) * 100))
    if amount_cents <= 0:
        return app_ctx.jsonify({'error': 'Bundle has an invalid price'}), 400
    fee_percentage = creator_fee_percentage(app_ctx, creator_id)
    site_url = _site_url(app_ctx, request)

    product_data = {'name': bundle.get('title') or 'Bundle'}
    if bundle.get('description'):
        product_data['description'] = bundle['description'][:500]
    if str(bundle.get('thumbnailUrl', '')).startswith('http'):
        product_data['images'] = [bundle['thumbnailUrl']]

    params = {
        'mode': 'payment',
        'payment_method_types': ['card'],
        'line_items': [{
            'price_data': {
                'currency': bundle.get('currency') or 'usd',
                'product_data': product_data,
                'unit_amount': amount_cents,
            },
            'quantity': 1,
        }],
        'payment_intent_data': {
            'application_fee_amount': application_fee_amount(amount_cents, fee_percentage),
            'transfer_data': {'destination': account.get('stripe_user_id')},
        },
        'success_url': f"{site_url}/purchase-success?session_id={{CHECKOUT_SESSION_ID}}&bundle_id={bundle_id}",
        'cancel_url': f"{site_url}/bundles/{bundle_id}?canceled=true",
        'metadata': {
            'contentType': 'bundle',
            'bundleId': bundle_id,
            'creatorId': creator_id,
            'buyerUid': buyer_uid,
            'buyerEmail': buyer_email,
            'is_guest_checkout': 'true' if is_guest else 'false',
            'platformFeePercentage': str(fee_percentage),
        },
    }
    if buyer_email:
        params['customer_email'] = buyer_email

    try:
        checkout_session = with_stripe_retry(app_ctx, lambda: app_ctx.stripe.checkout.Session.create(**params))
        app_ctx.logger.info(f"🛒 Bundle checkout {checkout_session.id} for {bundle_id} ({'guest' if is_guest else buyer_uid[:8] + '...'})")
        return app_ctx.jsonify({'sessionId': checkout_session.id, 'url': checkout_session.url})
    except app_ctx.stripe.error.StripeError as e:
        app_ctx.logger.error(f"Stripe bundle checkout error: {e}")
        return app_ctx.jsonify({'error': 'Could not create checkout session. Please try again.', 'details': str(e)}), 400
    except Exception as e:
        app_ctx.logger.error(f"Bundle checkout error: {e}")
        return app_ctx.jsonify({'error': 'Could not create checkout session. Please try again.'}), 500


def _find_or_create_customer(app_ctx, email, display_name, metadata):
    stripe = app_ctx.stripe
    try:
        existing = with_stripe_retry(app_ctx, lambda: stripe.Customer.list(email=email, limit=1))
        if existing.data:
            customer_id = existing.data[0].id
            return with_stripe_retry(app_ctx, lambda: stripe.Customer.modify(customer_id, metadata=metadata))
        return with_stripe_retry(app_ctx, lambda: stripe.Customer.create(
            email=email,
            name=display_name or None,
            metadata=metadata,
        ))
    except stripe.error.StripeError as e:
        app_ctx.logger.warning(f"⚠️ Could not prepare Stripe customer for {email}, falling back to customer_email: {e}")
        return None


def create_pro_subscription_checkout(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Please sign in to continue'}), 401
    price_id = app_ctx.config.stripe_pro_price_id
    if not price_id:
        return app_ctx.jsonify({'error': 'Server configuration error: Missing Stripe price ID'}), 500
    if not app_ctx.config.site_url:
        return app_ctx.jsonify({'error': 'Server configuration error: Missing site URL'}), 500

    uid = decoded_token['uid']
    email = decoded_token.get('email', '')
    if not email:
        return app_ctx.jsonify({'error': 'Your account has no email address'}), 400
    limited = _checkout_rate_limited(app_ctx, request, uid)
    if limited is not None:
        return limited

    data = request.get_json(silent=True) or {}
    display_name = str(data.get('displayName', '') or decoded_token.get('name', '') or '').strip()
    metadata = {
        'buyerUid': uid,
        'firebaseUid': uid,
        'email': email,
        'plan': membership_service.PLAN_PRO,
        'source': 'app_checkout',
    }
    customer = _find_or_create_customer(app_ctx, email, display_name, metadata)
    site_url = app_ctx.config.site_url
    params = {
        'mode': 'subscription',
        'payment_method_types': ['card'],
        'line_items': [{'price': price_id, 'quantity': 1}],
        'success_url': f"{site_url}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
        'cancel_url': f"{site_url}/subscription/cancel?session_id={{CHECKOUT_SESSION_ID}}",
        'metadata': metadata,
        'subscription_data': {'metadata': metadata},
        'client_reference_id': uid,
    }
    if customer is not None:
        params['customer'] = customer.id
    else:
        params['customer_email'] = email

    try:
        checkout_session = with_stripe_retry(app_ctx, lambda: app_ctx.stripe.checkout.Session.create(**params))
    except Exception as e:
        app_ctx.logger.error(f"Stripe subscription checkout error: {e}")
        return app_ctx.jsonify({'error': f"Stripe checkout error: {e}"}), 500

    try:
        purchases_repo.add_checkout_log(app_ctx.require_db(), {
            'timestamp': datetime.now(timezone.utc),
            'userId': uid,
            'email': email,
            'sessionId': checkout_session.id,
            'customerId': customer.id if customer is not None else None,
            'requestMetadata': metadata,
            'success': True,
        })
    except Exception as e:
        app_ctx.logger.warning(f"⚠️ Could not write checkout log for {checkout_session.id}: {e}")

    return app_ctx.jsonify({'sessionId': checkout_session.id, 'url': checkout_session.url})


def create_bundle_slot_checkout(app_ctx, request):
    decoded_token = app_ctx.verify_firebase_token(request)
    if not decoded_token:
        return app_ctx.jsonify({'error': 'Please sign in to continue'}), 401
    db = app_ctx.require_db()
    uid = decoded_token['uid']
    email = decoded_token.get('email', '')
    limited = _checkout_rate_limited(app_ctx, request, uid)
    if limited is not None:
        return limited

    data = request.get_json(silent=True) or {}
    tier = str(data.get('tier', '') or '').strip()
    tier_info = usage_service.BUNDLE_SLOT_TIERS.get(tier)
    if tier_info is None:
        return app_ctx.jsonify({'error': 'Invalid bundle slot tier', 'validTiers': sorted(usage_service.BUNDLE_SLOT_TIERS)}), 400

    site_url = _site_url(app_ctx, request)
    try:
        checkout_session = with_stripe_retry(app_ctx, lambda: app_ctx.stripe.checkout.Session.create(
            mode='payment',
            payment_method_types=['card'],
            line_items=[{
                'price_data': {
                    'currency': 'usd',
                    'product_data': {'name': tier_info['description']},
                    'unit_amount': tier_info['amount'],
                },
                'quantity': 1,
            }],
            success_url=f"{site_url}/dashboard/bundles?slots=success&session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{site_url}/dashboard/bundles?slots=cancelled",
            customer_email=email or None,
            metadata={
                'contentType': 'bundle_slots',
                'tier': tier,
                'bundleSlots': str(tier_info['slots']),
                'buyerUid': uid,
            },
        ))
        usage_service.create_bundle_slot_purchase(db, uid, email, tier, checkout_session.id)
        return app_ctx.jsonify({'sessionId': checkout_session.id, 'url': checkout_session.url})
    except Exception as e:
        app_ctx.logger.error(f"Bundle slot checkout error: {e}")
        return app_ctx.jsonify({'error': 'Could not create checkout session. Please try again.'}), 500


def get_checkout_config(app_ctx):
    return app_ctx.jsonify({
        'stripePublishableKey': app_ctx.config.stripe_publishable_key,
        'bundleSlotTiers': {
            tier: {'slots': info['slots'], 'amount': info['amount'], 'description': info['description']}
            for tier, info in usage_service.BUNDLE_SLOT_TIERS.items()
        },
        'proPlan': {'plan': membership_service.PLAN_PRO, 'features': membership_service.PRO_DEFAULTS},
    })
