"""Stripe webhook verification and event processing."""

import secrets
import time
from datetime import datetime, timezone

from firebase_admin import firestore

from massclip.repositories import bundles_repo, purchases_repo, users_repo
from massclip.services import (
    bundle_service,
    email_service,
    membership_service,
    notification_service,
    purchase_service,
    usage_service,
)

PASSWORD_ALPHABET = 'ABCDEFGHJKMNPQRSTUVWXYZabcdefghijkmnpqrstuvwxyz23456789!@#$%^&*'
PASSWORD_LENGTH = 12


def handle_stripe_webhook(app_ctx, request):
    payload = request.data
    sig_header = request.headers.get('Stripe-Signature', '')
    if not sig_header:
        return app_ctx.jsonify({'error': 'Missing signature'}), 400
    if not app_ctx.config.stripe_webhook_secret:
        app_ctx.logger.warning("⚠️ Stripe webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
        return app_ctx.jsonify({'error': 'Webhook not configured'}), 500

    try:
        event = app_ctx.stripe.Webhook.construct_event(payload, sig_header, app_ctx.config.stripe_webhook_secret)
    except (ValueError, app_ctx.stripe.error.SignatureVerificationError) as e:
        app_ctx.logger.warning(f"Stripe webhook signature verification failed: {e}")
        return f"Webhook Error: {e}", 400

    if app_ctx.db is None:
        return app_ctx.jsonify({'error': 'Database not initialized'}), 500

    record_event(app_ctx, event)
    try:
        dispatch_event(app_ctx, event)
    except Exception as e:
        app_ctx.logger.error(f"❌ Webhook handler failed for {event.get('type')} {event.get('id')}: {e}")
        return app_ctx.jsonify({'error': 'Webhook handler failed', 'details': str(e)}), 500

    mark_event_processed(app_ctx, event)
    return app_ctx.jsonify({'received': True})


def record_event(app_ctx, event):
    event_id = event.get('id') or ''
    if not event_id:
        return
    data_object = (event.get('data') or {}).get('object') or {}
    try:
        purchases_repo.stripe_event_ref(app_ctx.db, event_id).set({
            'id': event_id,
            'type': event.get('type'),
            'apiVersion': event.get('api_version'),
            'livemode': bool(event.get('livemode', False)),
            'objectId': data_object.get('id'),
            'objectType': data_object.get('object'),
            'created': datetime.fromtimestamp(int(event.get('created') or 0), tz=timezone.utc),
            'receivedAt': firestore.SERVER_TIMESTAMP,
            'deliveries': firestore.Increment(1),
        }, merge=True)
    except Exception as e:
        app_ctx.logger.warning(f"⚠️ Could not store Stripe event {event_id}: {e}")


def mark_event_processed(app_ctx, event):
    event_id = event.get('id') or ''
    if not event_id:
        return
    try:
        purchases_repo.stripe_event_ref(app_ctx.db, event_id).set({'processedAt': firestore.SERVER_TIMESTAMP}, merge=True)
    except Exception as e:
        app_ctx.logger.warning(f"⚠️ Could not mark Stripe event {event_id} processed: {e}")


def dispatch_event(app_ctx, event):
    event_type = event.get('type', '')
    data_object = (event.get('data') or {}).get('object') or {}

    if event_type == 'checkout.session.completed':
        metadata = data_object.get('metadata') or {}
        content_type = metadata.get('contentType')
        if content_type == 'bundle_slots':
            usage_service.complete_bundle_slot_purchase(
                app_ctx.db, data_object.get('id'), data_object.get('payment_intent') or '',
            )
        elif content_type == 'bundle' or metadata.get('bundleId') or metadata.get('productBoxId'):
            process_bundle_purchase(app_ctx, data_object)
        else:
            process_subscription_checkout(app_ctx, data_object)
    elif event_type in ('customer.subscription.created', 'customer.subscription.updated'):
        process_subscription_updated(app_ctx, data_object)
    elif event_type == 'customer.subscription.deleted':
        process_subscription_deleted(app_ctx, data_object)
    else:
        app_ctx.logger.info(f"ℹ️ Unhandled Stripe event type: {event_type}")


def generate_guest_password(length=PASSWORD_LENGTH):
    return ''.join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def create_guest_account(app_ctx, email, name=None):
    display_name = name or email.split('@')[0]
    password = generate_guest_password()
    user_record = app_ctx.auth.create_user(
        email=email,
        password=password,
        display_name=display_name,
        email_verified=False,
    )
    users_repo.set_doc(app_ctx.db, user_record.uid, {
        'uid': user_record.uid,
        'email': email,
        'displayName': display_name,
        'username': f"user_{int(time.time() * 1000)}",
        'createdAt': firestore.SERVER_TIMESTAMP,
        'isGuestCreated': True,
        'emailVerified': False,
        'plan': membership_service.PLAN_FREE,
    })
    html = email_service.render_guest_welcome(display_name, email, password, app_ctx.config.site_url)
    ok, detail = app_ctx.send_email(email, 'Welcome to MassClip - Your Account & Purchase Details', html)
    if not ok:
        app_ctx.logger.warning(f"⚠️ Guest welcome email to {email} not sent: {detail}")
    app_ctx.logger.info(f"👤 Created guest account {user_record.uid} for {email}")
    return user_record.uid


def resolve_guest_buyer(app_ctx, session):
    customer_details = session.get('customer_details') or {}
    email = customer_details.get('email') or session.get('customer_email')
    if not email:
        raise ValueError('No customer email found for guest purchase')
    try:
        return app_ctx.auth.get_user_by_email(email).uid, False
    except app_ctx.auth.UserNotFoundError:
        pass
    except Exception as e:
        app_ctx.logger.error(f"❌ Auth lookup failed for guest {email}: {e}")
        return f"guest_{int(time.time() * 1000)}", True
    try:
        return create_guest_account(app_ctx, email, customer_details.get('name')), True
    except Exception as e:
        app_ctx.logger.error(f"❌ Guest account creation failed for {email}: {e}")
        return f"guest_{int(time.time() * 1000)}", True


def process_bundle_purchase(app_ctx, session):
    db = app_ctx.db
    metadata = session.get('metadata') or {}
    item_id = metadata.get('bundleId') or metadata.get('productBoxId')
    if not item_id:
        raise ValueError('Missing bundle/productBox ID in session metadata')

    buyer_uid = metadata.get('buyerUid') or metadata.get('buyer_user_id') or ''
    is_guest = metadata.get('is_guest_checkout') == 'true'
    if not buyer_uid and is_guest:
        buyer_uid, is_guest = resolve_guest_buyer(app_ctx, session)
    if not buyer_uid:
        raise ValueError('Missing buyer UID and not a guest purchase')

    bundle = bundle_service.get_bundle(db, item_id)
    if bundle is not None:
        item_kwargs = {'bundle_id': item_id}
        item_data = bundle
    else:
        legacy = bundles_repo.legacy_product_box_ref(db, item_id).get()
        if not legacy.exists:
            raise ValueError(f"Bundle not found: {item_id}")
        item_kwargs = {'product_box_id': item_id}
        item_data = legacy.to_dict() or {}

    bundle_price = float(item_data.get('price') or item_data.get('amount') or 0)
    stripe_price = (session.get('amount_total') or 0) / 100.0
    final_price = bundle_price if bundle_price > 0 else stripe_price
    currency = session.get('currency') or item_data.get('currency') or 'usd'
    creator_id = metadata.get('creatorId') or item_data.get('creatorId') or 'unknown'

    customer_details = session.get('customer_details') or {}
    buyer_email = customer_details.get('email') or session.get('customer_email') or ''
    buyer_name = customer_details.get('name') or 'Anonymous User'
    contents = bundle_service.resolve_bundle_contents(db, item_id, item_data)

    session_id = session.get('id')
    _, created = purchase_service.create_unified_purchase(
        app_ctx,
        buyer_uid,
        session_id=session_id,
        amount=final_price,
        currency=currency,
        creator_id=creator_id,
        user_email=buyer_email,
        user_name=buyer_name,
        extra={
            'bundleTitle': item_data.get('title') or 'Untitled Bundle',
            'bundleDescription': item_data.get('description') or '',
            'bundleThumbnailUrl': item_data.get('customPreviewThumbnail') or item_data.get('thumbnailUrl') or '',
            'buyerEmail': buyer_email,
            'buyerName': buyer_name,
            'isGuestPurchase': is_guest,
            'price': final_price,
            'purchaseAmount': int(round(final_price * 100)),
            'paymentIntentId': session.get('payment_intent'),
            'stripeCustomerId': session.get('customer'),
            'contents': contents,
            'contentCount': len(contents),
            'completedAt': datetime.now(timezone.utc),
            'source': 'stripe_webhook',
            'webhookProcessed': True,
        },
        **item_kwargs,
    )
    if not created:
        return False

    if bundle is not None:
        bundles_repo.doc_ref(db, item_id).update({
            'salesCount': firestore.Increment(1),
            'totalRevenue': firestore.Increment(final_price),
            'lastSaleAt': firestore.SERVER_TIMESTAMP,
        })
    if creator_id and creator_id != 'unknown':
        try:
            notification_service.notify_creator_of_sale(
                app_ctx, creator_id, item_data.get('title') or 'Untitled Bundle', buyer_name, final_price, currency,
            )
        except Exception as e:
            app_ctx.logger.warning(f"⚠️ Sale notification for {session_id} failed: {e}")
    app_ctx.logger.info(f"✅ Bundle purchase {session_id}: {'guest' if is_guest else 'user'} {buyer_uid} -> {item_id} at ${final_price}")
    return True


def resolve_uid_from_session(app_ctx, session):
    metadata = session.get('metadata') or {}
    subscription_details = session.get('subscription_details') or {}
    meta_uid = metadata.get('buyerUid') or (subscription_details.get('metadata') or {}).get('buyerUid')
    if meta_uid:
        return meta_uid
    if session.get('client_reference_id'):
        return session['client_reference_id']

    customer_details = session.get('customer_details') or {}
    email = customer_details.get('email') or session.get('customer_email')
    if not email:
        return None
    try:
        return app_ctx.auth.get_user_by_email(email).uid
    except Exception:
        user_doc = users_repo.find_by_email(app_ctx.db, email)
        return user_doc.id if user_doc is not None else None


def _object_id(value):
    if isinstance(value, str):
        return value
    if value:
        return value.get('id')
    return None


def process_subscription_checkout(app_ctx, session):
    uid = resolve_uid_from_session(app_ctx, session)
    if not uid:
        app_ctx.logger.warning(f"⚠️ Subscription checkout {session.get('id')} has no resolvable user; acknowledging")
        return False
    metadata = session.get('metadata') or {}
    customer_details = session.get('customer_details') or {}
    membership_service.upsert_membership(
        app_ctx.db,
        uid,
        email=customer_details.get('email') or session.get('customer_email'),
        plan=membership_service.PLAN_PRO,
        status='active',
        stripeCustomerId=_object_id(session.get('customer')),
        stripeSubscriptionId=_object_id(session.get('subscription')),
        priceId=metadata.get('priceId') or app_ctx.config.stripe_pro_price_id or None,
    )
    usage_service.upgrade_to_pro(app_ctx.db, uid)
    app_ctx.logger.info(f"⭐ Creator Pro activated for {uid[:8]}...")
    return True


def _uid_for_subscription(app_ctx, subscription):
    metadata = subscription.get('metadata') or {}
    uid = metadata.get('buyerUid') or metadata.get('firebaseUid')
    if uid:
        return uid
    customer_id = _object_id(subscription.get('customer'))
    if not customer_id:
        return None
    try:
        customer = app_ctx.stripe.Customer.retrieve(customer_id)
        email = customer.get('email')
        if email:
            return app_ctx.auth.get_user_by_email(email).uid
    except Exception as e:
        app_ctx.logger.warning(f"⚠️ Could not resolve user for customer {customer_id}: {e}")
    return None


def _subscription_price_id(subscription):
    items = ((subscription.get('items') or {}).get('data')) or []
    if items:
        return (items[0].get('price') or {}).get('id')
    return None


def _subscription_period_end(subscription):
    period_end = subscription.get('current_period_end')
    if not period_end:
        items = ((subscription.get('items') or {}).get('data')) or []
        period_end = items[0].get('current_period_end') if items else None
    if not period_end:
        return None
    return datetime.fromtimestamp(int(period_end), tz=timezone.utc)


def process_subscription_updated(app_ctx, subscription):
    uid = _uid_for_subscription(app_ctx, subscription)
    if not uid:
        app_ctx.logger.warning(f"⚠️ Subscription {subscription.get('id')} has no resolvable user; acknowledging")
        return False
    membership_service.upsert_membership(
        app_ctx.db,
        uid,
        plan=membership_service.PLAN_PRO,
        status=subscription.get('status') or 'inactive',
        stripeCustomerId=_object_id(subscription.get('customer')),
        stripeSubscriptionId=subscription.get('id'),
        currentPeriodEnd=_subscription_period_end(subscription),
        priceId=_subscription_price_id(subscription),
    )
    return True


def process_subscription_deleted(app_ctx, subscription):
    uid = _uid_for_subscription(app_ctx, subscription)
    if not uid:
        app_ctx.logger.warning(f"⚠️ Deleted subscription {subscription.get('id')} has no resolvable user; acknowledging")
        return False
    membership_service.upsert_membership(
        app_ctx.db,
        uid,
        plan=membership_service.PLAN_FREE,
        status='canceled',
        stripeCustomerId=_object_id(subscription.get('customer')),
        stripeSubscriptionId=subscription.get('id'),
        currentPeriodEnd=None,
        priceId=_subscription_price_id(subscription),
    )
    app_ctx.logger.info(f"⬇️ Creator Pro canceled for {uid[:8]}...")
    return True
