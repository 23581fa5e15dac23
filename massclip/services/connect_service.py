"""Stripe Connect onboarding: OAuth, manual linking and account status."""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from urllib.parse import quote, urlencode

from firebase_admin import firestore

from massclip.errors import ApiError
from massclip.repositories import connect_repo, users_repo
from massclip.repositories.query_utils import to_datetime

logger = logging.getLogger('massclip')

OAUTH_AUTHORIZE_URL = 'https://connect.stripe.com/oauth/authorize'
OAUTH_STATE_TTL = timedelta(minutes=30)
CALLBACK_PATH = '/dashboard/connect-stripe/callback'


def is_test_mode(secret_key):
    return str(secret_key or '').startswith('sk_test_')


def oauth_redirect_uri(site_url):
    return f"{site_url}/api/stripe/connect/oauth-callback"


def start_oauth(app_ctx, uid, email, now=None):
    """Persist a one-time state and return the Stripe authorize URL."""
    if not app_ctx.config.stripe_connect_client_id:
        raise ApiError('Stripe Connect is not configured', status=500)
    now = now or datetime.now(timezone.utc)
    state = secrets.token_urlsafe(32)
    connect_repo.oauth_state_ref(app_ctx.db, state).set({
        'userId': uid,
        'email': email or '',
        'createdAt': now,
        'expiresAt': now + OAUTH_STATE_TTL,
        'used': False,
    })
    query = urlencode({
        'response_type': 'code',
        'client_id': app_ctx.config.stripe_connect_client_id,
        'scope': 'read_write',
        'state': state,
        'redirect_uri': oauth_redirect_uri(app_ctx.config.site_url),
    })
    return {'url': f"{OAUTH_AUTHORIZE_URL}?{query}", 'state': state}


def _callback_url(site_url, error=None, description=''):
    if error is None:
        return f"{site_url}{CALLBACK_PATH}?success=true"
    return f"{site_url}{CALLBACK_PATH}?error={quote(error)}&error_description={quote(description or '')}"


def _claim_state(db, state_ref, now):
    """Mark a state used. Returns ``(state_data, None)`` or ``(None, (error, description))``."""
    transaction = db.transaction()

    @firestore.transactional
    def _txn(txn):
        snapshot = state_ref.get(transaction=txn)
        if not snapshot.exists:
            return None, ('invalid_state', 'OAuth state not found - session may have expired')
        state_data = snapshot.to_dict() or {}
        expires_at = to_datetime(state_data.get('expiresAt'))
        if expires_at is not None and expires_at < now:
            txn.delete(state_ref)
            return None, ('expired_state', 'OAuth state has expired - please try connecting again')
        if state_data.get('used'):
            return None, ('used_state', 'OAuth state has already been used')
        txn.update(state_ref, {'used': True, 'usedAt': now})
        return state_data, None

    return _txn(transaction)


def complete_oauth(app_ctx, code, state, error=None, error_description='', now=None):
    """Finish the OAuth round trip. Always returns the frontend redirect URL."""
    site_url = app_ctx.config.site_url
    if error:
        return _callback_url(site_url, error, error_description)
    if not code or not state:
        return _callback_url(site_url, 'invalid_request', 'Missing authorization code or state parameter')

    db = app_ctx.db
    state_ref = connect_repo.oauth_state_ref(db, state)
    try:
        state_data, rejection = _claim_state(db, state_ref, now or datetime.now(timezone.utc))
        if rejection is not None:
            return _callback_url(site_url, *rejection)
        tokens = app_ctx.stripe.OAuth.token(grant_type='authorization_code', code=code)
        account = app_ctx.stripe.Account.retrieve(tokens['stripe_user_id'])
        store_connected_account(db, state_data.get('userId', ''), account, tokens=tokens)
        state_ref.delete()
        logger.info(f"✅ Connected Stripe account {tokens['stripe_user_id']} for {state_data.get('userId', '')[:8]}...")
        return _callback_url(site_url)
    except Exception as e:
        logger.error(f"❌ Stripe OAuth callback failed: {e}")
        try:
            state_ref.delete()
        except Exception as cleanup_error:
            logger.warning(f"Could not delete OAuth state {state[:8]}...: {cleanup_error}")
        return _callback_url(site_url, 'processing_failed', str(e))


def _account_fields(account):
    account = account or {}
    business_profile = account.get('business_profile') or None
    requirements = account.get('requirements') or None
    return {
        'charges_enabled': bool(account.get('charges_enabled')),
        'payouts_enabled': bool(account.get('payouts_enabled')),
        'details_submitted': bool(account.get('details_submitted')),
        'country': account.get('country'),
        'email': account.get('email'),
        'business_type': account.get('business_type'),
        'type': account.get('type'),
        'default_currency': account.get('default_currency') or 'usd',
        'business_profile': {
            'name': business_profile.get('name'),
            'url': business_profile.get('url'),
            'support_email': business_profile.get('support_email'),
        } if business_profile else None,
        'requirements': {
            'currently_due': list(requirements.get('currently_due') or []),
            'past_due': list(requirements.get('past_due') or []),
            'pending_verification': list(requirements.get('pending_verification') or []),
            'eventually_due': list(requirements.get('eventually_due') or []),
        } if requirements else None,
    }


def store_connected_account(db, uid, account, tokens=None):
    tokens = tokens or {}
    account_id = tokens.get('stripe_user_id') or account.get('id')
    record = {
        'stripe_user_id': account_id,
        'access_token': tokens.get('access_token', ''),
        'refresh_token': tokens.get('refresh_token'),
        'livemode': bool(tokens.get('livemode', account.get('livemode', False))),
        'scope': tokens.get('scope', 'manual' if not tokens else ''),
        'userId': uid,
        'connected': True,
        'connectedAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }
    record.update(_account_fields(account))
    connect_repo.account_ref(db, uid).set(record)
    users_repo.set_doc(db, uid, {
        'stripeAccountId': account_id,
        'stripeConnectedAt': firestore.SERVER_TIMESTAMP,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }, merge=True)
    return record


def manual_connect(app_ctx, uid, account_id):
    account_id = str(account_id or '').strip()
    if not account_id.startswith('acct_'):
        raise ApiError("Invalid account ID format. Must start with 'acct_'")
    try:
        account = app_ctx.stripe.Account.retrieve(account_id)
    except app_ctx.stripe.error.StripeError as e:
        raise ApiError('Account not found or not accessible', details=str(e))

    test_mode = is_test_mode(app_ctx.config.stripe_secret_key)
    if bool(account.get('livemode')) == test_mode:
        expected = 'test' if test_mode else 'live'
        raise ApiError(f"Account mode does not match platform mode (expected {expected})")

    for existing in connect_repo.find_by_account_id(app_ctx.db, account_id):
        if existing.id != uid:
            raise ApiError('This Stripe account is already connected to another user', status=409)

    return store_connected_account(app_ctx.db, uid, account)


def get_connected_account(db, uid):
    snapshot = connect_repo.account_ref(db, uid).get()
    if not snapshot.exists:
        return None
    return snapshot.to_dict() or {}


def has_active_account(db, uid):
    account = get_connected_account(db, uid)
    if not account or not account.get('connected'):
        return False
    return bool(account.get('charges_enabled')) and bool(account.get('details_submitted'))


def refresh_account_status(app_ctx, uid):
    existing = get_connected_account(app_ctx.db, uid)
    if existing is None:
        return None
    account = app_ctx.stripe.Account.retrieve(existing['stripe_user_id'])
    updates = _account_fields(account)
    updates['updatedAt'] = firestore.SERVER_TIMESTAMP
    connect_repo.account_ref(app_ctx.db, uid).update(updates)
    merged = dict(existing)
    merged.update(updates)
    return merged


def account_status(account):
    if not account:
        return {'connected': False}
    return {
        'connected': bool(account.get('connected')),
        'accountId': account.get('stripe_user_id'),
        'chargesEnabled': bool(account.get('charges_enabled')),
        'payoutsEnabled': bool(account.get('payouts_enabled')),
        'detailsSubmitted': bool(account.get('details_submitted')),
        'country': account.get('country'),
        'defaultCurrency': account.get('default_currency') or 'usd',
        'requirements': account.get('requirements'),
    }


def disconnect(app_ctx, uid):
    account = get_connected_account(app_ctx.db, uid)
    if account is None:
        return False
    account_id = account.get('stripe_user_id', '')
    if app_ctx.config.stripe_connect_client_id and account_id:
        try:
            app_ctx.stripe.OAuth.deauthorize(
                client_id=app_ctx.config.stripe_connect_client_id,
                stripe_user_id=account_id,
            )
        except app_ctx.stripe.error.StripeError as e:
            logger.warning(f"⚠️ Stripe deauthorize failed for {account_id} (continuing): {e}")
    connect_repo.account_ref(app_ctx.db, uid).delete()
    users_repo.set_doc(app_ctx.db, uid, {
        'stripeAccountId': firestore.DELETE_FIELD,
        'updatedAt': firestore.SERVER_TIMESTAMP,
    }, merge=True)
    logger.info(f"🔌 Disconnected Stripe account {account_id} for {uid[:8]}...")
    return True
