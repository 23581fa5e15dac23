from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

import pytest

from massclip.errors import ApiError
from massclip.services import connect_service

from tests.fakes import StripeObject

NOW = datetime(2026, 4, 2, 9, 0, tzinfo=timezone.utc)
CALLBACK = 'https://massclip.test/dashboard/connect-stripe/callback'


def _account(account_id='acct_123', livemode=False, **fields):
    data = {
        'id': account_id,
        'livemode': livemode,
        'charges_enabled': True,
        'payouts_enabled': True,
        'details_submitted': True,
        'country': 'US',
        'default_currency': 'usd',
    }
    data.update(fields)
    return StripeObject(data)


def test_start_oauth_persists_single_use_state(ctx, db):
    result = connect_service.start_oauth(ctx, 'u1', 'u1@example.com', now=NOW)

    query = parse_qs(urlparse(result['url']).query)
    assert query['client_id'] == ['ca_test_client']
    assert query['state'] == [result['state']]
    assert query['redirect_uri'] == ['https://massclip.test/api/stripe/connect/oauth-callback']

    stored = db.data(f"stripe_oauth_states/{result['state']}")
    assert stored['userId'] == 'u1'
    assert stored['used'] is False
    assert stored['expiresAt'] == NOW + timedelta(minutes=30)


def test_complete_oauth_links_account_and_consumes_state(ctx, db, fake_stripe):
    state = connect_service.start_oauth(ctx, 'u1', 'u1@example.com', now=NOW)['state']
    fake_stripe.handlers['OAuth.token'] = StripeObject(
        stripe_user_id='acct_123', access_token='tok', refresh_token='rt', livemode=False, scope='read_write',
    )
    fake_stripe.handlers['Account.retrieve'] = _account()

    target = connect_service.complete_oauth(ctx, 'ac_code', state, now=NOW + timedelta(minutes=5))

    assert target == f"{CALLBACK}?success=true"
    account = db.data('connectedStripeAccounts/u1')
    assert account['stripe_user_id'] == 'acct_123'
    assert account['charges_enabled'] is True
    assert account['scope'] == 'read_write'
    assert db.data('users/u1')['stripeAccountId'] == 'acct_123'
    assert db.data(f"stripe_oauth_states/{state}") is None


def test_complete_oauth_rejects_expired_and_unknown_state(ctx, db):
    state = connect_service.start_oauth(ctx, 'u1', '', now=NOW)['state']

    expired = connect_service.complete_oauth(ctx, 'ac_code', state, now=NOW + timedelta(hours=1))
    assert expired.startswith(f"{CALLBACK}?error=expired_state")
    assert db.data(f"stripe_oauth_states/{state}") is None

    unknown = connect_service.complete_oauth(ctx, 'ac_code', 'nope', now=NOW)
    assert unknown.startswith(f"{CALLBACK}?error=invalid_state")


def test_complete_oauth_rejects_reused_state(ctx, db):
    db.seed('stripe_oauth_states/s1', {'userId': 'u1', 'used': True, 'expiresAt': NOW + timedelta(minutes=10)})
    assert connect_service.complete_oauth(ctx, 'ac_code', 's1', now=NOW).startswith(f"{CALLBACK}?error=used_state")


def test_second_callback_during_token_exchange_is_rejected(ctx, db, fake_stripe):
    state = connect_service.start_oauth(ctx, 'u1', '', now=NOW)['state']
    replays = []

    def exchange(**kwargs):
        assert db.data(f"stripe_oauth_states/{state}")['used'] is True
        replays.append(connect_service.complete_oauth(ctx, 'ac_code', state, now=NOW))
        return StripeObject(stripe_user_id='acct_123', access_token='tok', livemode=False, scope='read_write')

    fake_stripe.handlers['OAuth.token'] = exchange
    fake_stripe.handlers['Account.retrieve'] = _account()

    assert connect_service.complete_oauth(ctx, 'ac_code', state, now=NOW) == f"{CALLBACK}?success=true"
    assert replays[0].startswith(f"{CALLBACK}?error=used_state")
    assert len(fake_stripe.called('OAuth.token')) == 1
    assert db.transactions == 2


def test_complete_oauth_passes_provider_error_through(ctx):
    target = connect_service.complete_oauth(ctx, '', '', error='access_denied', error_description='User said no')
    assert target == f"{CALLBACK}?error=access_denied&error_description=User%20said%20no"


def test_token_exchange_failure_redirects_with_processing_failed(ctx, db, fake_stripe):
    state = connect_service.start_oauth(ctx, 'u1', '', now=NOW)['state']
    fake_stripe.handlers['OAuth.token'] = fake_stripe.error.StripeError('invalid_grant')

    target = connect_service.complete_oauth(ctx, 'bad', state, now=NOW)

    assert target.startswith(f"{CALLBACK}?error=processing_failed")
    assert db.data(f"stripe_oauth_states/{state}") is None
    assert db.data('connectedStripeAccounts/u1') is None


def test_manual_connect_validates_format_mode_and_ownership(ctx, db, fake_stripe):
    with pytest.raises(ApiError):
        connect_service.manual_connect(ctx, 'u1', 'not-an-account')

    fake_stripe.handlers['Account.retrieve'] = _account(livemode=True)
    with pytest.raises(ApiError) as live_error:
        connect_service.manual_connect(ctx, 'u1', 'acct_123')
    assert 'expected test' in live_error.value.message

    fake_stripe.handlers['Account.retrieve'] = _account()
    db.seed('connectedStripeAccounts/someone-else', {'stripe_user_id': 'acct_123', 'connected': True})
    with pytest.raises(ApiError) as conflict:
        connect_service.manual_connect(ctx, 'u1', 'acct_123')
    assert conflict.value.status == 409


def test_manual_connect_stores_account(ctx, db, fake_stripe):
    fake_stripe.handlers['Account.retrieve'] = _account()
    record = connect_service.manual_connect(ctx, 'u1', 'acct_123')
    assert record['scope'] == 'manual'
    assert connect_service.has_active_account(db, 'u1') is True


def test_disconnect_deauthorizes_and_clears_user_field(ctx, db, fake_stripe):
    db.seed('connectedStripeAccounts/u1', {'stripe_user_id': 'acct_123', 'connected': True})
    db.seed('users/u1', {'stripeAccountId': 'acct_123', 'username': 'creator'})

    assert connect_service.disconnect(ctx, 'u1') is True
    assert fake_stripe.called('OAuth.deauthorize')[0][2]['stripe_user_id'] == 'acct_123'
    assert db.data('connectedStripeAccounts/u1') is None
    assert 'stripeAccountId' not in db.data('users/u1')
    assert connect_service.disconnect(ctx, 'u1') is False


def test_oauth_callback_endpoint_redirects_to_dashboard(client):
    response = client.get('/api/stripe/connect/oauth-callback?error=access_denied&error_description=nope')
    assert response.status_code == 302
    assert response.headers['Location'].startswith(f"{CALLBACK}?error=access_denied")


def test_status_endpoint_reports_connection(client, db, sign_in):
    sign_in('u1', 'u1@example.com')
    assert client.get('/api/stripe/connect/status').get_json() == {'connected': False}

    db.seed('connectedStripeAccounts/u1', {
        'stripe_user_id': 'acct_123', 'connected': True, 'charges_enabled': True, 'details_submitted': True,
    })
    body = client.get('/api/stripe/connect/status').get_json()
    assert body['connected'] is True
    assert body['accountId'] == 'acct_123'
    assert body['payoutsEnabled'] is False
