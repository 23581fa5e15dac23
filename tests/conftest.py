import dataclasses

import pytest

from massclip import runtime
from massclip.config import AppConfig
from massclip.services import (
    bundle_service,
    connect_service,
    membership_service,
    notification_service,
    profile_service,
    profile_view_service,
    upload_service,
    usage_service,
    webhook_service,
)

from tests.fakes import FakeAuth, FakeFirestore, FakeStripe, firestore_module

FIRESTORE_MODULES = (
    bundle_service,
    connect_service,
    membership_service,
    notification_service,
    profile_service,
    profile_view_service,
    upload_service,
    usage_service,
    webhook_service,
    runtime,
)


def make_config(**overrides):
    base = dataclasses.replace(
        AppConfig(),
        runtime_env='test',
        flask_secret_key='test-secret',
        site_url='https://massclip.test',
        sentry_dsn='',
        stripe_secret_key='sk_test_123',
        stripe_publishable_key='pk_test_123',
        stripe_webhook_secret='whsec_test',
        stripe_connect_client_id='ca_test_client',
        stripe_pro_price_id='price_pro_monthly',
        r2_bucket='massclip-media',
        r2_public_url='https://media.massclip.test',
        resend_api_key='',
        rate_limit_firestore_enabled=False,
        admin_emails=frozenset({'admin@massclip.test'}),
        admin_uids=frozenset(),
    )
    return dataclasses.replace(base, **overrides)


@pytest.fixture(autouse=True)
def fake_firestore_sentinels(monkeypatch):
    for module in FIRESTORE_MODULES:
        monkeypatch.setattr(module, 'firestore', firestore_module)


@pytest.fixture()
def db():
    return FakeFirestore()


@pytest.fixture()
def fake_stripe():
    return FakeStripe()


@pytest.fixture()
def fake_auth():
    return FakeAuth()


@pytest.fixture()
def sent_emails():
    return []


@pytest.fixture()
def ctx(monkeypatch, db, fake_stripe, fake_auth, sent_emails):
    """The runtime module wired to in-memory fakes, passed to services as ``app_ctx``."""

    def _send_email(to, subject, html):
        sent_emails.append({'to': to, 'subject': subject, 'html': html})
        return True, 'email-id'

    monkeypatch.setattr(runtime, 'db', db)
    monkeypatch.setattr(runtime, 'stripe', fake_stripe)
    monkeypatch.setattr(runtime, 'auth', fake_auth)
    monkeypatch.setattr(runtime, 'config', make_config())
    monkeypatch.setattr(runtime, 'send_email', _send_email)
    monkeypatch.setattr(runtime, 'sentry_enabled', False)
    runtime.RATE_LIMIT_EVENTS.clear()
    return runtime


@pytest.fixture()
def app(monkeypatch, ctx):
    from massclip import create_app, extensions

    monkeypatch.setattr(extensions, 'init_firebase', lambda _config: None)
    flask_app = create_app(make_config())
    flask_app.config['TESTING'] = True
    monkeypatch.setattr(runtime, 'db', ctx.db)
    return flask_app


@pytest.fixture()
def client(app):
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture()
def sign_in(monkeypatch, ctx):
    def _sign_in(uid='user-1', email='user1@example.com', **claims):
        decoded = dict(claims, uid=uid, email=email)
        monkeypatch.setattr(ctx, 'verify_firebase_token', lambda _request: decoded)
        return decoded

    return _sign_in
