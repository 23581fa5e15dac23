"""Initialisation of Firebase, Stripe and Sentry for the app factory."""

import json
import os

import firebase_admin
import sentry_sdk
import stripe
from firebase_admin import credentials, firestore
from sentry_sdk.integrations.flask import FlaskIntegration

from massclip import runtime


def _firebase_credentials(config):
    if config.firebase_credentials_path and os.path.exists(config.firebase_credentials_path):
        return credentials.Certificate(config.firebase_credentials_path)
    if config.firebase_credentials_json:
        return credentials.Certificate(json.loads(config.firebase_credentials_json))
    raise RuntimeError('No Firebase credentials found (firebase-credentials.json or FIREBASE_CREDENTIALS)')


def init_firebase(config):
    try:
        try:
            firebase_admin.get_app()
        except ValueError:
            firebase_admin.initialize_app(_firebase_credentials(config))
        runtime.db = firestore.client()
        runtime.firebase_init_error = ''
        runtime.logger.info("🔥 Firebase initialised")
    except Exception as e:
        runtime.db = None
        runtime.firebase_init_error = str(e)
        runtime.logger.error(f"❌ Firebase initialisation failed: {e}")


def init_stripe(config):
    stripe.api_key = config.stripe_secret_key or None
    if not config.stripe_secret_key:
        runtime.logger.warning("⚠️ STRIPE_SECRET_KEY is not set; Stripe calls will fail")


def init_sentry(config):
    if not config.sentry_dsn:
        runtime.sentry_enabled = False
        return
    sentry_sdk.init(
        dsn=config.sentry_dsn,
        integrations=[FlaskIntegration()],
        traces_sample_rate=config.sentry_traces_sample_rate,
        send_default_pii=False,
        environment=config.runtime_env,
        release=config.sentry_release,
    )
    runtime.sentry_enabled = True


def init_extensions(app, config) -> None:
    """Each service initialises independently so one failure does not block the others."""
    runtime.config = config
    init_sentry(config)
    init_stripe(config)
    init_firebase(config)
    if app is not None and hasattr(app, 'extensions'):
        app.extensions['massclip'] = {
            'firebase_ready': runtime.db is not None,
            'sentry_enabled': runtime.sentry_enabled,
        }
