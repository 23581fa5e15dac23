import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

DEV_ENV_NAMES = {'development', 'dev', 'local', 'test'}


def safe_int_env(name, default=0, minimum=1, maximum=100000):
    raw = str(os.getenv(name, str(default)) or '').strip()
    try:
        value = int(raw)
    except Exception:
        value = int(default)
    return min(max(value, minimum), maximum)


def safe_float_env(name, default=0.0):
    raw = str(os.getenv(name, str(default)) or '').strip()
    try:
        value = float(raw)
    except Exception:
        return default
    return min(max(value, 0.0), 1.0)


def _env(name, default=''):
    return (os.getenv(name, default) or default).strip()


def _csv_env(name):
    return frozenset(part.strip() for part in _env(name).split(',') if part.strip())


def _default_cors_origins():
    raw = _env('CORS_ALLOWED_ORIGINS')
    if raw:
        return frozenset(part.strip().lower() for part in raw.split(',') if part.strip())
    return frozenset({
        'http://127.0.0.1:3000',
        'http://localhost:3000',
        'https://massclip.pro',
        'https://www.massclip.pro',
    })


@dataclass(frozen=True)
class AppConfig:
    """Central config object, read once from the environment."""

    flask_secret_key: str = field(default_factory=lambda: _env('FLASK_SECRET_KEY'))
    log_level: str = field(default_factory=lambda: _env('LOG_LEVEL', 'INFO').upper() or 'INFO')
    runtime_env: str = field(default_factory=lambda: (
        _env('SENTRY_ENVIRONMENT') or _env('FLASK_ENV') or _env('ENV')
        or ('production' if _env('RENDER') else 'development')
    ).lower())

    sentry_dsn: str = field(default_factory=lambda: _env('SENTRY_DSN_BACKEND'))
    sentry_release: str = field(default_factory=lambda: _env('SENTRY_RELEASE', 'massclip') or 'massclip')
    sentry_traces_sample_rate: float = field(default_factory=lambda: safe_float_env('SENTRY_TRACES_SAMPLE_RATE', 0.0))

    site_url: str = field(default_factory=lambda: _env('SITE_URL', _env('NEXT_PUBLIC_SITE_URL')).rstrip('/'))

    firebase_credentials_path: str = field(default_factory=lambda: _env('FIREBASE_CREDENTIALS_PATH', 'firebase-credentials.json'))
    firebase_credentials_json: str = field(default_factory=lambda: _env('FIREBASE_CREDENTIALS'))
    session_cookie_days: int = field(default_factory=lambda: safe_int_env('SESSION_COOKIE_DAYS', 5, minimum=1, maximum=14))

    stripe_secret_key: str = field(default_factory=lambda: _env('STRIPE_SECRET_KEY'))
    stripe_publishable_key: str = field(default_factory=lambda: _env('STRIPE_PUBLISHABLE_KEY'))
    stripe_webhook_secret: str = field(default_factory=lambda: _env('STRIPE_WEBHOOK_SECRET'))
    stripe_connect_client_id: str = field(default_factory=lambda: _env('STRIPE_CLIENT_ID'))
    stripe_pro_price_id: str = field(default_factory=lambda: _env('STRIPE_PRICE_ID'))

    r2_endpoint: str = field(default_factory=lambda: _env('CLOUDFLARE_R2_ENDPOINT'))
    r2_access_key_id: str = field(default_factory=lambda: _env('CLOUDFLARE_R2_ACCESS_KEY_ID'))
    r2_secret_access_key: str = field(default_factory=lambda: _env('CLOUDFLARE_R2_SECRET_ACCESS_KEY'))
    r2_bucket: str = field(default_factory=lambda: _env('CLOUDFLARE_R2_BUCKET_NAME', _env('R2_BUCKET_NAME')))
    r2_public_url: str = field(default_factory=lambda: _env('R2_PUBLIC_URL', _env('CLOUDFLARE_R2_PUBLIC_URL')).rstrip('/'))

    resend_api_key: str = field(default_factory=lambda: _env('RESEND_API_KEY'))
    email_from: str = field(default_factory=lambda: _env('EMAIL_FROM', 'MassClip <noreply@massclip.pro>'))

    admin_emails: frozenset = field(default_factory=lambda: frozenset(e.lower() for e in _csv_env('ADMIN_EMAILS')))
    admin_uids: frozenset = field(default_factory=lambda: _csv_env('ADMIN_UIDS'))
    cors_allowed_origins: frozenset = field(default_factory=_default_cors_origins)

    rate_limit_firestore_enabled: bool = field(default_factory=lambda: _env('RATE_LIMIT_FIRESTORE_ENABLED', '1').lower() in {'1', 'true', 'yes', 'on'})
    checkout_rate_limit_window_seconds: int = field(default_factory=lambda: safe_int_env('CHECKOUT_RATE_LIMIT_WINDOW_SECONDS', 600, minimum=10, maximum=86400))
    checkout_rate_limit_max_requests: int = field(default_factory=lambda: safe_int_env('CHECKOUT_RATE_LIMIT_MAX_REQUESTS', 10, minimum=1, maximum=100))

    @property
    def is_dev_like(self) -> bool:
        return self.runtime_env in DEV_ENV_NAMES


def load_config() -> AppConfig:
    config = AppConfig()
    if not config.is_dev_like and not config.flask_secret_key:
        raise RuntimeError('FLASK_SECRET_KEY must be set in non-development environments.')
    return config
