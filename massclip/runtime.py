"""Process-wide handles shared by blueprints and services.

Services receive this module as ``app_ctx`` so tests can swap any handle
(``db``, ``stripe``, ``verify_firebase_token`` ...) with ``monkeypatch``.
"""

import logging
import threading
import time

import sentry_sdk
import stripe
from firebase_admin import auth, firestore
from flask import jsonify, redirect

from massclip.config import AppConfig
from massclip.errors import ServiceUnavailable
from massclip.logging_config import log_event
from massclip.services import auth_service, email_service, rate_limit_service, storage_service

logger = logging.getLogger('massclip')

config = AppConfig()
db = None
firebase_init_error = ''
sentry_enabled = False
storage_client = None

RATE_LIMIT_EVENTS = {}
RATE_LIMIT_LOCK = threading.Lock()
RATE_LIMIT_COUNTER_COLLECTION = 'rate_limit_counters'
APP_BOOT_TS = time.time()

def require_db():
    if db is None:
        raise ServiceUnavailable(details=firebase_init_error or None)
    return db


def verify_firebase_token(request):
    return auth_service.verify_firebase_token(request, auth_module=auth, logger=logger)


def is_admin_user(decoded_token):
    return auth_service.is_admin_user(
        decoded_token,
        admin_uids=config.admin_uids,
        admin_emails=config.admin_emails,
    )


def check_rate_limit(key, limit, window_seconds):
    return rate_limit_service.check_rate_limit(
        key,
        limit,
        window_seconds,
        firestore_enabled=config.rate_limit_firestore_enabled,
        db=db,
        firestore_module=firestore,
        counter_collection=RATE_LIMIT_COUNTER_COLLECTION,
        in_memory_events=RATE_LIMIT_EVENTS,
        in_memory_lock=RATE_LIMIT_LOCK,
        time_module=time,
    )


def build_rate_limited_response(message, retry_after):
    response = jsonify({'error': message, 'retry_after_seconds': int(max(1, retry_after))})
    response.status_code = 429
    response.headers['Retry-After'] = str(int(max(1, retry_after)))
    return response


def normalize_rate_limit_key_part(value, fallback='anon', max_len=120):
    return rate_limit_service.normalize_key_part(value, fallback=fallback, max_len=max_len)


def client_ip(request):
    forwarded = str(request.headers.get('X-Forwarded-For', '') or '').split(',')[0].strip()
    return forwarded or str(request.headers.get('X-Real-IP', '') or '').strip() or (request.remote_addr or 'unknown')


def send_email(to, subject, html):
    return email_service.send_email(
        to,
        subject,
        html,
        api_key=config.resend_api_key,
        sender=config.email_from,
        logger=logger,
    )


def get_storage_client():
    global storage_client
    if storage_client is None:
        storage_client = storage_service.build_client(config)
    return storage_client
