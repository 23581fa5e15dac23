import uuid

from flask import Flask, g, jsonify, request
from werkzeug.exceptions import RequestEntityTooLarge

from .config import load_config
from .errors import ApiError
from .extensions import init_extensions
from .logging_config import configure_logging

MAX_CONTENT_LENGTH = 16 * 1024 * 1024


def _register_request_hooks(app, config):
    from massclip import runtime

    def apply_cors_headers(response):
        origin = str(request.headers.get('Origin', '') or '').strip()
        if not origin or not request.path.startswith('/api/'):
            return response
        if origin.lower() not in config.cors_allowed_origins:
            return response
        response.headers['Access-Control-Allow-Origin'] = origin
        response.headers['Access-Control-Allow-Credentials'] = 'true'
        response.headers['Vary'] = 'Origin'
        response.headers['Access-Control-Allow-Headers'] = 'Authorization, Content-Type, X-Request-ID'
        response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, PATCH, DELETE, OPTIONS'
        return response

    @app.before_request
    def handle_api_options_preflight():
        if request.method == 'OPTIONS' and request.path.startswith('/api/'):
            return apply_cors_headers(app.make_default_options_response())

    @app.before_request
    def attach_request_context():
        request_id = str(request.headers.get('X-Request-ID', '') or '').strip()[:120] or uuid.uuid4().hex
        g.request_id = request_id
        if not runtime.sentry_enabled:
            return
        runtime.sentry_sdk.set_tag('request.id', request_id)
        runtime.sentry_sdk.set_tag('route.path', request.path)
        runtime.sentry_sdk.set_tag('route.method', request.method)
        runtime.sentry_sdk.set_tag('route.endpoint', request.endpoint or '')
        runtime.sentry_sdk.set_tag('route.environment', config.runtime_env)

    @app.after_request
    def attach_response_context(response):
        request_id = str(getattr(g, 'request_id', '') or '').strip()
        if request_id:
            response.headers['X-Request-ID'] = request_id
        if runtime.sentry_enabled:
            runtime.sentry_sdk.set_tag('route.status_code', str(response.status_code))
        return apply_cors_headers(response)


def _register_error_handlers(app):
    @app.errorhandler(ApiError)
    def handle_api_error(error):
        return error.to_response()

    @app.errorhandler(RequestEntityTooLarge)
    def handle_request_entity_too_large(_error):
        return jsonify({'error': 'Request body too large. Upload files directly to storage with a presigned URL.'}), 413


def create_app(config=None):
    """App factory: config, logging, external services, then blueprints."""
    config = config or load_config()
    configure_logging(config.log_level)

    app = Flask(__name__)
    app.secret_key = config.flask_secret_key or 'dev-only-secret'
    app.config['MAX_CONTENT_LENGTH'] = MAX_CONTENT_LENGTH

    init_extensions(app, config)

    from .blueprints import (
        auth_bp,
        bundles_bp,
        connect_bp,
        notifications_bp,
        payments_bp,
        profiles_bp,
        purchases_bp,
        uploads_bp,
    )

    for blueprint in (auth_bp, profiles_bp, bundles_bp, uploads_bp, payments_bp, purchases_bp, connect_bp, notifications_bp):
        app.register_blueprint(blueprint)

    _register_request_hooks(app, config)
    _register_error_handlers(app)

    @app.route('/healthz', methods=['GET'])
    def healthz():
        from massclip import runtime

        return jsonify({
            'ok': True,
            'firebase_ready': runtime.db is not None,
            'environment': config.runtime_env,
        })

    return app
