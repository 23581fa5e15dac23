from flask import Blueprint, request

payments_bp = Blueprint('payments_api', __name__)


@payments_bp.route('/api/config', methods=['GET'])
def get_config():
    from massclip import runtime
    from massclip.services import checkout_service

    return checkout_service.get_checkout_config(runtime)


@payments_bp.route('/api/checkout/bundle', methods=['POST'])
def create_bundle_checkout():
    from massclip import runtime
    from massclip.services import checkout_service

    return checkout_service.create_bundle_checkout(runtime, request)


@payments_bp.route('/api/checkout/pro', methods=['POST'])
def create_pro_checkout():
    from massclip import runtime
    from massclip.services import checkout_service

    return checkout_service.create_pro_subscription_checkout(runtime, request)


@payments_bp.route('/api/checkout/bundle-slots', methods=['POST'])
def create_bundle_slot_checkout():
    from massclip import runtime
    from massclip.services import checkout_service

    return checkout_service.create_bundle_slot_checkout(runtime, request)


@payments_bp.route('/api/webhooks/stripe', methods=['POST'])
def stripe_webhook():
    from massclip import runtime
    from massclip.services import webhook_service

    return webhook_service.handle_stripe_webhook(runtime, request)


@payments_bp.route('/api/usage/limits', methods=['GET'])
def get_usage_limits():
    from massclip import runtime
    from massclip.services import payments_api_service

    return payments_api_service.get_usage_limits(runtime, request)


@payments_bp.route('/api/usage/download', methods=['POST'])
def record_download():
    from massclip import runtime
    from massclip.services import payments_api_service

    return payments_api_service.record_download(runtime, request)


@payments_bp.route('/api/dashboard/earnings', methods=['GET'])
def get_earnings():
    from massclip import runtime
    from massclip.services import payments_api_service

    return payments_api_service.get_earnings(runtime, request)
