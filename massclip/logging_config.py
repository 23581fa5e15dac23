import json
import logging

logger = logging.getLogger('massclip')

NOISY_LOGGERS = ('botocore', 'boto3', 's3transfer', 'urllib3', 'stripe')


def configure_logging(level: str = 'INFO') -> None:
    """Set up root logging once; later app factories reuse the existing handlers."""
    if logging.getLogger().handlers:
        return
    logging.basicConfig(
        level=getattr(logging, str(level or 'INFO').upper(), logging.INFO),
        format='%(asctime)s %(levelname)s %(name)s %(message)s',
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_event(level, event, **fields):
    """Emit a single JSON line, e.g. ``{"event": "rate_limit_hit", "limit_name": "checkout"}``."""
    payload = {'event': event}
    payload.update({str(key): value for key, value in fields.items()})
    logger.log(level, json.dumps(payload, ensure_ascii=True, default=str))
