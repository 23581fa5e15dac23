from .auth import auth_bp
from .profiles import profiles_bp
from .bundles import bundles_bp
from .uploads import uploads_bp
from .payments import payments_bp
from .purchases import purchases_bp
from .connect import connect_bp
from .notifications import notifications_bp

__all__ = [
    'auth_bp',
    'profiles_bp',
    'bundles_bp',
    'uploads_bp',
    'payments_bp',
    'purchases_bp',
    'connect_bp',
    'notifications_bp',
]
