from .cart import cart_bp
from .orders import orders_bp
from .admin import admin_bp


__all__ = [
    'cart_bp',
    'orders_bp',
    'admin_bp',
]
