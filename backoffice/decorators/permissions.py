"""
Permission decorators.

Authorization is delegated to the host application: the PERMISSION_CHECKER
config value is a callable ``(user_id, permission) -> bool`` (or its dotted
import path). Without one, every identified caller is allowed.
"""

from functools import wraps
from flask import g, current_app, jsonify
from werkzeug.utils import import_string

# Permission names used by the blueprints
PERMISSIONS = (
    'view_quotes', 'create_quotes', 'edit_quotes', 'delete_quotes', 'convert_quotes',
    'view_invoices', 'create_invoices', 'edit_invoices', 'delete_invoices',
    'view_payments', 'pay_invoices', 'delete_payments',
)


def get_permission_checker():
    """Resolve the configured checker, or None for allow-all."""
    checker = current_app.config.get('PERMISSION_CHECKER')
    if isinstance(checker, str):
        checker = import_string(checker)
    return checker


def has_permission(user_id, permission_name) -> bool:
    checker = get_permission_checker()
    if checker is None:
        return True
    return bool(checker(user_id, permission_name))


def require_permission(permission_name):
    """
    Decorator to check for specific permission.

    Must be used AFTER require_login.

    Usage:
        @require_permission('convert_quotes')

    Args:
        permission_name: Name of the required permission

    Returns:
        Decorator function
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_id = g.get('user_id')
            if not has_permission(user_id, permission_name):
                current_app.logger.warning(f"User {user_id} denied permission {permission_name}")
                return jsonify({
                    'status': 'error',
                    'message': f'Permission refusée : {permission_name}'
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
