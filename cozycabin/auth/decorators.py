# cozycabin/auth/decorators.py

from functools import wraps
from flask import jsonify
from flask_login import current_user, login_required
import logging

from cozycabin.models import UserRole

logger = logging.getLogger(__name__)


# Decorador general para requerir uno o varios roles
def role_required(roles):
    """
    Decorador que verifica si el usuario actual tiene alguno de los roles especificados.

    Uso:
    @role_required('admin')
    @role_required(['admin', 'agent'])
    """

    def decorator(f):
        @wraps(f)
        @login_required  # Asegura que el usuario esté logueado antes de comprobar el rol
        def decorated_function(*args, **kwargs):
            if isinstance(roles, str):
                allowed_roles = [roles]
            else:
                allowed_roles = roles

            if current_user.role not in allowed_roles:
                logger.warning(
                    f"Acceso denegado a {f.__name__} para {current_user.email} (rol '{current_user.role}')"
                )
                return jsonify({
                    "error": f'No tienes permiso para acceder a este recurso. Tu rol es "{current_user.role}".'
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator


def agent_required(f):
    """Solo permite acceso a usuarios con el rol 'agent'."""
    return role_required(UserRole.AGENT)(f)


def admin_required(f):
    """Solo permite acceso a usuarios con el rol 'admin'."""
    return role_required(UserRole.ADMIN)(f)


def staff_required(f):
    """Permite acceso a 'agent' o 'admin'."""
    return role_required(list(UserRole.STAFF))(f)
