# cozycabin/auth/policies.py
#
# Políticas por fila: qué puede ver o modificar cada rol.
# Todas las funciones reciben el perfil actual (Profile) y diccionarios
# devueltos por los repositorios (referencias como str).

from cozycabin.exceptions import PermissionDeniedError
from cozycabin.models import CUSTOMER_EDITABLE_FIELDS


def owns_ticket(user, ticket):
    return user.id is not None and user.id in (ticket.get("customer_id"), ticket.get("created_by"))


def can_view_ticket(user, ticket):
    return user.is_staff or owns_ticket(user, ticket)


def editable_ticket_fields(user, ticket):
    """Campos que el usuario puede modificar en el ticket (None = todos)."""
    if user.is_staff:
        return None
    if owns_ticket(user, ticket):
        return CUSTOMER_EDITABLE_FIELDS
    return ()


def can_delete_ticket(user, ticket):
    return user.is_admin


def can_view_comment(user, comment):
    return user.is_staff or not comment.get("is_internal")


def can_add_comment(user, ticket, is_internal):
    if not can_view_ticket(user, ticket):
        return False
    return user.is_staff or not is_internal


def can_edit_comment(user, comment):
    return comment.get("user_id") == user.id


def can_delete_comment(user, comment):
    return comment.get("user_id") == user.id or user.is_admin


def can_delete_attachment(user, attachment):
    return attachment.get("uploaded_by") == user.id or user.is_staff


def scope_ticket_filters(user, filters):
    """
    Aplica el alcance por rol a los filtros de la lista de tickets:
    el cliente solo ve sus tickets; el agente, si no filtra por asignación,
    ve los que tiene asignados; el administrador lo ve todo.
    """
    scoped = dict(filters)
    if user.is_customer:
        scoped["customer_id"] = user.id
    elif user.is_agent and "assigned_to" not in scoped:
        scoped["assigned_to"] = user.id
    return scoped


def check(allowed, message=None):
    if not allowed:
        raise PermissionDeniedError(message)
