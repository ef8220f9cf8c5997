# Con PyMongo no se usan clases de modelo como con un ORM.
# Los datos se manejan como diccionarios (documentos de MongoDB); este módulo
# define los valores válidos de cada campo enumerado y las conversiones
# documento -> diccionario que devuelven los repositorios.

from datetime import datetime
from bson.objectid import ObjectId


class TicketStatus:
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    ON_HOLD = "on_hold"
    SOLVED = "solved"
    CLOSED = "closed"

    ALL = (OPEN, IN_PROGRESS, PENDING, ON_HOLD, SOLVED, CLOSED)
    RESOLVED = (SOLVED, CLOSED)

    CHOICES = [
        (OPEN, "Abierto"),
        (IN_PROGRESS, "En Progreso"),
        (PENDING, "Pendiente"),
        (ON_HOLD, "En Espera"),
        (SOLVED, "Resuelto"),
        (CLOSED, "Cerrado"),
    ]


class TicketPriority:
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    MEDIUM = "medium"
    LOW = "low"

    ALL = (URGENT, HIGH, NORMAL, MEDIUM, LOW)
    DEFAULT = NORMAL

    # normal y medium comparten rango
    RANK = {URGENT: 3, HIGH: 2, NORMAL: 1, MEDIUM: 1, LOW: 0}

    CHOICES = [
        (URGENT, "Urgente"),
        (HIGH, "Alta"),
        (NORMAL, "Normal"),
        (MEDIUM, "Media"),
        (LOW, "Baja"),
    ]


class UserRole:
    CUSTOMER = "customer"
    AGENT = "agent"
    ADMIN = "admin"

    ALL = (CUSTOMER, AGENT, ADMIN)
    STAFF = (AGENT, ADMIN)
    INVITABLE = (AGENT, ADMIN)

    CHOICES = [
        (CUSTOMER, "Cliente"),
        (AGENT, "Agente"),
        (ADMIN, "Administrador"),
    ]


class MessageRole:
    USER = "user"
    ASSISTANT = "assistant"

    ALL = (USER, ASSISTANT)


# Campos que un cliente puede modificar en sus propios tickets
CUSTOMER_EDITABLE_FIELDS = ("subject", "description", "tags", "metadata")

PROFILE_PUBLIC_FIELDS = ("id", "email", "full_name", "role", "avatar_url", "is_active", "created_at", "updated_at")


def document_to_dict(doc):
    """
    Convierte un documento de MongoDB en un diccionario plano:
    _id pasa a 'id' y las referencias ObjectId pasan a str.
    """
    if doc is None:
        return None
    data = {}
    for key, value in doc.items():
        if key == "_id":
            data["id"] = str(value)
        elif isinstance(value, ObjectId):
            data[key] = str(value)
        else:
            data[key] = value
    return data


def public_profile(doc):
    """Versión de un perfil apta para enviarse al cliente (sin hash de contraseña)."""
    data = document_to_dict(doc)
    if data is None:
        return None
    return {key: data.get(key) for key in PROFILE_PUBLIC_FIELDS}


def _created_at_key(ticket):
    return ticket.get("created_at") or datetime.min


def sort_tickets(tickets, sort_by="created_at", descending=True):
    """
    Ordena tickets en memoria por fecha de creación o por rango de prioridad.
    Con sort_by='priority' los empates se resuelven por fecha de creación.
    """
    ordered = sorted(tickets, key=_created_at_key, reverse=descending)
    if sort_by == "priority":
        # sorted es estable: conserva el orden por fecha dentro de cada rango
        ordered = sorted(
            ordered,
            key=lambda t: TicketPriority.RANK.get(t.get("priority"), 0),
            reverse=descending,
        )
    return ordered


def apply_status_timestamps(fields, now, previous_status=None):
    """
    Mantiene la invariante closed_at != None <=> status == 'closed' en una
    actualización parcial. Solo actúa si la actualización incluye 'status'.
    Un ticket que ya estaba cerrado conserva su closed_at original.
    """
    if "status" not in fields:
        return fields
    updated = dict(fields)
    if updated["status"] == TicketStatus.CLOSED:
        if previous_status != TicketStatus.CLOSED:
            updated["closed_at"] = now
    else:
        updated["closed_at"] = None
    return updated
