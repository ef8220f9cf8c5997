import logging
import re
import secrets
from datetime import timedelta

import pymongo
from pymongo import ReturnDocument

from cozycabin.exceptions import DatabaseQueryError
from cozycabin.models import TicketStatus, document_to_dict, apply_status_timestamps
from cozycabin.utils import utcnow, to_object_id

logger = logging.getLogger(__name__)

# Campos de referencia que se guardan como ObjectId
TICKET_REFERENCE_FIELDS = ("created_by", "customer_id", "assigned_to")

# -----------------------------------------------
# INTERFACES DE REPOSITORIO
# -----------------------------------------------

class TicketRepository:
    """Define el contrato para operaciones de datos de tickets."""
    def find(self, filters, limit=None):
        raise NotImplementedError

    def find_by_id(self, ticket_id):
        raise NotImplementedError

    def find_assigned(self, agent_id, statuses=None, limit=None):
        raise NotImplementedError

    def find_unassigned(self, limit=None):
        raise NotImplementedError

    def count_by_status(self):
        raise NotImplementedError

    def add(self, ticket):
        raise NotImplementedError

    def update(self, ticket_id, fields, previous_status=None):
        raise NotImplementedError

    def update_if(self, ticket_id, expected, fields):
        raise NotImplementedError

    def delete(self, ticket_id):
        raise NotImplementedError


class CommentRepository:
    """Define el contrato para operaciones de datos de comentarios."""
    def find_by_ticket(self, ticket_id, include_internal=True):
        raise NotImplementedError

    def find_by_id(self, comment_id):
        raise NotImplementedError

    def add(self, comment):
        raise NotImplementedError

    def update_content(self, comment_id, content):
        raise NotImplementedError

    def delete(self, comment_id):
        raise NotImplementedError

    def delete_by_ticket(self, ticket_id):
        raise NotImplementedError


class AttachmentRepository:
    """Define el contrato para operaciones de datos de adjuntos."""
    def find_by_ticket(self, ticket_id):
        raise NotImplementedError

    def find_by_id(self, attachment_id):
        raise NotImplementedError

    def add(self, attachment):
        raise NotImplementedError

    def delete(self, attachment_id):
        raise NotImplementedError

    def delete_by_ticket(self, ticket_id):
        raise NotImplementedError


class InviteRepository:
    """Define el contrato para operaciones de datos de invitaciones."""
    def get_all(self):
        raise NotImplementedError

    def create(self, email, role, invited_by, expires_in):
        raise NotImplementedError

    def verify(self, token):
        raise NotImplementedError

    def consume(self, token):
        raise NotImplementedError


class ProfileRepository:
    """Define el contrato para operaciones de datos de perfiles."""
    def find_by_id(self, profile_id):
        raise NotImplementedError

    def find_by_email(self, email):
        raise NotImplementedError

    def find_by_ids(self, profile_ids):
        raise NotImplementedError

    def get_all(self):
        raise NotImplementedError

    def add(self, profile):
        raise NotImplementedError

    def update(self, profile_id, fields):
        raise NotImplementedError


class StatsRepository:
    """Define el contrato para las métricas de rendimiento de los agentes."""
    def get_agent_performance_stats(self, agent_id):
        raise NotImplementedError

# -----------------------------------------------
# IMPLEMENTACIONES MONGODB
# -----------------------------------------------

def _with_object_ids(fields, reference_fields):
    converted = dict(fields)
    for key in reference_fields:
        if converted.get(key) is not None:
            converted[key] = to_object_id(converted[key])
    return converted


class MongoTicketRepository(TicketRepository):
    """Implementación concreta del repositorio de tickets para MongoDB."""

    SORT_ORDER = [("created_at", pymongo.DESCENDING), ("_id", pymongo.DESCENDING)]

    def __init__(self, db):
        self.collection = db.tickets

    @staticmethod
    def build_query(filters):
        """
        Traduce los filtros de la lista de tickets a una consulta MongoDB.
        Todos los filtros se combinan con AND; 'assigned_to': None significa
        "sin asignar" y solo se aplica si la clave está presente.
        """
        query = {}
        if filters.get("status"):
            query["status"] = filters["status"]
        if filters.get("priority"):
            query["priority"] = filters["priority"]
        if "assigned_to" in filters:
            assigned_to = filters["assigned_to"]
            query["assigned_to"] = to_object_id(assigned_to) if assigned_to is not None else None
        if filters.get("customer_id"):
            query["customer_id"] = to_object_id(filters["customer_id"])
        if filters.get("search"):
            pattern = {"$regex": re.escape(filters["search"]), "$options": "i"}
            query["$or"] = [{"subject": pattern}, {"description": pattern}]
        return query

    def find(self, filters, limit=None):
        try:
            cursor = self.collection.find(self.build_query(filters)).sort(self.SORT_ORDER)
            if limit:
                cursor = cursor.limit(limit)
            return [document_to_dict(doc) for doc in cursor]
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al consultar tickets con filtros {filters}: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudieron cargar los tickets.", original_exception=e)

    def find_by_id(self, ticket_id):
        try:
            return document_to_dict(self.collection.find_one({"_id": to_object_id(ticket_id)}))
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al buscar el ticket {ticket_id}: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudo cargar el ticket.", original_exception=e)

    def find_assigned(self, agent_id, statuses=None, limit=None):
        query = {"assigned_to": to_object_id(agent_id)}
        if statuses:
            query["status"] = {"$in": list(statuses)}
        try:
            cursor = self.collection.find(query).sort(self.SORT_ORDER)
            if limit:
                cursor = cursor.limit(limit)
            return [document_to_dict(doc) for doc in cursor]
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al consultar los tickets del agente {agent_id}: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudieron cargar los tickets asignados.", original_exception=e)

    def find_unassigned(self, limit=None):
        return self.find({"assigned_to": None}, limit=limit)

    def count_by_status(self):
        try:
            return {status: self.collection.count_documents({"status": status}) for status in TicketStatus.ALL}
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al contar tickets por estado: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudieron calcular las estadísticas de tickets.", original_exception=e)

    def add(self, ticket):
        doc = _with_object_ids(ticket, TICKET_REFERENCE_FIELDS)
        try:
            result = self.collection.insert_one(doc)
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al crear ticket: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al guardar el ticket.", original_exception=e)
        doc["_id"] = result.inserted_id
        return document_to_dict(doc)

    def _prepare_update(self, fields, previous_status=None):
        now = utcnow()
        changes = apply_status_timestamps(_with_object_ids(fields, TICKET_REFERENCE_FIELDS), now, previous_status)
        changes["updated_at"] = now
        return changes

    def update(self, ticket_id, fields, previous_status=None):
        try:
            doc = self.collection.find_one_and_update(
                {"_id": to_object_id(ticket_id)},
                {"$set": self._prepare_update(fields, previous_status)},
                return_document=ReturnDocument.AFTER,
            )
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al actualizar el ticket {ticket_id}: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al actualizar el ticket.", original_exception=e)
        return document_to_dict(doc)

    def update_if(self, ticket_id, expected, fields):
        """
        Actualización condicional: solo se aplica si el documento sigue
        teniendo los valores de 'expected'. Devuelve None si no coincide.
        """
        query = {"_id": to_object_id(ticket_id)}
        query.update(_with_object_ids(expected, TICKET_REFERENCE_FIELDS))
        try:
            doc = self.collection.find_one_and_update(
                query,
                {"$set": self._prepare_update(fields, expected.get("status"))},
                return_document=ReturnDocument.AFTER,
            )
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al actualizar el ticket {ticket_id}: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al actualizar el ticket.", original_exception=e)
        return document_to_dict(doc)

    def delete(self, ticket_id):
        try:
            result = self.collection.delete_one({"_id": to_object_id(ticket_id)})
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al eliminar el ticket {ticket_id}: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al eliminar el ticket.", original_exception=e)
        return result.deleted_count > 0


class MongoCommentRepository(CommentRepository):
    """Implementación concreta del repositorio de comentarios para MongoDB."""

    def __init__(self, db):
        self.collection = db.ticket_comments

    def find_by_ticket(self, ticket_id, include_internal=True):
        query = {"ticket_id": to_object_id(ticket_id)}
        if not include_internal:
            query["is_internal"] = False
        try:
            cursor = self.collection.find(query).sort([("created_at", pymongo.ASCENDING), ("_id", pymongo.ASCENDING)])
            return [document_to_dict(doc) for doc in cursor]
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al cargar los comentarios del ticket {ticket_id}: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudieron cargar los comentarios.", original_exception=e)

    def find_by_id(self, comment_id):
        try:
            return document_to_dict(self.collection.find_one({"_id": to_object_id(comment_id)}))
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al buscar el comentario {comment_id}: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudo cargar el comentario.", original_exception=e)

    def add(self, comment):
        doc = _with_object_ids(comment, ("ticket_id", "user_id"))
        try:
            result = self.collection.insert_one(doc)
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al crear comentario: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al guardar el comentario.", original_exception=e)
        doc["_id"] = result.inserted_id
        return document_to_dict(doc)

    def update_content(self, comment_id, content):
        try:
            doc = self.collection.find_one_and_update(
                {"_id": to_object_id(comment_id)},
                {"$set": {"content": content, "updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al editar el comentario {comment_id}: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al editar el comentario.", original_exception=e)
        return document_to_dict(doc)

    def delete(self, comment_id):
        try:
            result = self.collection.delete_one({"_id": to_object_id(comment_id)})
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al eliminar el comentario {comment_id}: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al eliminar el comentario.", original_exception=e)
        return result.deleted_count > 0

    def delete_by_ticket(self, ticket_id):
        try:
            return self.collection.delete_many({"ticket_id": to_object_id(ticket_id)}).deleted_count
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al eliminar los comentarios del ticket {ticket_id}: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al eliminar los comentarios.", original_exception=e)


class MongoAttachmentRepository(AttachmentRepository):
    """Implementación concreta del repositorio de adjuntos para MongoDB."""

    def __init__(self, db):
        self.collection = db.ticket_attachments

    def find_by_ticket(self, ticket_id):
        try:
            return [document_to_dict(doc) for doc in self.collection.find({"ticket_id": to_object_id(ticket_id)})]
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al cargar los adjuntos del ticket {ticket_id}: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudieron cargar los adjuntos.", original_exception=e)

    def find_by_id(self, attachment_id):
        try:
            return document_to_dict(self.collection.find_one({"_id": to_object_id(attachment_id)}))
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al buscar el adjunto {attachment_id}: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudo cargar el adjunto.", original_exception=e)

    def add(self, attachment):
        doc = _with_object_ids(attachment, ("ticket_id", "comment_id", "uploaded_by"))
        try:
            result = self.collection.insert_one(doc)
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al registrar el adjunto: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al registrar el adjunto.", original_exception=e)
        doc["_id"] = result.inserted_id
        return document_to_dict(doc)

    def delete(self, attachment_id):
        try:
            result = self.collection.delete_one({"_id": to_object_id(attachment_id)})
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al eliminar el adjunto {attachment_id}: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al eliminar el adjunto.", original_exception=e)
        return result.deleted_count > 0

    def delete_by_ticket(self, ticket_id):
        try:
            return self.collection.delete_many({"ticket_id": to_object_id(ticket_id)}).deleted_count
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al eliminar los adjuntos del ticket {ticket_id}: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al eliminar los adjuntos.", original_exception=e)


class MongoInviteRepository(InviteRepository):
    """Implementación concreta del repositorio de invitaciones para MongoDB."""

    def __init__(self, db):
        self.collection = db.invites

    def get_all(self):
        try:
            cursor = self.collection.find().sort([("created_at", pymongo.DESCENDING), ("_id", pymongo.DESCENDING)])
            return [document_to_dict(doc) for doc in cursor]
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al cargar las invitaciones: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudieron cargar las invitaciones.", original_exception=e)

    def create(self, email, role, invited_by, expires_in):
        """Genera el token en el servidor y guarda la invitación. Devuelve el documento creado."""
        now = utcnow()
        doc = {
            "email": email.strip().lower(),
            "role": role,
            "invited_by": to_object_id(invited_by) if invited_by else None,
            "token": secrets.token_urlsafe(32),
            "created_at": now,
            "expires_at": now + expires_in,
            "used_at": None,
        }
        try:
            result = self.collection.insert_one(doc)
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al crear la invitación para {email}: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al crear la invitación.", original_exception=e)
        doc["_id"] = result.inserted_id
        return document_to_dict(doc)

    def verify(self, token):
        try:
            doc = self.collection.find_one({"token": token})
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al verificar la invitación: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudo verificar la invitación.", original_exception=e)
        if not doc or doc.get("used_at") is not None or doc["expires_at"] <= utcnow():
            return {"is_valid": False, "email": None, "role": None}
        return {"is_valid": True, "email": doc["email"], "role": doc["role"]}

    def consume(self, token):
        """Marca la invitación como usada. Solo tiene éxito una vez y antes de expirar."""
        now = utcnow()
        try:
            doc = self.collection.find_one_and_update(
                {"token": token, "used_at": None, "expires_at": {"$gt": now}},
                {"$set": {"used_at": now}},
                return_document=ReturnDocument.AFTER,
            )
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al consumir la invitación: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudo consumir la invitación.", original_exception=e)
        return document_to_dict(doc)


class MongoProfileRepository(ProfileRepository):
    """Implementación concreta del repositorio de perfiles para MongoDB."""

    def __init__(self, db):
        self.collection = db.profiles

    def find_by_id(self, profile_id):
        try:
            return self.collection.find_one({"_id": to_object_id(profile_id)})
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al buscar el perfil {profile_id}: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudo cargar el perfil.", original_exception=e)

    def find_by_email(self, email):
        try:
            return self.collection.find_one({"email": email.strip().lower()})
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al buscar el perfil por correo: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudo cargar el perfil.", original_exception=e)

    def find_by_ids(self, profile_ids):
        object_ids = [to_object_id(pid) for pid in profile_ids]
        try:
            return list(self.collection.find({"_id": {"$in": object_ids}}))
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al cargar perfiles {profile_ids}: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudieron cargar los perfiles.", original_exception=e)

    def get_all(self):
        try:
            return list(self.collection.find().sort("email", pymongo.ASCENDING))
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al cargar los perfiles: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudieron cargar los usuarios.", original_exception=e)

    def add(self, profile):
        try:
            result = self.collection.insert_one(profile)
        except pymongo.errors.DuplicateKeyError as e:
            logger.warning(f"Perfil duplicado para {profile.get('email')}: {e}")
            raise DatabaseQueryError("Este correo electrónico ya está registrado.", original_exception=e)
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al crear el perfil: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al crear el perfil.", original_exception=e)
        profile["_id"] = result.inserted_id
        return profile

    def update(self, profile_id, fields):
        changes = dict(fields)
        changes["updated_at"] = utcnow()
        try:
            return self.collection.find_one_and_update(
                {"_id": to_object_id(profile_id)},
                {"$set": changes},
                return_document=ReturnDocument.AFTER,
            )
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error de base de datos al actualizar el perfil {profile_id}: {e}", exc_info=True)
            raise DatabaseQueryError("Ocurrió un error al actualizar el perfil.", original_exception=e)


class MongoStatsRepository(StatsRepository):
    """Métricas de un agente calculadas a partir de tickets y comentarios."""

    def __init__(self, db):
        self.tickets = db.tickets
        self.comments = db.ticket_comments

    def get_agent_performance_stats(self, agent_id):
        agent_oid = to_object_id(agent_id)
        now = utcnow()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

        try:
            tickets = list(self.tickets.find({"assigned_to": agent_oid}))
            first_replies = {}
            ticket_ids = [t["_id"] for t in tickets]
            if ticket_ids:
                replies = self.comments.find(
                    {"ticket_id": {"$in": ticket_ids}, "user_id": agent_oid}
                ).sort("created_at", pymongo.ASCENDING)
                for comment in replies:
                    first_replies.setdefault(comment["ticket_id"], comment["created_at"])
        except pymongo.errors.PyMongoError as e:
            logger.error(f"Error al calcular las métricas del agente {agent_id}: {e}", exc_info=True)
            raise DatabaseQueryError("No se pudieron calcular las métricas del agente.", original_exception=e)

        resolved = [t for t in tickets if t.get("status") in TicketStatus.RESOLVED]
        resolved_today = [t for t in resolved if t.get("updated_at") and t["updated_at"] >= start_of_day]

        response_hours = [
            (first_replies[t["_id"]] - t["created_at"]) / timedelta(hours=1)
            for t in tickets
            if t["_id"] in first_replies and t.get("created_at")
        ]
        average_response_time = round(sum(response_hours) / len(response_hours), 2) if response_hours else 0.0

        satisfied = [t for t in resolved if (t.get("metadata") or {}).get("satisfied") is True]
        satisfaction_rate = round(100.0 * len(satisfied) / len(resolved), 1) if resolved else 0.0

        return {
            "assigned_tickets": len(tickets) - len(resolved),
            "resolved_today": len(resolved_today),
            "average_response_time": average_response_time,
            "satisfaction_rate": satisfaction_rate,
        }
