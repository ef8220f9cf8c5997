import logging
import os
import secrets
import time

from werkzeug.utils import secure_filename

from cozycabin.auth import policies
from cozycabin.exceptions import (
    BaseAppException, ConflictError, DatabaseQueryError, FormValidationError, NotFoundError, StorageError,
)
from cozycabin.models import TicketPriority, TicketStatus, public_profile, sort_tickets
from cozycabin.stores.base import BaseStore
from cozycabin.tickets.forms import CreateTicketForm, UpdateTicketForm, CommentForm, EditCommentForm
from cozycabin.utils import utcnow

logger = logging.getLogger(__name__)

DASHBOARD_TICKET_COUNT = 10


def build_storage_path(ticket_id, filename):
    """'<ticket_id>/<milisegundos>-<aleatorio>.<ext>': único aunque dos subidas coincidan en el tiempo."""
    _, ext = os.path.splitext(filename)
    suffix = ext.lower() if ext else ""
    return f"{ticket_id}/{int(time.time() * 1000)}-{secrets.token_hex(4)}{suffix}"


class TicketStore(BaseStore):
    """
    Estado de los tickets visibles para el usuario actual y del ticket
    seleccionado (con sus comentarios y adjuntos).
    """

    def __init__(self, user, ticket_repository, comment_repository, attachment_repository,
                 profile_repository, stats_repository, storage, list_limit=50,
                 max_attachment_size=None):
        super().__init__()
        self.user = user
        self.ticket_repository = ticket_repository
        self.comment_repository = comment_repository
        self.attachment_repository = attachment_repository
        self.profile_repository = profile_repository
        self.stats_repository = stats_repository
        self.storage = storage
        self.list_limit = list_limit
        self.max_attachment_size = max_attachment_size

        self.tickets = []
        self.selected_ticket = None
        self.selected_ticket_comments = []
        self.selected_ticket_attachments = []
        self.user_profiles = {}
        self.filters = {}
        self.agent_stats = None
        self.dashboard_tickets = []

    # --- Auxiliares ---

    def _get_ticket(self, ticket_id):
        ticket = self.ticket_repository.find_by_id(ticket_id)
        if ticket is None:
            raise NotFoundError("El ticket no existe.")
        return ticket

    def _is_selected(self, ticket_id):
        return self.selected_ticket is not None and self.selected_ticket["id"] == str(ticket_id)

    def _merge(self, ticket):
        self.tickets = [ticket if t["id"] == ticket["id"] else t for t in self.tickets]
        if self._is_selected(ticket["id"]):
            self.selected_ticket = ticket

    def _load_tickets(self, filters, limit=None):
        scoped = policies.scope_ticket_filters(self.user, filters)
        tickets = self.ticket_repository.find(scoped, limit=limit or self.list_limit)
        user_ids = {t["created_by"] for t in tickets if t.get("created_by")}
        user_ids.update(t["assigned_to"] for t in tickets if t.get("assigned_to"))
        self.fetch_profiles(user_ids)
        return tickets

    # --- Lista ---

    def fetch_tickets(self, filters=None):
        """Sustituye la colección por los tickets que cumplen los filtros (AND)."""
        filters = self.filters if filters is None else filters
        with self.action("cargar tickets"):
            tickets = self._load_tickets(filters)
            self.tickets = tickets
            self.filters = dict(filters)
            logger.info(f"{len(tickets)} tickets cargados para {self.user.email} con filtros {filters}")
        return self.tickets

    def sort(self, sort_by="created_at", descending=True):
        self.tickets = sort_tickets(self.tickets, sort_by=sort_by, descending=descending)
        return self.tickets

    # --- Tickets ---

    def create_ticket(self, draft):
        with self.action("crear ticket"):
            form = self.validate(CreateTicketForm.from_payload(draft))

            customer_id = self.user.id
            if self.user.is_staff and form.customer_id.data:
                customer_id = form.customer_id.data

            now = utcnow()
            ticket = self.ticket_repository.add({
                "subject": form.subject.data,
                "description": form.description.data,
                # El estado inicial es siempre 'open', venga lo que venga en el borrador
                "status": TicketStatus.OPEN,
                "priority": form.priority.data or TicketPriority.DEFAULT,
                "created_by": self.user.id,
                "customer_id": customer_id,
                "assigned_to": None,
                "created_at": now,
                "updated_at": now,
                "closed_at": None,
                "tags": form.tags.data,
                "metadata": form.metadata.data or {},
            })
            self.tickets = [ticket] + self.tickets
            logger.info(f"Ticket {ticket['id']} creado por {self.user.email}")
            return ticket
        return None

    def update_ticket(self, ticket_id, fields):
        with self.action("actualizar ticket"):
            form = self.validate(UpdateTicketForm.from_payload(fields))
            changes = form.cleaned_data(fields)
            if not changes:
                raise FormValidationError({"fields": ["No hay cambios que aplicar."]})
            if changes.get("assigned_to") == "":
                changes["assigned_to"] = None

            ticket = self._get_ticket(ticket_id)
            allowed = policies.editable_ticket_fields(self.user, ticket)
            policies.check(
                allowed is None or (bool(allowed) and set(changes) <= set(allowed)),
                "No tienes permiso para modificar estos campos del ticket.",
            )

            updated = self.ticket_repository.update(ticket_id, changes, previous_status=ticket.get("status"))
            if updated is None:
                raise NotFoundError("El ticket no existe.")
            self._merge(updated)
            logger.info(f"Ticket {ticket_id} actualizado por {self.user.email}: {sorted(changes)}")
            return updated
        return None

    def update_ticket_status(self, ticket_id, status):
        return self.update_ticket(ticket_id, {"status": status})

    def assign_to_self(self, ticket_id):
        """
        Asigna el ticket al agente actual y lo pasa a 'in_progress'.
        La escritura es condicional sobre el asignado leído: si otro agente
        lo tomó entretanto, falla con ConflictError.
        """
        with self.action("asignar ticket"):
            policies.check(self.user.is_agent, "Solo los agentes pueden asignarse tickets.")
            ticket = self._get_ticket(ticket_id)
            current_assignee = ticket.get("assigned_to")
            if current_assignee == self.user.id:
                raise ConflictError("El ticket ya está asignado a ti.")

            updated = self.ticket_repository.update_if(
                ticket_id,
                {"assigned_to": current_assignee},
                {"assigned_to": self.user.id, "status": TicketStatus.IN_PROGRESS},
            )
            if updated is None:
                raise ConflictError("Otro agente ha tomado este ticket. Recarga la lista.")
            self._merge(updated)
            logger.info(f"Ticket {ticket_id} asignado a {self.user.email}")
            return updated
        return None

    def delete_ticket(self, ticket_id):
        with self.action("eliminar ticket"):
            ticket = self._get_ticket(ticket_id)
            policies.check(policies.can_delete_ticket(self.user, ticket), "Solo un administrador puede eliminar tickets.")

            attachments = self.attachment_repository.find_by_ticket(ticket_id)
            self.ticket_repository.delete(ticket_id)
            self.comment_repository.delete_by_ticket(ticket_id)
            self.attachment_repository.delete_by_ticket(ticket_id)
            if attachments:
                try:
                    self.storage.remove([a["storage_path"] for a in attachments])
                except StorageError as e:
                    logger.error(f"No se pudieron eliminar los archivos del ticket {ticket_id}: {e}", exc_info=True)

            self.tickets = [t for t in self.tickets if t["id"] != str(ticket_id)]
            if self._is_selected(ticket_id):
                self.select_ticket(None)
            logger.info(f"Ticket {ticket_id} eliminado por {self.user.email}")
            return True
        return False

    def select_ticket(self, ticket_id):
        """Carga el ticket con sus comentarios y adjuntos. None limpia la selección."""
        if ticket_id is None:
            self.selected_ticket = None
            self.selected_ticket_comments = []
            self.selected_ticket_attachments = []
            return None

        with self.action("cargar ticket"):
            ticket = self._get_ticket(ticket_id)
            policies.check(policies.can_view_ticket(self.user, ticket))

            comments = self.comment_repository.find_by_ticket(ticket_id, include_internal=self.user.is_staff)
            attachments = self.attachment_repository.find_by_ticket(ticket_id)
            if not self.user.is_staff:
                visible_comment_ids = {c["id"] for c in comments}
                attachments = [
                    a for a in attachments
                    if not a.get("comment_id") or a["comment_id"] in visible_comment_ids
                ]

            user_ids = {ticket.get("created_by"), ticket.get("assigned_to")}
            user_ids.update(c["user_id"] for c in comments)
            self.fetch_profiles(uid for uid in user_ids if uid)

            self.selected_ticket = ticket
            self.selected_ticket_comments = comments
            self.selected_ticket_attachments = attachments
            return ticket
        return None

    # --- Comentarios ---

    def add_comment(self, comment_input):
        with self.action("añadir comentario"):
            form = self.validate(CommentForm.from_payload(comment_input))
            ticket = self._get_ticket(comment_input.get("ticket_id"))
            is_internal = bool(form.is_internal.data)
            policies.check(
                policies.can_add_comment(self.user, ticket, is_internal),
                "Solo el personal de soporte puede añadir notas internas." if is_internal else None,
            )

            now = utcnow()
            comment = self.comment_repository.add({
                "ticket_id": ticket["id"],
                "user_id": self.user.id,
                "content": form.content.data,
                "is_internal": is_internal,
                "created_at": now,
                "updated_at": now,
            })
            if self._is_selected(ticket["id"]):
                self.selected_ticket_comments = self.selected_ticket_comments + [comment]
            logger.info(f"Comentario {comment['id']} añadido al ticket {ticket['id']} (interno: {is_internal})")
            return comment
        return None

    def _get_comment(self, comment_id):
        comment = self.comment_repository.find_by_id(comment_id)
        if comment is None or not policies.can_view_comment(self.user, comment):
            raise NotFoundError("El comentario no existe.")
        return comment

    def update_comment(self, comment_id, content):
        with self.action("editar comentario"):
            form = self.validate(EditCommentForm.from_payload({"content": content}))
            comment = self._get_comment(comment_id)
            policies.check(policies.can_edit_comment(self.user, comment), "Solo el autor puede editar el comentario.")

            updated = self.comment_repository.update_content(comment_id, form.content.data)
            if updated is None:
                raise NotFoundError("El comentario no existe.")
            self.selected_ticket_comments = [
                updated if c["id"] == updated["id"] else c for c in self.selected_ticket_comments
            ]
            return updated
        return None

    def delete_comment(self, comment_id):
        with self.action("eliminar comentario"):
            comment = self._get_comment(comment_id)
            policies.check(policies.can_delete_comment(self.user, comment))
            self.comment_repository.delete(comment_id)
            self.selected_ticket_comments = [c for c in self.selected_ticket_comments if c["id"] != comment["id"]]
            return True
        return False

    # --- Adjuntos ---

    def upload_attachment(self, ticket_id, file, comment_id=None):
        """
        Subida en dos fases: archivo al bucket y después el registro.
        Si el registro falla se borra el archivo subido y la operación falla.
        """
        with self.action("subir adjunto"):
            ticket = self._get_ticket(ticket_id)
            policies.check(policies.can_view_ticket(self.user, ticket))
            if comment_id:
                comment = self._get_comment(comment_id)
                if comment["ticket_id"] != ticket["id"]:
                    raise NotFoundError("El comentario no pertenece a este ticket.")

            data = file.read()
            if not data:
                raise FormValidationError({"file": ["El archivo está vacío."]})
            if self.max_attachment_size and len(data) > self.max_attachment_size:
                raise FormValidationError({"file": ["El archivo supera el tamaño máximo permitido."]})

            file_name = secure_filename(file.filename or "") or "archivo"
            storage_path = build_storage_path(ticket["id"], file_name)
            self.storage.upload(storage_path, data)

            try:
                attachment = self.attachment_repository.add({
                    "ticket_id": ticket["id"],
                    "comment_id": comment_id,
                    "file_name": file_name,
                    "file_type": file.content_type or "application/octet-stream",
                    "file_size": len(data),
                    "storage_path": storage_path,
                    "uploaded_by": self.user.id,
                    "created_at": utcnow(),
                })
            except DatabaseQueryError:
                self._discard_upload(storage_path)
                raise

            if self._is_selected(ticket["id"]):
                self.selected_ticket_attachments = self.selected_ticket_attachments + [attachment]
            logger.info(f"Adjunto '{file_name}' subido al ticket {ticket['id']} ({len(data)} bytes)")
            return attachment
        return None

    def _discard_upload(self, storage_path):
        try:
            self.storage.remove([storage_path])
            logger.warning(f"Archivo '{storage_path}' eliminado tras fallar el registro del adjunto.")
        except StorageError as e:
            logger.error(f"No se pudo eliminar el archivo huérfano '{storage_path}': {e}", exc_info=True)

    def upload_attachments(self, ticket_id, files, comment_id=None):
        """Sube varios archivos de forma independiente: se admite el éxito parcial."""
        uploaded, failed = [], []
        for file in files:
            attachment = self.upload_attachment(ticket_id, file, comment_id)
            if attachment is None:
                failed.append({"file_name": file.filename, "error": self.error, "status": self.error_status})
            else:
                uploaded.append(attachment)

        if failed:
            self.error = f"No se pudieron subir {len(failed)} de {len(failed) + len(uploaded)} archivos."
            self.error_status = failed[0]["status"]
        return {"uploaded": uploaded, "failed": failed}

    def delete_attachment(self, attachment_id):
        """
        Borra el archivo del bucket y después el registro. Si el borrado del
        archivo falla, el registro se conserva.
        """
        with self.action("eliminar adjunto"):
            attachment = self.attachment_repository.find_by_id(attachment_id)
            if attachment is None:
                raise NotFoundError("El adjunto no existe.")
            policies.check(policies.can_delete_attachment(self.user, attachment))

            self.storage.remove([attachment["storage_path"]])
            self.attachment_repository.delete(attachment_id)
            self.selected_ticket_attachments = [
                a for a in self.selected_ticket_attachments if a["id"] != attachment["id"]
            ]
            logger.info(f"Adjunto {attachment_id} eliminado por {self.user.email}")
            return True
        return False

    def open_attachment(self, attachment_id):
        """Devuelve (adjunto, flujo de lectura) si el usuario puede ver el ticket."""
        with self.action("descargar adjunto"):
            attachment = self.attachment_repository.find_by_id(attachment_id)
            if attachment is None:
                raise NotFoundError("El adjunto no existe.")
            ticket = self._get_ticket(attachment["ticket_id"])
            policies.check(policies.can_view_ticket(self.user, ticket))
            if attachment.get("comment_id"):
                self._get_comment(attachment["comment_id"])
            return attachment, self.storage.open(attachment["storage_path"])
        return None, None

    # --- Agentes ---

    def fetch_agent_queue(self):
        """Tickets abiertos asignados al agente actual."""
        with self.action("cargar la cola del agente"):
            policies.check(self.user.is_agent, "Debes ser agente para ver la cola.")
            filters = {"status": TicketStatus.OPEN, "assigned_to": self.user.id}
            self.tickets = self._load_tickets(filters)
            self.filters = filters
            return self.tickets
        return []

    def fetch_agent_dashboard_data(self):
        with self.action("cargar el panel del agente"):
            policies.check(self.user.is_agent, "Debes ser agente para ver el panel.")
            stats = self.stats_repository.get_agent_performance_stats(self.user.id)
            assigned = self.ticket_repository.find_assigned(self.user.id)
            self.agent_stats = stats
            self.dashboard_tickets = sort_tickets(assigned, sort_by="priority")[:DASHBOARD_TICKET_COUNT]
            return {"stats": self.agent_stats, "tickets": self.dashboard_tickets}
        return None

    def fetch_profiles(self, user_ids):
        """Completa la caché de perfiles. Un fallo aquí solo se registra."""
        missing = {str(uid) for uid in user_ids if uid} - set(self.user_profiles)
        if not missing:
            return self.user_profiles
        try:
            for doc in self.profile_repository.find_by_ids(sorted(missing)):
                profile = public_profile(doc)
                self.user_profiles[profile["id"]] = profile
        except BaseAppException as e:
            logger.error(f"Error al cargar perfiles {sorted(missing)}: {e}", exc_info=True)
        return self.user_profiles
