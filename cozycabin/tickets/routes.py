from flask import jsonify, request, send_file
from flask_login import login_required, current_user
import logging

from cozycabin.tickets import tickets_bp
from cozycabin import stores
from cozycabin.models import TicketPriority, TicketStatus
from cozycabin.utils import store_error_response

logger = logging.getLogger(__name__)

LIST_FILTERS = ("status", "priority", "customer_id", "search")


def _ticket_store():
    return stores.get_ticket_store(current_user._get_current_object())


def filters_from_args(args):
    """
    Filtros de la lista a partir de la query string.
    assigned_to=unassigned equivale a "sin asignar".
    """
    filters = {key: args.get(key) for key in LIST_FILTERS if args.get(key)}
    if "assigned_to" in args:
        assigned_to = args.get("assigned_to")
        filters["assigned_to"] = None if assigned_to in ("", "unassigned") else assigned_to
    return filters


@tickets_bp.route('/tickets', methods=['GET'])
@login_required
def list_tickets():
    filters = filters_from_args(request.args)
    if filters.get("status") and filters["status"] not in TicketStatus.ALL:
        return jsonify({"error": "Estado no válido.", "errors": {"status": ["Estado no válido."]}}), 400
    if filters.get("priority") and filters["priority"] not in TicketPriority.ALL:
        return jsonify({"error": "Prioridad no válida.", "errors": {"priority": ["Prioridad no válida."]}}), 400

    ticket_store = _ticket_store()
    ticket_store.fetch_tickets(filters)
    if ticket_store.error:
        return store_error_response(ticket_store)

    sort_by = request.args.get("sort", "created_at")
    if sort_by in ("created_at", "priority"):
        ticket_store.sort(sort_by=sort_by, descending=request.args.get("order", "desc") != "asc")

    return jsonify({
        "tickets": ticket_store.tickets,
        "profiles": ticket_store.user_profiles,
        "filters": ticket_store.filters,
    })


@tickets_bp.route('/tickets', methods=['POST'])
@login_required
def create_ticket():
    ticket_store = _ticket_store()
    ticket = ticket_store.create_ticket(request.get_json(silent=True) or {})
    if ticket is None:
        return store_error_response(ticket_store)
    return jsonify({"ticket": ticket}), 201


@tickets_bp.route('/tickets/<ticket_id>', methods=['GET'])
@login_required
def ticket_detail(ticket_id):
    ticket_store = _ticket_store()
    if ticket_store.select_ticket(ticket_id) is None:
        return store_error_response(ticket_store)
    return jsonify({
        "ticket": ticket_store.selected_ticket,
        "comments": ticket_store.selected_ticket_comments,
        "attachments": ticket_store.selected_ticket_attachments,
        "profiles": ticket_store.user_profiles,
    })


@tickets_bp.route('/tickets/<ticket_id>', methods=['PATCH'])
@login_required
def update_ticket(ticket_id):
    ticket_store = _ticket_store()
    ticket = ticket_store.update_ticket(ticket_id, request.get_json(silent=True) or {})
    if ticket is None:
        return store_error_response(ticket_store)
    return jsonify({"ticket": ticket})


@tickets_bp.route('/tickets/<ticket_id>', methods=['DELETE'])
@login_required
def delete_ticket(ticket_id):
    ticket_store = _ticket_store()
    if not ticket_store.delete_ticket(ticket_id):
        return store_error_response(ticket_store)
    return jsonify({"message": "Ticket eliminado."})


@tickets_bp.route('/tickets/<ticket_id>/comments', methods=['POST'])
@login_required
def add_comment(ticket_id):
    payload = dict(request.get_json(silent=True) or {})
    payload["ticket_id"] = ticket_id
    ticket_store = _ticket_store()
    comment = ticket_store.add_comment(payload)
    if comment is None:
        return store_error_response(ticket_store)
    return jsonify({"comment": comment}), 201


@tickets_bp.route('/comments/<comment_id>', methods=['PATCH'])
@login_required
def update_comment(comment_id):
    payload = request.get_json(silent=True) or {}
    ticket_store = _ticket_store()
    comment = ticket_store.update_comment(comment_id, payload.get("content"))
    if comment is None:
        return store_error_response(ticket_store)
    return jsonify({"comment": comment})


@tickets_bp.route('/comments/<comment_id>', methods=['DELETE'])
@login_required
def delete_comment(comment_id):
    ticket_store = _ticket_store()
    if not ticket_store.delete_comment(comment_id):
        return store_error_response(ticket_store)
    return jsonify({"message": "Comentario eliminado."})


@tickets_bp.route('/tickets/<ticket_id>/attachments', methods=['POST'])
@login_required
def upload_attachments(ticket_id):
    files = [f for f in request.files.getlist("files") if f and f.filename]
    if not files:
        return jsonify({"error": "No se ha enviado ningún archivo.", "errors": {"files": ["Este campo es obligatorio"]}}), 400

    ticket_store = _ticket_store()
    result = ticket_store.upload_attachments(ticket_id, files, comment_id=request.form.get("comment_id") or None)
    if not result["uploaded"]:
        body = {"error": ticket_store.error, "failed": result["failed"]}
        return jsonify(body), ticket_store.error_status or 500
    return jsonify({**result, "error": ticket_store.error}), 201


@tickets_bp.route('/attachments/<attachment_id>', methods=['DELETE'])
@login_required
def delete_attachment(attachment_id):
    ticket_store = _ticket_store()
    if not ticket_store.delete_attachment(attachment_id):
        return store_error_response(ticket_store)
    return jsonify({"message": "Adjunto eliminado."})


@tickets_bp.route('/attachments/<attachment_id>/download', methods=['GET'])
@login_required
def download_attachment(attachment_id):
    ticket_store = _ticket_store()
    attachment, stream = ticket_store.open_attachment(attachment_id)
    if attachment is None:
        return store_error_response(ticket_store)
    return send_file(
        stream,
        mimetype=attachment["file_type"],
        as_attachment=True,
        download_name=attachment["file_name"],
    )
