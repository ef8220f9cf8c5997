# cozycabin/functions/routes.py
#
# Funciones sin estado equivalentes a las "edge functions": se autentican con
# token Bearer (o con la clave de servicio) y responden siempre en JSON.

import hmac
import logging

from flask import jsonify, request, current_app

from cozycabin.functions import functions_bp
from cozycabin.functions.forms import AdminAgentRequestForm
from cozycabin.admin.forms import InviteForm
from cozycabin import mongo
from cozycabin.assistant import handle_admin_agent_request
from cozycabin.auth.models import Profile
from cozycabin.exceptions import AgentRequestError, BaseAppException, DatabaseQueryError
from cozycabin.invites import send_invite
from cozycabin.repositories import MongoInviteRepository, MongoTicketRepository

logger = logging.getLogger(__name__)


def bearer_token():
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[len("Bearer "):].strip() or None


def bearer_profile():
    token = bearer_token()
    return Profile.verify_access_token(token) if token else None


def first_error(form):
    for field_errors in form.errors.values():
        while isinstance(field_errors, (list, dict)):
            if isinstance(field_errors, dict):
                field_errors = list(field_errors.values())
            if not field_errors:
                break
            field_errors = field_errors[0]
        if isinstance(field_errors, str):
            return field_errors
    return "Invalid request body"


@functions_bp.route('/adminAgent', methods=['POST'])
def admin_agent():
    user = bearer_profile()
    if user is None or not user.is_admin:
        logger.warning("Llamada a adminAgent sin token de administrador")
        return jsonify({"error": "Admin privileges required"}), 403

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({"error": "Invalid JSON body"}), 400
    form = AdminAgentRequestForm.from_payload(payload)
    if not form.validate():
        return jsonify({"error": first_error(form), "errors": form.errors}), 400

    try:
        result = handle_admin_agent_request(
            MongoTicketRepository(mongo.db),
            form.messages.data,
            form.newUserMessage.data.strip(),
        )
    except AgentRequestError as e:
        logger.error(f"adminAgent falló para {user.email}: {e.message}")
        return jsonify({"error": e.message}), 400
    return jsonify(result)


@functions_bp.route('/handle-invite', methods=['POST'])
def handle_invite():
    """Invitación creada por un administrador autenticado. Cualquier fallo responde 400."""
    token = bearer_token()
    if token is None:
        return jsonify({"error": "No authorization header"}), 400
    user = Profile.verify_access_token(token)
    if user is None:
        return jsonify({"error": "Invalid token"}), 400
    if not user.is_admin:
        logger.warning(f"handle-invite rechazado para {user.email} (rol '{user.role}')")
        return jsonify({"error": f"User does not have admin privileges. Current role: {user.role}"}), 400

    form = InviteForm.from_payload(request.get_json(silent=True) or {})
    if not form.validate():
        return jsonify({"error": first_error(form), "errors": form.errors}), 400

    try:
        send_invite(MongoInviteRepository(mongo.db), form.email.data, form.role.data, user.id)
    except BaseAppException as e:
        logger.error(f"Error en handle-invite para {form.email.data}: {e.message}")
        return jsonify({"error": e.message}), 400
    return jsonify({"message": "Invite sent successfully"})


@functions_bp.route('/invite-user', methods=['POST'])
def invite_user():
    """Variante autorizada con la clave de servicio, sin usuario que invite."""
    service_key = current_app.config["SERVICE_ROLE_KEY"]
    provided = bearer_token() or request.headers.get("apikey")
    if not provided or not hmac.compare_digest(provided.encode(), service_key.encode()):
        return jsonify({"error": "Missing or invalid service key"}), 401

    payload = request.get_json(silent=True) or {}
    if not payload.get("email") or not payload.get("role"):
        return jsonify({"error": "Missing 'email' or 'role' in request body."}), 400
    form = InviteForm.from_payload(payload)
    if not form.validate():
        if "role" in form.errors:
            return jsonify({"error": "Invalid role"}), 400
        return jsonify({"error": first_error(form), "errors": form.errors}), 400

    try:
        invite = send_invite(MongoInviteRepository(mongo.db), form.email.data, form.role.data)
    except DatabaseQueryError as e:
        return jsonify({"error": e.message}), 500
    except BaseAppException as e:
        return jsonify({"error": f"Error inviting user: {e.message}"}), 400
    return jsonify({"invite": {key: invite[key] for key in ("id", "email", "role", "expires_at")}})
