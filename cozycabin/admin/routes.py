from flask import jsonify, request
from flask_login import current_user
import logging

from cozycabin.admin import admin_bp
from cozycabin.admin.forms import UserEditForm
from cozycabin import mongo, stores
from cozycabin.auth.decorators import admin_required
from cozycabin.exceptions import DatabaseQueryError, InvalidIdentifierError
from cozycabin.models import public_profile
from cozycabin.repositories import MongoProfileRepository
from cozycabin.utils import store_error_response

logger = logging.getLogger(__name__)


# --- Invitaciones ---

@admin_bp.route('/invites', methods=['GET'])
@admin_required
def list_invites():
    invite_store = stores.get_invite_store(current_user._get_current_object())
    invite_store.fetch_invites()
    if invite_store.error:
        return store_error_response(invite_store)
    return jsonify({"invites": invite_store.invites})


@admin_bp.route('/invites', methods=['POST'])
@admin_required
def create_invite():
    invite_store = stores.get_invite_store(current_user._get_current_object())
    invite = invite_store.create_invite(request.get_json(silent=True) or {})
    if invite is None:
        return store_error_response(invite_store)
    return jsonify({"invite": invite, "invites": invite_store.invites}), 201


# --- Usuarios ---

@admin_bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    try:
        users = [public_profile(doc) for doc in MongoProfileRepository(mongo.db).get_all()]
    except DatabaseQueryError as e:
        return jsonify({"error": e.message}), 500
    return jsonify({"users": users})


@admin_bp.route('/users/<user_id>', methods=['PATCH'])
@admin_required
def edit_user(user_id):
    """Cambio directo de nombre, rol o estado de una cuenta."""
    payload = request.get_json(silent=True) or {}
    form = UserEditForm.from_payload(payload)
    if not form.validate():
        return jsonify({"error": "Los datos enviados no son válidos.", "errors": form.errors}), 400

    changes = form.cleaned_data(payload)
    if not changes:
        return jsonify({"error": "No hay cambios que aplicar."}), 400
    if user_id == current_user.id and (changes.get("role", current_user.role) != current_user.role or changes.get("is_active") is False):
        return jsonify({"error": "No puedes cambiar tu propio rol ni desactivar tu cuenta."}), 400

    try:
        doc = MongoProfileRepository(mongo.db).update(user_id, changes)
    except InvalidIdentifierError as e:
        return jsonify({"error": e.message}), 400
    except DatabaseQueryError as e:
        return jsonify({"error": e.message}), 500
    if doc is None:
        return jsonify({"error": "El usuario no existe."}), 404

    logger.info(f"Usuario {user_id} modificado por {current_user.email}: {sorted(changes)}")
    return jsonify({"user": public_profile(doc)})


# --- Consola del asistente ---

@admin_bp.route('/console/messages', methods=['GET'])
@admin_required
def console_messages():
    chat_store = stores.get_admin_chat_store(current_user._get_current_object())
    return jsonify({"messages": chat_store.messages})


@admin_bp.route('/console/messages', methods=['POST'])
@admin_required
def send_console_message():
    payload = request.get_json(silent=True) or {}
    chat_store = stores.get_admin_chat_store(current_user._get_current_object())
    reply = chat_store.send_message(payload.get("content"))
    if reply is None:
        body = {"error": chat_store.error, "messages": chat_store.messages}
        if chat_store.validation_errors:
            body["errors"] = chat_store.validation_errors
        return jsonify(body), chat_store.error_status or 500
    return jsonify({"reply": reply, "messages": chat_store.messages})


@admin_bp.route('/console/messages', methods=['DELETE'])
@admin_required
def clear_console_messages():
    chat_store = stores.get_admin_chat_store(current_user._get_current_object())
    chat_store.clear_messages()
    return jsonify({"messages": []})
