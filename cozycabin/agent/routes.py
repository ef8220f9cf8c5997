from flask import jsonify, request
from flask_login import current_user
import logging

from cozycabin.agent import agent_bp
from cozycabin import stores
from cozycabin.auth.decorators import agent_required, staff_required
from cozycabin.tickets.forms import StatusForm
from cozycabin.utils import store_error_response

logger = logging.getLogger(__name__)


def _ticket_store():
    return stores.get_ticket_store(current_user._get_current_object())


@agent_bp.route('/queue', methods=['GET'])
@agent_required
def queue():
    ticket_store = _ticket_store()
    ticket_store.fetch_agent_queue()
    if ticket_store.error:
        return store_error_response(ticket_store)
    return jsonify({"tickets": ticket_store.tickets, "profiles": ticket_store.user_profiles})


@agent_bp.route('/dashboard', methods=['GET'])
@agent_required
def dashboard():
    ticket_store = _ticket_store()
    data = ticket_store.fetch_agent_dashboard_data()
    if data is None:
        return store_error_response(ticket_store)
    return jsonify(data)


@agent_bp.route('/tickets/<ticket_id>/assign', methods=['POST'])
@agent_required
def assign_ticket(ticket_id):
    ticket_store = _ticket_store()
    ticket = ticket_store.assign_to_self(ticket_id)
    if ticket is None:
        return store_error_response(ticket_store)
    return jsonify({"ticket": ticket})


@agent_bp.route('/tickets/<ticket_id>/status', methods=['POST'])
@staff_required
def change_status(ticket_id):
    payload = request.get_json(silent=True) or {}
    form = StatusForm.from_payload(payload)
    if not form.validate():
        return jsonify({"error": "Estado no válido.", "errors": form.errors}), 400

    ticket_store = _ticket_store()
    ticket = ticket_store.update_ticket_status(ticket_id, form.status.data)
    if ticket is None:
        return store_error_response(ticket_store)
    return jsonify({"ticket": ticket})
