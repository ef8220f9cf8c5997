from flask import jsonify, request
from flask_login import login_required, current_user
from flask_wtf.csrf import generate_csrf
import logging

from cozycabin.auth import auth_bp
from cozycabin import limiter, mongo, stores
from cozycabin.repositories import MongoInviteRepository
from cozycabin.utils import store_error_response

logger = logging.getLogger(__name__)


def _session_payload(auth_store):
    return {
        "profile": auth_store.profile,
        "access_token": auth_store.access_token,
    }


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    auth_store = stores.get_auth_store()
    if auth_store.login(request.get_json(silent=True) or {}) is None:
        return store_error_response(auth_store)
    return jsonify(_session_payload(auth_store))


@auth_bp.route("/signup", methods=["POST"])
@limiter.limit("5 per minute")
def signup():
    auth_store = stores.get_auth_store()
    if auth_store.sign_up(request.get_json(silent=True) or {}) is None:
        return store_error_response(auth_store)
    return jsonify(_session_payload(auth_store)), 201


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    auth_store = stores.get_auth_store(current_user._get_current_object())
    auth_store.logout()
    return jsonify({"message": "Has cerrado sesión correctamente."})


@auth_bp.route("/session", methods=["GET"])
def session_info():
    """Estado de la sesión y token CSRF para las peticiones con cookie."""
    profile = current_user.to_dict() if current_user.is_authenticated else None
    return jsonify({
        "authenticated": current_user.is_authenticated,
        "profile": profile,
        "csrf_token": generate_csrf(),
    })


@auth_bp.route("/invites/<token>", methods=["GET"])
def verify_invite(token):
    result = MongoInviteRepository(mongo.db).verify(token)
    return jsonify(result), 200 if result["is_valid"] else 404


@auth_bp.route("/reset_password", methods=["POST"])
@limiter.limit("5 per minute")
def request_password_reset():
    auth_store = stores.get_auth_store()
    if not auth_store.request_password_reset(request.get_json(silent=True) or {}):
        return store_error_response(auth_store)
    return jsonify({"message": "Si la cuenta existe, recibirás un correo con instrucciones para restablecer tu contraseña."})


@auth_bp.route("/reset_password/<token>", methods=["POST"])
def reset_password(token):
    auth_store = stores.get_auth_store()
    if not auth_store.reset_password(token, request.get_json(silent=True) or {}):
        return store_error_response(auth_store)
    return jsonify({"message": "Tu contraseña ha sido restablecida."})
