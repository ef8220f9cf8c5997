# cozycabin/__init__.py

from flask import Flask, jsonify, current_app, request
from flask.json.provider import DefaultJSONProvider
from flask_login import LoginManager
from flask_mail import Mail
from flask_pymongo import PyMongo
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_cors import CORS
from pymongo.errors import ConnectionFailure, ConfigurationError
from bson.objectid import ObjectId
from datetime import datetime
import logging
from logging.handlers import RotatingFileHandler
from config import DevelopmentConfig, ProductionConfig, TestingConfig
import os
import sys

# --- Instancias de Extensiones ---
login_manager = LoginManager()
mail = Mail()
mongo = PyMongo()
csrf = CSRFProtect()
limiter = Limiter(key_func=get_remote_address)


class CozyCabinJSONProvider(DefaultJSONProvider):
    """Serializa ObjectId y fechas (ISO 8601) en las respuestas JSON."""

    @staticmethod
    def default(o):
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, ObjectId):
            return str(o)
        return DefaultJSONProvider.default(o)


# --- Funciones Auxiliares para Modularizar la Configuración ---

def check_required_settings(app):
    """Aborta el arranque si falta alguna variable de entorno obligatoria."""
    missing = [name for name in app.config.get("REQUIRED_SETTINGS", ()) if not app.config.get(name)]
    if missing:
        raise RuntimeError(f"FATAL: Faltan variables de configuración obligatorias: {', '.join(missing)}")


def init_app_extensions(app):
    """
    Inicializa las extensiones de Flask y configura la conexión a la BD.
    """
    mail.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # Las funciones se autentican con token Bearer o clave de servicio, no con cookie de sesión
    CORS(app, resources={r"/functions/v1/*": {"origins": "*"}}, max_age=86400,
         allow_headers=["authorization", "x-client-info", "apikey", "content-type"])

    # CSRF solo para peticiones autenticadas con cookie de sesión
    @app.before_request
    def csrf_protect_cookie_sessions():
        if not app.config.get("WTF_CSRF_ENABLED", True):
            return None
        if request.blueprint == "functions" or request.headers.get("Authorization", "").startswith("Bearer "):
            return None
        csrf.protect()
        return None

    mongo_uri = app.config.get("MONGO_URI")
    if not mongo_uri:
        raise RuntimeError("FATAL: La variable de entorno MONGO_URI no está configurada.")

    app.logger.info("Intentando conectar a MongoDB...")

    try:
        mongo.init_app(app)
        mongo.cx.server_info() # Fuerza la conexión para verificarla
        app.logger.info("Conexión a MongoDB establecida exitosamente.")
    except (ConnectionFailure, ConfigurationError) as e:
        app.logger.error(f"Error al conectar o configurar MongoDB: {e}")
        raise RuntimeError(f"No se pudo conectar a la base de datos: {e}")

    # La URI puede no incluir la base de datos
    if mongo.db is None:
        mongo.db = mongo.cx[app.config.get("MONGO_DBNAME") or "cozycabin"]

    # PyMongo instala su propio proveedor JSON; las respuestas usan ids como texto y fechas ISO
    app.json = CozyCabinJSONProvider(app)

    login_manager.init_app(app)

    from cozycabin.auth.models import Profile

    @login_manager.user_loader
    def load_user(user_id):
        from cozycabin import stores
        auth_store = stores.get_auth_store()
        profile = auth_store.load_profile(user_id)
        if profile is None:
            app.logger.warning(f"No se pudo cargar el perfil de la sesión {user_id}: {auth_store.error}")
        return profile

    @login_manager.request_loader
    def load_user_from_bearer(req):
        auth_header = req.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return None
        return Profile.verify_access_token(auth_header[len("Bearer "):].strip())

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Debes iniciar sesión para acceder a este recurso."}), 401


def register_app_blueprints(app):
    """
    Registra todos los Blueprints de la aplicación.
    """
    from cozycabin.auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')

    from cozycabin.main import main_bp
    app.register_blueprint(main_bp)

    from cozycabin.tickets import tickets_bp
    app.register_blueprint(tickets_bp)

    from cozycabin.agent import agent_bp
    app.register_blueprint(agent_bp, url_prefix='/agent')

    from cozycabin.admin import admin_bp
    app.register_blueprint(admin_bp, url_prefix='/admin')

    from cozycabin.functions import functions_bp
    app.register_blueprint(functions_bp, url_prefix='/functions/v1')


def configure_app_logging(app):
    """
    Configura el sistema de logging de la aplicación.
    """
    log_folder = app.config.get("LOG_FOLDER", "logs")
    os.makedirs(log_folder, exist_ok=True)

    for handler in app.logger.handlers[:]:
        app.logger.removeHandler(handler)

    file_handler = RotatingFileHandler(os.path.join(log_folder, "app.log"), maxBytes=10240, backupCount=10)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'))

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter('%(levelname)s: %(message)s'))

    # Los módulos del paquete registran con logging.getLogger(__name__)
    package_logger = logging.getLogger("cozycabin")

    if not app.debug and not app.testing:
        level = logging.INFO
    else:
        level = logging.DEBUG

    file_handler.setLevel(level)
    stream_handler.setLevel(level)
    app.logger.setLevel(level)
    package_logger.setLevel(level)

    app.logger.addHandler(file_handler)
    app.logger.addHandler(stream_handler)
    if not package_logger.handlers:
        package_logger.addHandler(file_handler)
        package_logger.addHandler(stream_handler)
    app.logger.info("Logging inicializado")


def register_app_error_handlers(app):
    """
    Registra los manejadores de errores HTTP globales (respuestas JSON).
    """
    @app.errorhandler(400)
    def bad_request_error(error):
        return jsonify({"error": "Solicitud inválida."}), 400

    @app.errorhandler(401)
    def unauthorized_error(error):
        return jsonify({"error": "Debes iniciar sesión para acceder a este recurso."}), 401

    @app.errorhandler(403)
    def forbidden_access(error):
        return jsonify({"error": "No tienes permiso para realizar esta acción."}), 403

    @app.errorhandler(404)
    def page_not_found_error(error):
        return jsonify({"error": "Recurso no encontrado."}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(413)
    def payload_too_large_error(error):
        return jsonify({"error": "El archivo supera el tamaño máximo permitido."}), 413

    @app.errorhandler(429)
    def too_many_requests_error(error):
        return jsonify({"error": "Demasiadas solicitudes. Inténtalo de nuevo más tarde."}), 429

    @app.errorhandler(500)
    def internal_server_error(error):
        current_app.logger.error(f"Internal Server Error en {request.path}: {error}", exc_info=True)
        return jsonify({"error": "Error interno del servidor."}), 500


# --- Función de Fábrica de Aplicación (create_app) ---
def create_app(config_class="development"):
    """
    Función de fábrica para crear y configurar la instancia de la aplicación Flask.
    """
    app = Flask(__name__)

    config_map = {
        'testing': TestingConfig,
        'production': ProductionConfig,
        'development': DevelopmentConfig
    }
    app.config.from_object(config_map.get(config_class, DevelopmentConfig))

    configure_app_logging(app)
    check_required_settings(app)
    init_app_extensions(app)
    register_app_blueprints(app)
    register_app_error_handlers(app)

    from cozycabin import commands
    app.cli.add_command(commands.init_db_data_command)

    return app
