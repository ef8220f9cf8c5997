# cozycabin/utils.py

import json
import logging
import time
from datetime import datetime, timezone
from functools import wraps

from bson.objectid import ObjectId
from bson.errors import InvalidId
from flask import jsonify

from cozycabin.exceptions import InvalidIdentifierError

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"


def utcnow():
    """Fecha/hora actual en UTC, sin tzinfo (tal como la devuelve MongoDB)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value):
    """
    Convierte un identificador recibido del cliente en ObjectId.
    Lanza InvalidIdentifierError si el formato no es válido.
    """
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError) as e:
        raise InvalidIdentifierError(f"Identificador inválido: {value}", original_exception=e)


def store_error_response(store, default_status=500):
    """Respuesta JSON con el error que dejó la última acción del store."""
    body = {"error": store.error}
    if store.validation_errors:
        body["errors"] = store.validation_errors
    return jsonify(body), store.error_status or default_status


def retry(max_attempts=3, delay=1.0, backoff=2.0, exceptions=(Exception,)):
    """
    Decorador para reintentar una función que falla con alguna de las
    excepciones indicadas, con espera exponencial entre intentos.
    Tras el último intento se relanza la última excepción.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay
            last_exception = None

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        logger.warning(
                            f"Intento {attempt + 1} fallido en {func.__name__}: {e}. "
                            f"Reintentando en {current_delay}s..."
                        )
                        time.sleep(current_delay)
                        current_delay *= backoff
                    else:
                        logger.error(f"Fallaron los {max_attempts} intentos de {func.__name__}")

            raise last_exception

        return wrapper
    return decorator


def redact_emails(value):
    """Sustituye por [REDACTED] cualquier cadena que contenga una dirección de correo."""
    if isinstance(value, str):
        return REDACTED if "@" in value else value
    if isinstance(value, dict):
        return {key: redact_emails(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact_emails(item) for item in value]
    return value


def _serialize_for_log(value):
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(redact_emails(value), default=str)
    return str(redact_emails(value))


def _insert_ai_log(record):
    # Registrar nunca debe romper la llamada al modelo
    from cozycabin import mongo
    try:
        mongo.db.ai_logs.insert_one(record)
    except Exception as e:
        logger.error(f"No se pudo guardar el registro de IA '{record.get('feature_name')}': {e}", exc_info=True)


def with_ai_logging(feature_name):
    """
    Decorador que registra en la colección ai_logs cada invocación de una
    función de IA: éxito o tipo de error, tiempo de respuesta en ms y los
    argumentos/resultado con las direcciones de correo ocultas.
    Las excepciones de la función se relanzan sin cambios.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            serialized_args = [_serialize_for_log(arg) for arg in args]
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _insert_ai_log({
                    "feature_name": feature_name,
                    "success": False,
                    "error_type": type(e).__name__,
                    "response_time_ms": (time.perf_counter() - start_time) * 1000,
                    "metadata": {"error_message": str(e), "args": serialized_args},
                    "created_at": utcnow(),
                })
                raise

            _insert_ai_log({
                "feature_name": feature_name,
                "success": True,
                "error_type": None,
                "response_time_ms": (time.perf_counter() - start_time) * 1000,
                "metadata": {"args": serialized_args, "result": _serialize_for_log(result)},
                "created_at": utcnow(),
            })
            return result

        return wrapper
    return decorator
