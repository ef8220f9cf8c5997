import logging
from contextlib import contextmanager

import pymongo

from cozycabin.exceptions import BaseAppException, FormValidationError, DatabaseQueryError

logger = logging.getLogger(__name__)


class BaseStore:
    """
    Estado común de los stores: indicador de carga, último error y errores
    de validación por campo. Las acciones nunca propagan errores del backend:
    los dejan en 'error' para que la capa JSON los muestre.
    """

    def __init__(self):
        self.loading = False
        self.error = None
        self.error_status = None
        self.validation_errors = {}

    def _reset_errors(self):
        self.error = None
        self.error_status = None
        self.validation_errors = {}

    def _record_error(self, exc, description):
        self.error = exc.message
        self.error_status = exc.status_code
        if isinstance(exc, FormValidationError):
            self.validation_errors = exc.errors
            logger.info(f"Validación fallida al {description}: {exc.errors}")
        elif exc.status_code < 500:
            logger.warning(f"Operación rechazada al {description}: {exc.message}")
        else:
            logger.error(f"Error al {description}: {exc.message}", exc_info=True)

    @contextmanager
    def action(self, description):
        """
        Envuelve una acción del store: marca 'loading' mientras dura y
        captura los errores de la aplicación en 'error'.
        """
        self.loading = True
        self._reset_errors()
        try:
            yield
        except BaseAppException as e:
            self._record_error(e, description)
        except pymongo.errors.PyMongoError as e:
            self._record_error(DatabaseQueryError(original_exception=e), description)
        finally:
            self.loading = False

    @staticmethod
    def validate(form):
        if not form.validate():
            raise FormValidationError(form.errors)
        return form
