class BaseAppException(Exception):
    """Clase base para excepciones personalizadas de la aplicación."""
    default_message = "Error en la aplicación."
    status_code = 500

    def __init__(self, message=None, original_exception=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.original_exception = original_exception


class DatabaseQueryError(BaseAppException):
    """Excepción para errores ocurridos durante una consulta a la base de datos."""
    default_message = "Error al ejecutar la consulta en la base de datos."


class FormValidationError(BaseAppException):
    """Los datos recibidos no superan la validación del formulario."""
    default_message = "Los datos enviados no son válidos."
    status_code = 400

    def __init__(self, errors=None, message=None):
        super().__init__(message)
        self.errors = errors or {}


class InvalidIdentifierError(BaseAppException):
    """Excepción para identificadores con formato inválido."""
    default_message = "Identificador inválido."
    status_code = 400


class NotFoundError(BaseAppException):
    default_message = "El recurso solicitado no existe."
    status_code = 404


class AuthenticationError(BaseAppException):
    default_message = "Correo electrónico o contraseña inválidos."
    status_code = 401


class InvalidTokenError(BaseAppException):
    default_message = "El enlace no es válido o ha expirado."
    status_code = 400


class PermissionDeniedError(BaseAppException):
    """El usuario actual no tiene permiso sobre el recurso (política por fila o por rol)."""
    default_message = "No tienes permiso para realizar esta acción."
    status_code = 403


class ConflictError(BaseAppException):
    """La fila cambió entre la lectura y la escritura (p. ej. otro agente tomó el ticket)."""
    default_message = "El recurso fue modificado por otro usuario."
    status_code = 409


class StorageError(BaseAppException):
    """Excepción para errores del almacenamiento de archivos adjuntos."""
    default_message = "Error en el almacenamiento de archivos."


class InviteError(BaseAppException):
    default_message = "No se pudo procesar la invitación."
    status_code = 400


class EmailDeliveryError(BaseAppException):
    default_message = "No se pudo enviar el correo electrónico."
    status_code = 502


class AgentRequestError(BaseAppException):
    """Excepción para fallos al consultar al asistente de IA."""
    default_message = "Failed to get response from AI assistant"
    status_code = 502
