# cozycabin/storage.py

import logging
import os

from flask import current_app

from cozycabin.exceptions import StorageError

logger = logging.getLogger(__name__)


class LocalFileStorage:
    """
    Bucket de archivos sobre el sistema de ficheros local.
    Las rutas de objeto son relativas al bucket (p. ej. '<ticket_id>/<archivo>').
    """

    def __init__(self, root, bucket):
        self.bucket = bucket
        self.base_path = os.path.abspath(os.path.join(root, bucket))

    def _resolve(self, path):
        full_path = os.path.abspath(os.path.join(self.base_path, path))
        if not full_path.startswith(self.base_path + os.sep):
            raise StorageError(f"Ruta de almacenamiento inválida: {path}")
        return full_path

    def upload(self, path, data):
        full_path = self._resolve(path)
        if os.path.exists(full_path):
            raise StorageError(f"El objeto '{path}' ya existe en el bucket '{self.bucket}'.")
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error(f"Error al subir '{path}' al bucket '{self.bucket}': {e}", exc_info=True)
            raise StorageError(f"No se pudo subir el archivo '{path}'.", original_exception=e)
        logger.info(f"Objeto '{path}' subido al bucket '{self.bucket}' ({len(data)} bytes).")
        return path

    def remove(self, paths):
        """Elimina los objetos indicados. Un objeto inexistente no es un error."""
        for path in paths:
            full_path = self._resolve(path)
            try:
                os.remove(full_path)
            except FileNotFoundError:
                logger.warning(f"El objeto '{path}' no existe en el bucket '{self.bucket}'.")
            except OSError as e:
                logger.error(f"Error al eliminar '{path}' del bucket '{self.bucket}': {e}", exc_info=True)
                raise StorageError(f"No se pudo eliminar el archivo '{path}'.", original_exception=e)

    def open(self, path):
        full_path = self._resolve(path)
        if not os.path.isfile(full_path):
            raise StorageError(f"El objeto '{path}' no existe en el bucket '{self.bucket}'.")
        return open(full_path, "rb")


def get_storage():
    return LocalFileStorage(
        current_app.config["ATTACHMENTS_FOLDER"],
        current_app.config["ATTACHMENTS_BUCKET"],
    )
