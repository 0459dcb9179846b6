from __future__ import annotations


class CarteirinhaError(Exception):
    """Base de todos los errores que se muestran al usuario"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputValidationError(CarteirinhaError):
    """Entrada mal formada: nombre vacío, fichero no válido, etc."""


class FieldRuleError(CarteirinhaError):
    """Intento de romper una regla de campos (se rechaza antes de mutar)"""


class ResourceLoadError(CarteirinhaError):
    """No se pudo cargar o decodificar una imagen"""


class MissingBackImageError(ResourceLoadError):
    def __init__(self, message: str = "Template has no back image"):
        super().__init__(message)


class StorageError(CarteirinhaError):
    """Fallo del almacenamiento de plantillas o de imágenes"""
