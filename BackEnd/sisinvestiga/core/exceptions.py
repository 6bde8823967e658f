"""
Taxonomía de errores del dominio.

Los servicios lanzan estas excepciones y `main.py` las traduce a respuestas
JSON (`{"error": ...}` o `{"error": ..., "errors": [...]}`) con el código
HTTP correspondiente. Nunca se incluyen trazas internas en la respuesta.
"""

from typing import List, Optional


class AppError(Exception):
    """Error base de la aplicación"""

    status_code = 500

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = list(errors) if errors else []

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class BadRequestError(AppError):
    """Entrada mal formada, incompleta o inconsistente"""
    status_code = 400


class UnauthorizedError(AppError):
    """Credenciales o sesión ausentes o inválidas"""
    status_code = 401


class ForbiddenError(AppError):
    """Autenticado pero sin permiso (rol o pertenencia)"""
    status_code = 403


class NotFoundError(AppError):
    """Entidad inexistente o eliminada"""
    status_code = 404


class ConflictError(AppError):
    """Violación de unicidad"""
    status_code = 409


class TooManyRequestsError(AppError):
    """Demasiados intentos de inicio de sesión"""
    status_code = 429
