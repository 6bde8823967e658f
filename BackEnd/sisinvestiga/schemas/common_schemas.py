from enum import Enum
from typing import Any, ClassVar, Dict, Generic, Iterable, List, Optional, Set, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from sisinvestiga.core.exceptions import BadRequestError

T = TypeVar("T")


# ========================================
#  MODELO BASE
# ========================================
class CamelModel(BaseModel):
    """Modelo base: atributos en snake_case, JSON en camelCase (fechaInicio, isDeleted)"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def format_validation_errors(errors: Iterable[Dict[str, Any]]) -> List[str]:
    """Convierte errores de pydantic en mensajes legibles "campo: mensaje"."""
    messages = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location)
        message = error.get("msg", "Valor inválido")
        messages.append(f"{field}: {message}" if field else message)
    return messages


# ========================================
#  ESQUEMAS DE ACTUALIZACIÓN PARCIAL
# ========================================
class UnknownFieldPolicy(str, Enum):
    ignore = "ignore"
    reject = "reject"


class PatchSchema(CamelModel):
    """
    Esquema de actualización parcial con política explícita de campos desconocidos.

    Cada entidad declara qué campos acepta y qué hacer con los demás:

        - ignore: los campos no declarados se descartan en silencio
        - reject: cualquier campo no declarado invalida toda la actualización

    Un valor null equivale a no enviar el campo: nunca borra el valor
    guardado. Los clientes reenvían a menudo la entidad completa que
    recibieron, con nulls en los opcionales vacíos. Para vaciar un texto
    opcional (resumen, objetivos, imagen) se envía una cadena vacía.

    Uso:
        patch = ProjectUpdate.parse_patch(payload)
        for field, value in patch.changes().items():
            ...
    """
    on_unknown_field: ClassVar[UnknownFieldPolicy] = UnknownFieldPolicy.ignore
    unknown_field_message: ClassVar[str] = "Intento de actualización no válido."

    @classmethod
    def accepted_keys(cls) -> Set[str]:
        keys = set()
        for name, field in cls.model_fields.items():
            keys.add(name)
            if field.alias:
                keys.add(field.alias)
        return keys

    @classmethod
    def unknown_keys(cls, payload: Dict[str, Any]) -> List[str]:
        return sorted(set(payload) - cls.accepted_keys())

    @classmethod
    def parse_patch(cls, payload: Any):
        """
        Valida un diccionario de cambios aplicando la política de la entidad.

        Raises:
            BadRequestError: Si hay campos desconocidos bajo política reject,
                o si algún valor no supera la validación
        """
        if not isinstance(payload, dict):
            raise BadRequestError("El cuerpo de la actualización debe ser un objeto JSON")

        unknown = cls.unknown_keys(payload)
        if unknown and cls.on_unknown_field is UnknownFieldPolicy.reject:
            raise BadRequestError(
                cls.unknown_field_message,
                errors=[f"Campo no permitido: {key}" for key in unknown]
            )

        known = {key: value for key, value in payload.items() if key not in unknown}
        try:
            return cls.model_validate(known)
        except ValidationError as exc:
            raise BadRequestError(
                "Datos de actualización inválidos",
                errors=format_validation_errors(exc.errors())
            )

    def changes(self) -> Dict[str, Any]:
        """Campos enviados explícitamente y con valor (null se trata como ausente)."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }


# ========================================
#  ESQUEMAS DE RESPUESTA UNIFICADOS
# ========================================
class MessageResponse(BaseModel):
    """Respuesta con solo un mensaje"""
    message: str


class ErrorResponse(BaseModel):
    """Cuerpo de error: `{"error": ...}` o `{"error": ..., "errors": [...]}`"""
    error: str
    errors: Optional[List[str]] = None


class Page(CamelModel, Generic[T]):
    """Respuesta paginada de una colección"""
    total: int
    page: int
    limit: int
    data: List[T]
