from datetime import datetime
from typing import ClassVar, List, Optional

from pydantic import AliasChoices, Field

from sisinvestiga.enums.enums import RequestStatus, RequestType
from sisinvestiga.schemas.common_schemas import CamelModel, PatchSchema, UnknownFieldPolicy
from sisinvestiga.schemas.project_schemas import ProjectSummary
from sisinvestiga.schemas.user_schemas import UserSummary


class RequestCreate(CamelModel):
    """Esquema para creación de solicitud"""
    tipo_solicitud: RequestType
    descripcion: str = Field(..., min_length=1)
    proyecto: Optional[int] = None


class RequestUpdate(PatchSchema):
    """
    Cambios sobre una solicitud: estado (solo administradores) y/o un
    comentario nuevo que se agrega al hilo.
    """
    on_unknown_field: ClassVar[UnknownFieldPolicy] = UnknownFieldPolicy.reject

    estado: Optional[RequestStatus] = None
    comentario: Optional[str] = Field(
        None,
        min_length=1,
        validation_alias=AliasChoices("comentario", "comentarios"),
    )

    @classmethod
    def accepted_keys(cls):
        return super().accepted_keys() | {"comentarios"}


class CommentOut(CamelModel):
    usuario: UserSummary
    comentario: str
    fecha: datetime


class RequestOut(CamelModel):
    id: int
    solicitante: UserSummary
    tipo_solicitud: RequestType
    descripcion: str
    project: Optional[ProjectSummary] = Field(None, serialization_alias="proyecto")
    estado: RequestStatus
    comentarios: List[CommentOut] = []
    revisado_por: Optional[UserSummary] = None
    fecha_resolucion: Optional[datetime] = None
    is_deleted: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RequestEnvelope(CamelModel):
    message: Optional[str] = None
    solicitud: RequestOut
