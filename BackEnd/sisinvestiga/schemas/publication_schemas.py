from datetime import datetime
from typing import ClassVar, List, Optional

from pydantic import Field, field_validator

from sisinvestiga.enums.enums import PublicationStatus, PublicationType
from sisinvestiga.schemas.common_schemas import CamelModel, PatchSchema, UnknownFieldPolicy
from sisinvestiga.schemas.project_schemas import ProjectSummary
from sisinvestiga.schemas.user_schemas import UserSummary, split_responsibilities


class PublicationCreate(CamelModel):
    """
    Esquema para creación de publicación.

    No admite `autores`: se derivan siempre del equipo del proyecto.
    """
    titulo: str = Field(..., min_length=1, max_length=255)
    fecha: datetime
    proyecto: int
    revista: str = Field(..., min_length=1, max_length=255)
    resumen: Optional[str] = None
    palabras_clave: List[str] = Field(default_factory=list)
    tipo_publicacion: PublicationType
    estado: PublicationStatus = PublicationStatus.borrador
    anexos: List[str] = Field(default_factory=list)
    idioma: str = Field(..., min_length=1, max_length=50)

    @field_validator("palabras_clave", mode="before")
    @classmethod
    def split_keywords(cls, v):
        return split_responsibilities(v)


class PublicationUpdate(PatchSchema):
    """
    Campos modificables de una publicación.

    A diferencia de los proyectos, cualquier campo no listado invalida la
    actualización completa.
    """
    on_unknown_field: ClassVar[UnknownFieldPolicy] = UnknownFieldPolicy.reject

    titulo: Optional[str] = Field(None, min_length=1, max_length=255)
    fecha: Optional[datetime] = None
    proyecto: Optional[int] = None
    revista: Optional[str] = Field(None, min_length=1, max_length=255)
    resumen: Optional[str] = None
    palabras_clave: Optional[List[str]] = None
    tipo_publicacion: Optional[PublicationType] = None
    estado: Optional[PublicationStatus] = None
    anexos: Optional[List[str]] = None
    idioma: Optional[str] = Field(None, min_length=1, max_length=50)
    autores: Optional[List[int]] = None

    @field_validator("palabras_clave", mode="before")
    @classmethod
    def split_keywords(cls, v):
        return split_responsibilities(v)


class PublicationOut(CamelModel):
    id: int
    titulo: str
    fecha: datetime
    project: ProjectSummary = Field(serialization_alias="proyecto")
    revista: str
    resumen: Optional[str] = None
    palabras_clave: List[str] = []
    tipo_publicacion: PublicationType
    estado: PublicationStatus
    anexos: List[str] = []
    idioma: str
    autores: List[UserSummary] = []
    is_deleted: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PublicationEnvelope(CamelModel):
    message: Optional[str] = None
    publicacion: PublicationOut


class UserPublicationsResponse(CamelModel):
    """Publicaciones del usuario junto con los catálogos para filtros del cliente"""
    total: int
    page: int
    limit: int
    data: List[PublicationOut]
    tipos_publicacion: List[str]
    estados_publicacion: List[str]
