from datetime import datetime
from typing import ClassVar, List, Optional

from pydantic import Field, computed_field, field_validator

from sisinvestiga.enums.enums import ProjectStatus
from sisinvestiga.schemas.common_schemas import CamelModel, PatchSchema, UnknownFieldPolicy
from sisinvestiga.schemas.user_schemas import UserSummary


def clean_project_name(value: str) -> str:
    """Nombre sin espacios en los extremos; uno en blanco no es válido."""
    value = value.strip()
    if not value:
        raise ValueError("El nombre del proyecto no puede estar vacío")
    return value


# ========================================
#  SUBESTRUCTURAS
# ========================================

class CronogramaIn(CamelModel):
    """Cronograma recibido; la obligatoriedad de las fechas la valida el servicio"""
    fecha_inicio: Optional[datetime] = None
    fecha_fin: Optional[datetime] = None


class MilestoneIn(CamelModel):
    """
    Hito recibido.

    Se acepta `entregable` (texto único) por compatibilidad con clientes
    antiguos; el servicio lo convierte en `entregables=[entregable]`.
    """
    nombre: Optional[str] = None
    fecha: Optional[datetime] = None
    entregables: Optional[List[str]] = None
    entregable: Optional[str] = None

    @field_validator("nombre")
    @classmethod
    def blank_name_is_missing(cls, v):
        if v is None:
            return v
        return v.strip() or None


class Cronograma(CamelModel):
    fecha_inicio: datetime
    fecha_fin: datetime


class MilestoneOut(CamelModel):
    nombre: str
    fecha: datetime
    entregables: List[str] = []


# ========================================
#  ENTRADA
# ========================================

class ProjectCreate(CamelModel):
    """Esquema para creación de proyecto"""
    nombre: str = Field(..., min_length=1, max_length=255)
    descripcion: str = Field(..., min_length=1)
    objetivos: Optional[str] = None
    presupuesto: float = Field(..., ge=0)
    cronograma: Optional[CronogramaIn] = None
    hitos: Optional[List[MilestoneIn]] = None
    investigadores: List[int] = Field(default_factory=list)
    recursos: List[str] = Field(default_factory=list)
    estado: ProjectStatus = ProjectStatus.planeado
    imagen: Optional[str] = Field(None, max_length=500)

    @field_validator("nombre")
    @classmethod
    def name_must_be_clean(cls, v):
        return clean_project_name(v)


class ProjectUpdate(PatchSchema):
    """
    Campos modificables de un proyecto.

    Los campos no listados se ignoran en silencio: un cliente puede enviar
    el proyecto completo que recibió y solo se copian los permitidos.
    """
    on_unknown_field: ClassVar[UnknownFieldPolicy] = UnknownFieldPolicy.ignore

    nombre: Optional[str] = Field(None, min_length=1, max_length=255)
    descripcion: Optional[str] = Field(None, min_length=1)
    objetivos: Optional[str] = None
    presupuesto: Optional[float] = Field(None, ge=0)
    cronograma: Optional[CronogramaIn] = None
    hitos: Optional[List[MilestoneIn]] = None
    investigadores: Optional[List[int]] = None
    recursos: Optional[List[str]] = None
    estado: Optional[ProjectStatus] = None
    imagen: Optional[str] = Field(None, max_length=500)

    @field_validator("nombre")
    @classmethod
    def name_must_be_clean(cls, v):
        return clean_project_name(v) if v is not None else v


# ========================================
#  SALIDA
# ========================================

class ProjectSummary(CamelModel):
    id: int
    nombre: str


class ProjectOut(CamelModel):
    """Proyecto con investigadores e hitos"""
    id: int
    nombre: str
    descripcion: str
    objetivos: Optional[str] = None
    presupuesto: float
    fecha_inicio: datetime = Field(exclude=True)
    fecha_fin: datetime = Field(exclude=True)
    investigadores: List[UserSummary] = []
    hitos: List[MilestoneOut] = []
    recursos: List[str] = []
    estado: ProjectStatus
    imagen: Optional[str] = None
    is_evaluated: bool
    is_deleted: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def cronograma(self) -> Cronograma:
        return Cronograma(fecha_inicio=self.fecha_inicio, fecha_fin=self.fecha_fin)


class ProjectEnvelope(CamelModel):
    message: Optional[str] = None
    proyecto: ProjectOut
