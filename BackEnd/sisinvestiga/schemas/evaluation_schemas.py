from datetime import datetime
from typing import ClassVar, Optional

from pydantic import Field

from sisinvestiga.schemas.common_schemas import CamelModel, PatchSchema, UnknownFieldPolicy
from sisinvestiga.schemas.project_schemas import ProjectSummary
from sisinvestiga.schemas.user_schemas import UserSummary


class EvaluationCreate(CamelModel):
    """Puntuación de 0 a 100 y comentarios opcionales"""
    puntuacion: float = Field(..., ge=0, le=100)
    comentarios: Optional[str] = None


class EvaluationUpdate(PatchSchema):
    on_unknown_field: ClassVar[UnknownFieldPolicy] = UnknownFieldPolicy.ignore

    puntuacion: Optional[float] = Field(None, ge=0, le=100)
    comentarios: Optional[str] = None


class EvaluationOut(CamelModel):
    id: int
    project: ProjectSummary = Field(serialization_alias="proyecto")
    evaluator: UserSummary = Field(serialization_alias="evaluador")
    puntuacion: float
    comentarios: Optional[str] = None
    fecha_evaluacion: datetime
    is_deleted: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EvaluationEnvelope(CamelModel):
    message: Optional[str] = None
    evaluacion: EvaluationOut
