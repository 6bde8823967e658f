from typing import ClassVar, Optional

from pydantic import Field, field_validator

from sisinvestiga.schemas.common_schemas import CamelModel, PatchSchema, UnknownFieldPolicy


class RoleCreate(CamelModel):
    """Esquema para creación de rol"""
    name: str = Field(..., min_length=2, max_length=50)
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def name_must_be_clean(cls, v):
        return v.strip()


class RoleUpdate(PatchSchema):
    """Esquema para actualización de rol"""
    on_unknown_field: ClassVar[UnknownFieldPolicy] = UnknownFieldPolicy.reject

    name: Optional[str] = Field(None, min_length=2, max_length=50)
    description: Optional[str] = None


class RoleOut(CamelModel):
    id: int
    name: str
    description: Optional[str] = None


class RoleEnvelope(CamelModel):
    message: Optional[str] = None
    rol: RoleOut
