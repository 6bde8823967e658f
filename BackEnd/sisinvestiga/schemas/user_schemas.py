from datetime import datetime
from typing import ClassVar, List, Optional, Union

from pydantic import AliasChoices, EmailStr, Field, field_validator

from sisinvestiga.schemas.common_schemas import CamelModel, PatchSchema, UnknownFieldPolicy


def split_responsibilities(value):
    """Acepta lista o texto separado por comas y retorna una lista limpia."""
    if value is None:
        return value
    if isinstance(value, str):
        value = value.split(",")
    return [item.strip() for item in value if item and str(item).strip()]


# ========================================
# 📝 ESQUEMAS BASE DE USUARIO
# ========================================

class UserCreate(CamelModel):
    """Esquema para registro de usuario"""
    nombre: str = Field(..., min_length=1, max_length=100)
    apellido: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(
        ...,
        max_length=128,
        description="Min 8 caracteres con mayúscula, minúscula, número y carácter especial"
    )
    especializacion: Optional[str] = Field(None, max_length=200)
    responsabilidades: Union[List[str], str] = Field(default_factory=list)
    foto_perfil: Optional[str] = Field(None, max_length=500)
    role_name: Optional[str] = Field(None, description="Solo lo tiene en cuenta un administrador autenticado")

    @field_validator("email")
    @classmethod
    def email_must_be_lowercase(cls, v):
        return v.lower().strip()

    @field_validator("nombre", "apellido")
    @classmethod
    def name_must_be_clean(cls, v):
        return v.strip()

    @field_validator("responsabilidades", mode="before")
    @classmethod
    def normalize_responsibilities(cls, v):
        return split_responsibilities(v)


class UserSelfUpdate(PatchSchema):
    """Campos que un usuario puede cambiar de su propio perfil"""
    on_unknown_field: ClassVar[UnknownFieldPolicy] = UnknownFieldPolicy.ignore

    nombre: Optional[str] = Field(None, min_length=1, max_length=100)
    apellido: Optional[str] = Field(None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    especializacion: Optional[str] = Field(None, max_length=200)
    responsabilidades: Optional[Union[List[str], str]] = None
    foto_perfil: Optional[str] = Field(None, max_length=500)
    password: Optional[str] = Field(None, max_length=128)
    current_password: Optional[str] = None

    @field_validator("email")
    @classmethod
    def email_must_be_lowercase(cls, v):
        return v.lower().strip() if v else v

    @field_validator("responsabilidades", mode="before")
    @classmethod
    def normalize_responsibilities(cls, v):
        return split_responsibilities(v)


class UserAdminUpdate(UserSelfUpdate):
    """Actualización de usuario por un administrador (puede cambiar el rol)"""
    role_name: Optional[str] = None


# ========================================
# ESQUEMAS DE RESPUESTA
# ========================================

class UserSummary(CamelModel):
    """Referencia compacta a un usuario (investigadores, autores, evaluador)"""
    id: int
    nombre: str
    apellido: str
    email: str
    especializacion: Optional[str] = None


class UserOut(CamelModel):
    """Información completa del usuario (sin datos de credenciales)"""
    id: int
    nombre: str
    apellido: str
    email: str
    especializacion: Optional[str] = None
    responsabilidades: List[str] = []
    foto_perfil: Optional[str] = None
    role: str = Field(validation_alias=AliasChoices("role_name", "role"))
    is_active: bool
    is_verified: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class UserEnvelope(CamelModel):
    message: Optional[str] = None
    usuario: UserOut
