from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from sisinvestiga.schemas.common_schemas import CamelModel
from sisinvestiga.schemas.user_schemas import UserOut


# ========================================
# 🔐 LOGIN / SESIONES
# ========================================

class LoginRequest(BaseModel):
    """Credenciales de inicio de sesión"""
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def email_must_be_lowercase(cls, v):
        return v.lower().strip()


class LoginResponse(CamelModel):
    """Respuesta de login: usuario y token de sesión"""
    message: str
    usuario: UserOut
    token: str
    token_type: str = "bearer"


class LogoutResponse(CamelModel):
    message: str
    revoked_sessions: int


# ========================================
# ✉️ VERIFICACIÓN DE EMAIL
# ========================================

class EmailRequest(BaseModel):
    """Solicitud que solo necesita un email (reenvío de verificación, olvido de contraseña)"""
    email: EmailStr

    @field_validator("email")
    @classmethod
    def email_must_be_lowercase(cls, v):
        return v.lower().strip()


class VerificationResponse(CamelModel):
    message: str
    already_verified: bool
    usuario: Optional[UserOut] = None


# ========================================
# 🔑 RECUPERACIÓN DE CONTRASEÑA
# ========================================

class ResetPasswordRequest(BaseModel):
    """Nueva contraseña para el token de recuperación"""
    password: str = Field(..., max_length=128)
