"""
Endpoints de usuarios: registro, verificación de email, login/logout,
recuperación de contraseña, perfil propio y administración de cuentas.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from sisinvestiga.core.policy import AuthorizationPolicy, get_policy
from sisinvestiga.db.database import get_db
from sisinvestiga.models.models import User
from sisinvestiga.schemas.auth_schemas import (
    EmailRequest,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    ResetPasswordRequest,
    VerificationResponse,
)
from sisinvestiga.schemas.common_schemas import MessageResponse, Page
from sisinvestiga.schemas.user_schemas import UserCreate, UserEnvelope, UserOut
from sisinvestiga.services.auth_service import (
    AuthContext,
    AuthService,
    get_client_info,
    get_current_session,
    get_current_user,
    get_optional_user,
)
from sisinvestiga.services.email_service import EmailService, get_email_service
from sisinvestiga.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = (
    "Si el email está registrado, recibirás un enlace para restablecer tu contraseña"
)
VERIFICATION_RESENT_MESSAGE = (
    "Si la cuenta existe y no está verificada, recibirás un nuevo enlace de verificación"
)


# ========================================
# 📝 REGISTRO Y VERIFICACIÓN
# ========================================

@router.post("/register", response_model=UserEnvelope, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
    actor: Optional[User] = Depends(get_optional_user),
):
    """
    Registrar un nuevo usuario.

    La cuenta nace habilitada pero sin verificar; se envía un enlace de
    verificación al email. Un administrador autenticado puede indicar
    `roleName`.
    """
    user = AuthService.register(user_data, db, email_service, actor=actor)
    return {
        "message": "Usuario registrado. Revisa tu correo para verificar la cuenta.",
        "usuario": user,
    }


@router.get("/verify-email/{token}", response_model=VerificationResponse)
def verify_email(token: str, db: Session = Depends(get_db)):
    """Verificar el email. Repetir la verificación no es un error."""
    already_verified, user = AuthService.verify_email(token, db)
    message = "La cuenta ya estaba verificada" if already_verified else "Cuenta verificada correctamente"
    return {"message": message, "already_verified": already_verified, "usuario": user}


@router.post("/resend-verification", response_model=MessageResponse)
def resend_verification(
    data: EmailRequest,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    AuthService.issue_verification_token(data.email, db, email_service)
    return {"message": VERIFICATION_RESENT_MESSAGE}


# ========================================
# 🔐 LOGIN / LOGOUT
# ========================================

@router.post("/login", response_model=LoginResponse)
def login(
    credentials: LoginRequest,
    db: Session = Depends(get_db),
    client_info: Tuple[str, str] = Depends(get_client_info),
):
    """
    Iniciar sesión.

    Cada login abre una sesión independiente; el token identifica esa sesión
    y deja de valer al cerrarla.
    """
    ip_address, user_agent = client_info
    user, token = AuthService.login(credentials.email, credentials.password, db, ip_address, user_agent)
    return {"message": "Inicio de sesión exitoso", "usuario": user, "token": token}


@router.post("/logout", response_model=LogoutResponse)
def logout(context: AuthContext = Depends(get_current_session), db: Session = Depends(get_db)):
    """Cerrar la sesión del token actual."""
    revoked = AuthService.logout(context.user, context.jti, db)
    return {"message": "Sesión cerrada correctamente", "revoked_sessions": revoked}


@router.post("/logout-all", response_model=LogoutResponse)
def logout_all(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Cerrar todas las sesiones del usuario, incluida la actual."""
    revoked = AuthService.logout_all(current_user, db)
    return {"message": "Todas las sesiones han sido cerradas", "revoked_sessions": revoked}


# ========================================
# 🔑 RECUPERACIÓN DE CONTRASEÑA
# ========================================

@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    data: EmailRequest,
    db: Session = Depends(get_db),
    email_service: EmailService = Depends(get_email_service),
):
    """
    Solicitar recuperación de contraseña.

    La respuesta es la misma exista o no la cuenta.
    """
    AuthService.request_password_reset(data.email, db, email_service)
    return {"message": RESET_REQUESTED_MESSAGE}


@router.post("/reset-password/{token}", response_model=MessageResponse)
def reset_password(token: str, data: ResetPasswordRequest, db: Session = Depends(get_db)):
    AuthService.reset_password(token, data.password, db)
    return {"message": "Contraseña restablecida correctamente. Inicia sesión de nuevo."}


# ========================================
# 👤 PERFIL PROPIO
# ========================================

@router.get("/me", response_model=UserEnvelope)
def get_me(current_user: User = Depends(get_current_user)):
    return {"usuario": current_user}


@router.put("/me", response_model=UserEnvelope)
def update_me(
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
):
    """
    Actualizar el perfil propio.

    Para cambiar la contraseña hay que enviar también `currentPassword`.
    """
    user = UserService(db, policy).update_self(current_user, payload)
    return {"message": "Perfil actualizado correctamente", "usuario": user}


# ========================================
# 👥 ADMINISTRACIÓN DE USUARIOS
# ========================================

@router.get("", response_model=Page[UserOut])
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
):
    return UserService(db, policy).list_users(current_user, page, limit, search)


@router.get("/{user_id}", response_model=UserEnvelope)
def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
):
    return {"usuario": UserService(db, policy).get_user(user_id, current_user)}


@router.put("/{user_id}", response_model=UserEnvelope)
def update_user(
    user_id: int,
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
):
    """Actualizar un usuario como administrador, incluido su rol (`roleName`)."""
    user = UserService(db, policy).update_user(user_id, current_user, payload)
    return {"message": "Usuario actualizado correctamente", "usuario": user}


@router.put("/{user_id}/disable", response_model=UserEnvelope)
def disable_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
):
    """Deshabilitar una cuenta; sus sesiones se cierran de inmediato."""
    user = UserService(db, policy).disable(user_id, current_user)
    return {"message": "Usuario deshabilitado correctamente", "usuario": user}


@router.put("/{user_id}/enable", response_model=UserEnvelope)
def enable_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
):
    user = UserService(db, policy).enable(user_id, current_user)
    return {"message": "Usuario habilitado correctamente", "usuario": user}
