import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from sisinvestiga.core.config import settings
from sisinvestiga.core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    TooManyRequestsError,
    UnauthorizedError,
)
from sisinvestiga.db.database import get_db
from sisinvestiga.enums.enums import RoleName
from sisinvestiga.models.models import LoginAttempt, Role, User
from sisinvestiga.schemas.user_schemas import UserCreate
from sisinvestiga.services import security_service
from sisinvestiga.services.email_service import EmailService
from sisinvestiga.services.session_service import SessionService
from sisinvestiga.services.utils import db_transaction

# ========================================
# 🔧 CONFIGURACIÓN INICIAL
# ========================================

# Esquema OAuth2 (auto_error=False: el mensaje 401 lo decide get_current_session)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login", auto_error=False)

logger = logging.getLogger(__name__)

AUTH_REQUIRED_MESSAGE = "Por favor, autentíquese."
INVALID_CREDENTIALS_MESSAGE = "Credenciales incorrectas"
DISABLED_ACCOUNT_MESSAGE = "La cuenta está deshabilitada. Contacte al administrador."
UNVERIFIED_ACCOUNT_MESSAGE = "Debes verificar tu correo electrónico antes de iniciar sesión"
INVALID_VERIFICATION_MESSAGE = "El token de verificación es inválido o ha expirado"
INVALID_RESET_MESSAGE = "El token de recuperación es inválido o ha expirado"
EMAIL_TAKEN_MESSAGE = "El email colocado ya existe."


@dataclass
class AuthContext:
    """Usuario autenticado y sesión (jti) con la que se identificó"""
    user: User
    jti: str


# ========================================
#  SERVICIO DE AUTENTICACIÓN
# ========================================

class AuthService:
    """
    Gestor de identidad y credenciales.

    Proporciona:
    - Registro y verificación de email
    - Login con límite de intentos y sesiones revocables
    - Cierre de una sesión o de todas
    - Recuperación de contraseña con token firmado de un solo uso
    """

    PASSWORD_MIN_LENGTH = 8
    SPECIAL_CHARS = "!@#$%^&*()_+-=[]{}|;:,.<>?/~`'\"\\"

    @staticmethod
    def validate_password_strength(password: str) -> None:
        """
        Valida que la contraseña cumpla con los requisitos de seguridad

        Raises:
            BadRequestError: Si la contraseña no cumple los requisitos
        """
        problems = []
        if len(password) < AuthService.PASSWORD_MIN_LENGTH:
            problems.append(
                f"La contraseña debe tener al menos {AuthService.PASSWORD_MIN_LENGTH} caracteres"
            )
        if not any(c.isupper() for c in password):
            problems.append("La contraseña debe contener al menos una letra mayúscula")
        if not any(c.islower() for c in password):
            problems.append("La contraseña debe contener al menos una letra minúscula")
        if not any(c.isdigit() for c in password):
            problems.append("La contraseña debe contener al menos un número")
        if not any(c in AuthService.SPECIAL_CHARS for c in password):
            problems.append("La contraseña debe contener al menos un carácter especial")

        if problems:
            raise BadRequestError("La contraseña no cumple los requisitos de seguridad", errors=problems)

    @staticmethod
    def get_role(role_name: str, db: Session) -> Role:
        role = db.query(Role).filter(Role.name == role_name).first()
        if not role:
            raise BadRequestError(f"Rol no válido: {role_name}")
        return role

    # ========================================
    #  REGISTRO Y VERIFICACIÓN
    # ========================================

    @staticmethod
    def register(
        user_data: UserCreate,
        db: Session,
        email_service: Optional[EmailService] = None,
        actor: Optional[User] = None
    ) -> User:
        """
        Registra un nuevo usuario (no verificado y habilitado).

        Args:
            user_data: Datos del usuario a registrar
            db: Sesión de base de datos
            email_service: Servicio para enviar el enlace de verificación
            actor: Administrador autenticado que registra la cuenta, si lo hay

        Returns:
            User: Usuario creado (rol Investigador salvo que un administrador
                indique otro)

        Raises:
            ConflictError: Si el email ya está registrado
            BadRequestError: Si faltan responsabilidades o la contraseña es débil
            ForbiddenError: Si alguien que no es administrador pide otro rol
        """
        if not user_data.responsabilidades:
            raise BadRequestError("Debe indicar al menos una responsabilidad")

        AuthService.validate_password_strength(user_data.password)

        if db.query(User).filter(User.email == user_data.email).first():
            raise ConflictError(EMAIL_TAKEN_MESSAGE)

        role_name = RoleName.investigador.value
        if user_data.role_name and user_data.role_name != role_name:
            if actor is None or not actor.is_admin:
                raise ForbiddenError("Solo un administrador puede asignar roles")
            role_name = user_data.role_name
        role = AuthService.get_role(role_name, db)
        user = User(
            nombre=user_data.nombre,
            apellido=user_data.apellido,
            email=user_data.email,
            password_hash=security_service.hash_password(user_data.password),
            especializacion=user_data.especializacion,
            responsabilidades=list(user_data.responsabilidades),
            foto_perfil=user_data.foto_perfil,
            role_id=role.id,
            is_active=True,
            is_verified=False,
        )
        with db_transaction(db, conflict_message=EMAIL_TAKEN_MESSAGE):
            db.add(user)
            db.flush()
            AuthService._assign_verification_token(user)
        db.refresh(user)

        logger.info(f"Usuario registrado: {user.email}")
        if email_service:
            email_service.send_verification_email(user.email, user.full_name, user.verification_token)
        return user

    @staticmethod
    def _assign_verification_token(user: User) -> str:
        user.verification_token = secrets.token_urlsafe(32)
        user.verification_token_expires = datetime.utcnow() + timedelta(
            hours=settings.VERIFICATION_TOKEN_EXPIRE_HOURS
        )
        return user.verification_token

    @staticmethod
    def issue_verification_token(
        email: str,
        db: Session,
        email_service: Optional[EmailService] = None
    ) -> Optional[str]:
        """
        Emite un nuevo token de verificación para una cuenta no verificada.

        No revela si el email existe: retorna None tanto para emails
        desconocidos como para cuentas ya verificadas.
        """
        user = db.query(User).filter(User.email == email).first()
        if not user or user.is_verified:
            return None

        with db_transaction(db):
            token = AuthService._assign_verification_token(user)

        if email_service:
            email_service.send_verification_email(user.email, user.full_name, token)
        return token

    @staticmethod
    def verify_email(token: str, db: Session) -> Tuple[bool, User]:
        """
        Verifica la cuenta asociada al token.

        El token se conserva tras verificar para que repetir la verificación
        sea idempotente.

        Returns:
            Tuple[bool, User]: (ya_estaba_verificada, usuario)

        Raises:
            BadRequestError: Token desconocido o expirado
        """
        if not token:
            raise BadRequestError(INVALID_VERIFICATION_MESSAGE)

        user = db.query(User).filter(User.verification_token == token).first()
        if not user:
            raise BadRequestError(INVALID_VERIFICATION_MESSAGE)

        if user.is_verified:
            return True, user

        if not user.verification_token_expires or user.verification_token_expires < datetime.utcnow():
            raise BadRequestError(INVALID_VERIFICATION_MESSAGE)

        with db_transaction(db):
            user.is_verified = True
        db.refresh(user)
        logger.info(f"Cuenta verificada: {user.email}")
        return False, user

    # ========================================
    #  LOGIN / LOGOUT
    # ========================================

    @staticmethod
    def _check_login_throttle(email: str, db: Session) -> None:
        """
        Verifica si el email superó el límite de intentos fallidos

        Raises:
            TooManyRequestsError: Si hay demasiados intentos recientes
        """
        window = timedelta(minutes=settings.LOCKOUT_MINUTES)
        cutoff_time = datetime.utcnow() - window

        failed_attempts = (
            db.query(LoginAttempt)
            .filter(
                LoginAttempt.email == email,
                LoginAttempt.success.is_(False),
                LoginAttempt.attempted_at > cutoff_time
            )
            .count()
        )

        if failed_attempts >= settings.MAX_LOGIN_ATTEMPTS:
            logger.warning(f"Login throttled for {email}: {failed_attempts} failed attempts")
            raise TooManyRequestsError(
                "Demasiados intentos fallidos. "
                f"Intente nuevamente en {settings.LOCKOUT_MINUTES} minutos."
            )

    @staticmethod
    def _log_login_attempt(
        email: str,
        success: bool,
        db: Session,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> None:
        """Registra intento de login para el control de intentos"""
        db.add(LoginAttempt(
            email=email,
            success=success,
            ip_address=ip_address,
            user_agent=(user_agent or "")[:255] or None,
            attempted_at=datetime.utcnow()
        ))

    @staticmethod
    def _reject_login(email: str, db: Session, ip_address: Optional[str], user_agent: Optional[str]) -> None:
        with db_transaction(db):
            AuthService._log_login_attempt(email, False, db, ip_address, user_agent)
        raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)

    @staticmethod
    def login(
        email: str,
        password: str,
        db: Session,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Tuple[User, str]:
        """
        Autentica al usuario y abre una sesión.

        Returns:
            Tuple[User, str]: Usuario y token de sesión

        Raises:
            TooManyRequestsError: Demasiados intentos fallidos recientes
            UnauthorizedError: Credenciales incorrectas
            ForbiddenError: Cuenta deshabilitada o no verificada
        """
        email = email.lower().strip()
        AuthService._check_login_throttle(email, db)

        user = db.query(User).filter(User.email == email).first()
        if not user or not security_service.verify_password(password, user.password_hash):
            AuthService._reject_login(email, db, ip_address, user_agent)

        if not user.is_active:
            raise ForbiddenError(DISABLED_ACCOUNT_MESSAGE)
        if not user.is_verified:
            raise ForbiddenError(UNVERIFIED_ACCOUNT_MESSAGE)

        with db_transaction(db):
            token = SessionService.open_session(user, db, ip_address, user_agent)
            user.last_login = datetime.utcnow()
            AuthService._log_login_attempt(email, True, db, ip_address, user_agent)
        db.refresh(user)

        logger.info(f"Login exitoso: {user.email}")
        return user, token

    @staticmethod
    def logout(user: User, jti: str, db: Session) -> int:
        """Cierra exactamente la sesión identificada por `jti`."""
        with db_transaction(db):
            count = SessionService.revoke(jti, user.id, db)
        return count

    @staticmethod
    def logout_all(user: User, db: Session) -> int:
        """Cierra todas las sesiones del usuario."""
        with db_transaction(db):
            count = SessionService.revoke_all(user.id, db)
        return count

    # ========================================
    #  RECUPERACIÓN DE CONTRASEÑA
    # ========================================

    @staticmethod
    def request_password_reset(
        email: str,
        db: Session,
        email_service: Optional[EmailService] = None
    ) -> Optional[str]:
        """
        Genera y envía un token de recuperación.

        Para no revelar qué emails están registrados, el llamador responde
        igual exista o no la cuenta; aquí se retorna None si no existe o
        está deshabilitada.

        Returns:
            Optional[str]: Token emitido, o None
        """
        user = db.query(User).filter(User.email == email.lower().strip()).first()
        if not user:
            logger.info("Password reset requested for unknown email")
            return None
        if not user.is_active:
            logger.warning(f"Password reset requested for disabled user: {user.email}")
            return None

        token = security_service.create_reset_token(user.id)
        with db_transaction(db):
            user.reset_password_token = token
            user.reset_password_expires = datetime.utcnow() + timedelta(
                minutes=settings.RESET_TOKEN_EXPIRE_MINUTES
            )

        if email_service:
            email_service.send_password_reset_email(user.email, user.full_name, token)
        return token

    @staticmethod
    def reset_password(token: str, new_password: str, db: Session) -> User:
        """
        Cambia la contraseña con un token de recuperación.

        Valida firma y tipo del JWT, expiración y coincidencia con el token
        almacenado antes de modificar nada. Tras el cambio el token queda
        invalidado y se cierran todas las sesiones.

        Raises:
            BadRequestError: Token inválido, expirado, ya usado o contraseña débil
        """
        try:
            payload = security_service.decode_token(token, expected_type=security_service.RESET_TOKEN_TYPE)
        except UnauthorizedError:
            raise BadRequestError(INVALID_RESET_MESSAGE)

        user = db.get(User, int(payload["sub"]))
        if (
            not user
            or not user.reset_password_token
            or not secrets.compare_digest(user.reset_password_token, token)
            or not user.reset_password_expires
            or user.reset_password_expires < datetime.utcnow()
        ):
            raise BadRequestError(INVALID_RESET_MESSAGE)

        AuthService.validate_password_strength(new_password)

        with db_transaction(db):
            user.password_hash = security_service.hash_password(new_password)
            user.reset_password_token = None
            user.reset_password_expires = None
            SessionService.revoke_all(user.id, db)
        db.refresh(user)

        logger.info(f"Contraseña restablecida: {user.email}")
        return user

    # ========================================
    #  RESOLUCIÓN DEL USUARIO DESDE EL TOKEN
    # ========================================

    @staticmethod
    def authenticate_token(token: Optional[str], db: Session) -> AuthContext:
        """
        Resuelve el usuario de un token de sesión.

        Raises:
            UnauthorizedError: Token ausente, inválido o sesión revocada
            ForbiddenError: Cuenta deshabilitada
        """
        if not token:
            raise UnauthorizedError(AUTH_REQUIRED_MESSAGE)

        try:
            payload = security_service.decode_token(token)
        except UnauthorizedError:
            raise UnauthorizedError(AUTH_REQUIRED_MESSAGE)

        jti = payload.get("jti")
        session = SessionService.find_active(jti, db) if jti else None
        if not session or str(session.user_id) != str(payload["sub"]):
            raise UnauthorizedError(AUTH_REQUIRED_MESSAGE)

        user = session.user
        if not user.is_active:
            raise ForbiddenError(DISABLED_ACCOUNT_MESSAGE)
        return AuthContext(user=user, jti=jti)


# ========================================
# DEPENDENCIAS DE SEGURIDAD
# ========================================

def get_current_session(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> AuthContext:
    """Dependencia: usuario autenticado y jti de su sesión"""
    return AuthService.authenticate_token(token, db)


def get_current_user(context: AuthContext = Depends(get_current_session)) -> User:
    """Dependencia: usuario autenticado"""
    return context.user


def get_optional_user(
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Dependencia: usuario autenticado si la petición trae token, o None"""
    if not token:
        return None
    return AuthService.authenticate_token(token, db).user


def get_client_info(request: Request) -> Tuple[str, str]:
    """
    Extrae información del cliente desde la request

    Returns:
        tuple[str, str]: Dirección IP y User-Agent
    """
    ip_address = request.client.host if request.client else "unknown"
    user_agent = request.headers.get("user-agent", "unknown")
    return ip_address, user_agent
