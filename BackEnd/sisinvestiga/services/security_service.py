# sisinvestiga/services/security_service.py
import uuid
from datetime import datetime, timedelta
from typing import Optional
from jose import jwt, JWTError
from passlib.context import CryptContext
import logging

from sisinvestiga.core.config import settings
from sisinvestiga.core.exceptions import UnauthorizedError

logger = logging.getLogger(__name__)

# ========================================
#  CONFIGURACIÓN
# ========================================
ACCESS_TOKEN_TYPE = "access"
RESET_TOKEN_TYPE = "reset"

#  ÚNICA instancia de pwd_context en toda la aplicación
pwd_context = CryptContext(schemes=["bcrypt_sha256"], deprecated="auto")

# ========================================
#  FUNCIONES DE PASSWORD
# ========================================
def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verifica que la contraseña en texto plano coincida con el hash.

    Args:
        plain_password: Contraseña en texto plano
        hashed_password: Hash almacenado en la base de datos

    Returns:
        bool: True si la contraseña es correcta
    """
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error(f"Error verificando password: {e}")
        return False


def hash_password(password: str) -> str:
    """
    Genera un hash bcrypt_sha256 de la contraseña.

    Args:
        password: Contraseña en texto plano

    Returns:
        str: Hash de la contraseña
    """
    return pwd_context.hash(password)

# ========================================
#  FUNCIONES DE JWT
# ========================================
def new_jti() -> str:
    return uuid.uuid4().hex


def create_access_token(data: dict, jti: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    Crea el JWT de una sesión.

    Args:
        data: Datos a incluir en el token (sub, role, email)
        jti: Identificador de la sesión registrada en active_sessions
        expires_delta: Tiempo de expiración personalizado (opcional)

    Returns:
        str: Token JWT codificado
    """
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": ACCESS_TOKEN_TYPE, "jti": jti})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_reset_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """
    Crea el JWT de recuperación de contraseña.

    El token también se guarda en el usuario; solo es válido si la firma,
    la expiración y la copia almacenada coinciden.
    """
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(user_id), "exp": expire, "type": RESET_TOKEN_TYPE, "jti": new_jti()}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> dict:
    """
    Decodifica y valida un JWT.

    Args:
        token: Token JWT a decodificar
        expected_type: Tipo esperado en el claim "type"

    Returns:
        dict: Payload del token

    Raises:
        UnauthorizedError: Si el token es inválido, expirado o de otro tipo
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"Token decode error: {e}")
        raise UnauthorizedError("Token inválido o expirado")

    if payload.get("type") != expected_type or "sub" not in payload:
        raise UnauthorizedError("Token inválido o expirado")
    return payload
