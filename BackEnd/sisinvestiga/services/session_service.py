import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session
from user_agents import parse

from sisinvestiga.core.config import settings
from sisinvestiga.models.models import ActiveSession, User
from sisinvestiga.services import security_service

logger = logging.getLogger(__name__)


class SessionService:
    """Servicio para gestionar el conjunto de sesiones activas de cada usuario"""

    @staticmethod
    def extract_device_info(user_agent: Optional[str]) -> str:
        """
        Extrae información legible del User-Agent

        Args:
            user_agent: String del User-Agent

        Returns:
            String formateado como "Chrome 120 on Windows 10"
        """
        if not user_agent or user_agent == "unknown":
            return "Dispositivo desconocido"

        ua = parse(user_agent)
        browser = f"{ua.browser.family} {ua.browser.version_string.split('.')[0]}".strip()
        os_name = f"{ua.os.family} {ua.os.version_string}" if ua.os.version_string else ua.os.family

        if ua.is_mobile:
            return f"{browser} on {os_name} (Mobile)"
        elif ua.is_tablet:
            return f"{browser} on {os_name} (Tablet)"
        return f"{browser} on {os_name}"

    @staticmethod
    def open_session(
        user: User,
        db: Session,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> str:
        """
        Emite un token de sesión y lo registra como sesión activa.

        La fila se agrega a la sesión de BD sin confirmar; el llamador
        confirma junto con el resto del login.

        Returns:
            str: JWT con el jti de la sesión
        """
        jti = security_service.new_jti()
        expires_at = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        token = security_service.create_access_token(
            {"sub": str(user.id), "role": user.role_name, "email": user.email},
            jti=jti,
        )
        db.add(ActiveSession(
            user_id=user.id,
            token_jti=jti,
            device=SessionService.extract_device_info(user_agent),
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=datetime.utcnow(),
            expires_at=expires_at,
        ))
        return token

    @staticmethod
    def find_active(jti: str, db: Session) -> Optional[ActiveSession]:
        return db.query(ActiveSession).filter(
            ActiveSession.token_jti == jti,
            ActiveSession.expires_at > datetime.utcnow()
        ).first()

    @staticmethod
    def revoke(jti: str, user_id: int, db: Session) -> int:
        """
        Elimina exactamente la sesión identificada por `jti`.

        Returns:
            int: Número de sesiones eliminadas (0 o 1)
        """
        return db.query(ActiveSession).filter(
            ActiveSession.token_jti == jti,
            ActiveSession.user_id == user_id
        ).delete(synchronize_session=False)

    @staticmethod
    def revoke_all(user_id: int, db: Session) -> int:
        """
        Elimina todas las sesiones del usuario.

        Returns:
            int: Número de sesiones eliminadas
        """
        count = db.query(ActiveSession).filter(
            ActiveSession.user_id == user_id
        ).delete(synchronize_session=False)
        logger.info(f"{count} sesiones revocadas para el usuario {user_id}")
        return count
