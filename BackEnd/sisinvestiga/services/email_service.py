"""
Servicio de Email con Resend
sisinvestiga/services/email_service.py
"""
import resend
import logging
from typing import Optional

from sisinvestiga.core.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Servicio para envío de emails con Resend"""

    def __init__(self, api_key: Optional[str], from_email: str, frontend_url: str):
        """
        Inicializa el servicio de email

        Args:
            api_key: API key de Resend (sin clave no se envía nada)
            from_email: Email verificado desde el cual enviar
            frontend_url: URL base del frontend para los enlaces
        """
        self.api_key = api_key
        self.from_email = from_email
        self.frontend_url = frontend_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str
    ) -> Optional[dict]:
        """
        Envía un email usando Resend

        Un fallo de entrega no interrumpe la operación que lo originó: se
        registra y se retorna None.

        Returns:
            Respuesta de Resend o None si no se envió
        """
        if not self.enabled:
            logger.warning(f"RESEND_API_KEY no configurado; email a {to_email} omitido")
            return None

        resend.api_key = self.api_key
        try:
            return resend.Emails.send({
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html_content,
            })
        except Exception as e:
            logger.error(f"Error sending email to {to_email}: {e}")
            return None

    def send_verification_email(self, to_email: str, user_name: str, token: str) -> Optional[dict]:
        """Envía el enlace de verificación de cuenta"""
        link = f"{self.frontend_url}/verify-email?token={token}"
        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif;">
            <h2>Bienvenido a SISINVESTIGA, {user_name}</h2>
            <p>Confirma tu correo electrónico para activar tu cuenta:</p>
            <p><a href="{link}">Verificar mi cuenta</a></p>
            <p>Si no creaste esta cuenta, ignora este mensaje.</p>
        </body>
        </html>
        """
        return self.send_email(to_email, "Verifica tu cuenta", html_content)

    def send_password_reset_email(self, to_email: str, user_name: str, reset_token: str) -> Optional[dict]:
        """Envía el enlace de recuperación de contraseña"""
        reset_link = f"{self.frontend_url}/resetpassword?token={reset_token}"
        html_content = f"""
        <html>
        <body style="font-family: Arial, sans-serif;">
            <h2>Hola {user_name}</h2>
            <p>Recibimos una solicitud para restablecer tu contraseña.</p>
            <p><a href="{reset_link}">Restablecer contraseña</a></p>
            <p>El enlace expira en {settings.RESET_TOKEN_EXPIRE_MINUTES} minutos.</p>
        </body>
        </html>
        """
        return self.send_email(to_email, "Recuperación de contraseña", html_content)


def get_email_service() -> EmailService:
    """Dependencia FastAPI: servicio de email configurado desde settings"""
    return EmailService(settings.RESEND_API_KEY, settings.FROM_EMAIL, settings.FRONTEND_URL)
