"""
Servicio de administración de usuarios.

Perfil propio, gestión por administradores y habilitar/deshabilitar cuentas.
Los usuarios nunca se eliminan físicamente.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from sisinvestiga.core.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from sisinvestiga.core.policy import AuthorizationPolicy, Operation
from sisinvestiga.models.models import User
from sisinvestiga.schemas.user_schemas import UserAdminUpdate, UserSelfUpdate
from sisinvestiga.services import security_service
from sisinvestiga.services.auth_service import EMAIL_TAKEN_MESSAGE, AuthService
from sisinvestiga.services.session_service import SessionService
from sisinvestiga.services.utils import db_transaction, like_pattern, paginate

logger = logging.getLogger(__name__)

USER_NOT_FOUND_MESSAGE = "Usuario no encontrado"


class UserService:
    """Operaciones sobre cuentas de usuario"""

    def __init__(self, db: Session, policy: AuthorizationPolicy):
        self.db = db
        self.policy = policy

    def _get(self, user_id: int) -> User:
        user = self.db.get(User, user_id)
        if not user:
            raise NotFoundError(USER_NOT_FOUND_MESSAGE)
        return user

    # ========================================
    #  LECTURA
    # ========================================

    def get_user(self, user_id: int, actor: User) -> User:
        self.policy.authorize(actor, Operation.user_manage)
        return self._get(user_id)

    def list_users(self, actor: User, page: Optional[int] = None, limit: Optional[int] = None,
                   search: Optional[str] = None) -> dict:
        self.policy.authorize(actor, Operation.user_manage)
        query = self.db.query(User)
        if search:
            pattern = like_pattern(search)
            query = query.filter(
                User.nombre.ilike(pattern, escape="\\")
                | User.apellido.ilike(pattern, escape="\\")
                | User.email.ilike(pattern, escape="\\")
            )
        return paginate(query.order_by(User.created_at.desc(), User.id.desc()), page, limit)

    # ========================================
    #  ACTUALIZACIÓN
    # ========================================

    def _apply_profile_changes(self, user: User, changes: Dict[str, Any], require_current_password: bool) -> bool:
        """
        Copia los campos de perfil y gestiona email y contraseña.

        Returns:
            bool: True si cambió la contraseña (hay que cerrar sesiones)
        """
        email = changes.pop("email", None)
        if email and email != user.email:
            taken = self.db.query(User).filter(User.email == email, User.id != user.id).first()
            if taken:
                raise ConflictError(EMAIL_TAKEN_MESSAGE)
            user.email = email

        if "responsabilidades" in changes and not changes["responsabilidades"]:
            raise BadRequestError("Debe indicar al menos una responsabilidad")

        password = changes.pop("password", None)
        current_password = changes.pop("current_password", None)
        password_changed = False
        if password:
            if require_current_password:
                if not current_password or not security_service.verify_password(current_password, user.password_hash):
                    raise BadRequestError("La contraseña actual es incorrecta")
            AuthService.validate_password_strength(password)
            user.password_hash = security_service.hash_password(password)
            password_changed = True

        for field in ("nombre", "apellido", "especializacion", "responsabilidades", "foto_perfil"):
            if field in changes:
                setattr(user, field, changes[field])
        return password_changed

    def update_self(self, actor: User, payload: Dict[str, Any]) -> User:
        """
        Actualiza el perfil del propio usuario.

        Cambiar la contraseña exige `currentPassword`.

        Raises:
            ConflictError: Si el nuevo email ya está en uso
            BadRequestError: Contraseña actual incorrecta o datos inválidos
        """
        patch = UserSelfUpdate.parse_patch(payload)
        user = self._get(actor.id)
        with db_transaction(self.db, conflict_message=EMAIL_TAKEN_MESSAGE):
            self._apply_profile_changes(user, patch.changes(), require_current_password=True)
        self.db.refresh(user)
        return user

    def update_user(self, user_id: int, actor: User, payload: Dict[str, Any]) -> User:
        """
        Actualiza un usuario como administrador (incluido el rol).

        Un cambio de contraseña o de rol cierra las sesiones del usuario para
        que el nuevo rol aplique en el próximo login.
        """
        self.policy.authorize(actor, Operation.user_manage)
        patch = UserAdminUpdate.parse_patch(payload)
        user = self._get(user_id)
        changes = patch.changes()
        role_name = changes.pop("role_name", None)

        with db_transaction(self.db, conflict_message=EMAIL_TAKEN_MESSAGE):
            revoke = self._apply_profile_changes(user, changes, require_current_password=False)
            if role_name and role_name != user.role_name:
                if user.id == actor.id:
                    raise ForbiddenError("No puede modificar su propio rol")
                user.role = AuthService.get_role(role_name, self.db)
                revoke = True
            if revoke:
                SessionService.revoke_all(user.id, self.db)
        self.db.refresh(user)
        logger.info(f"Usuario {user.id} actualizado por {actor.email}")
        return user

    # ========================================
    #  HABILITAR / DESHABILITAR
    # ========================================

    def disable(self, user_id: int, actor: User) -> User:
        """
        Deshabilita una cuenta y cierra todas sus sesiones.

        Raises:
            BadRequestError: Si ya estaba deshabilitada
            ForbiddenError: Si el administrador intenta deshabilitarse a sí mismo
        """
        self.policy.authorize(actor, Operation.user_manage)
        user = self._get(user_id)
        if user.id == actor.id:
            raise ForbiddenError("No puede deshabilitar su propia cuenta")
        if not user.is_active:
            raise BadRequestError("El usuario ya está deshabilitado")

        with db_transaction(self.db):
            user.is_active = False
            SessionService.revoke_all(user.id, self.db)
        self.db.refresh(user)
        logger.info(f"Usuario {user.email} deshabilitado por {actor.email}")
        return user

    def enable(self, user_id: int, actor: User) -> User:
        self.policy.authorize(actor, Operation.user_manage)
        user = self._get(user_id)
        if user.is_active:
            raise BadRequestError("El usuario ya está habilitado")

        with db_transaction(self.db):
            user.is_active = True
        self.db.refresh(user)
        logger.info(f"Usuario {user.email} habilitado por {actor.email}")
        return user
