import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from sisinvestiga.core.exceptions import BadRequestError, ConflictError, NotFoundError
from sisinvestiga.core.policy import AuthorizationPolicy, Operation
from sisinvestiga.enums.enums import RoleName
from sisinvestiga.models.models import Role, User
from sisinvestiga.schemas.role_schemas import RoleCreate, RoleUpdate
from sisinvestiga.services.utils import db_transaction

logger = logging.getLogger(__name__)

ROLE_EXISTS_MESSAGE = "El rol ya existe"
BUILTIN_ROLES = {role.value for role in RoleName}


class RoleService:
    """CRUD de roles. Los roles base no se renombran ni se eliminan."""

    def __init__(self, db: Session, policy: AuthorizationPolicy):
        self.db = db
        self.policy = policy

    def _get(self, role_id: int) -> Role:
        role = self.db.get(Role, role_id)
        if not role:
            raise NotFoundError("Rol no encontrado")
        return role

    def _ensure_name_free(self, name: str, exclude_id: int = None) -> None:
        query = self.db.query(Role).filter(Role.name == name)
        if exclude_id is not None:
            query = query.filter(Role.id != exclude_id)
        if query.first():
            raise ConflictError(ROLE_EXISTS_MESSAGE)

    def list_roles(self, actor: User) -> List[Role]:
        self.policy.authorize(actor, Operation.role_manage)
        return self.db.query(Role).order_by(Role.id).all()

    def create(self, data: RoleCreate, actor: User) -> Role:
        self.policy.authorize(actor, Operation.role_manage)
        self._ensure_name_free(data.name)

        role = Role(name=data.name, description=data.description)
        with db_transaction(self.db, conflict_message=ROLE_EXISTS_MESSAGE):
            self.db.add(role)
        self.db.refresh(role)
        logger.info(f"Rol creado: {role.name}")
        return role

    def update(self, role_id: int, actor: User, payload: Dict[str, Any]) -> Role:
        self.policy.authorize(actor, Operation.role_manage)
        patch = RoleUpdate.parse_patch(payload)
        role = self._get(role_id)
        changes = patch.changes()

        new_name = changes.get("name")
        if new_name and new_name != role.name:
            if role.name in BUILTIN_ROLES:
                raise BadRequestError("Los roles base no se pueden renombrar")
            self._ensure_name_free(new_name, exclude_id=role.id)

        with db_transaction(self.db, conflict_message=ROLE_EXISTS_MESSAGE):
            for field, value in changes.items():
                setattr(role, field, value)
        self.db.refresh(role)
        return role

    def delete(self, role_id: int, actor: User) -> None:
        """
        Elimina un rol sin usuarios asignados.

        Raises:
            BadRequestError: Si es un rol base o hay usuarios que lo referencian
        """
        self.policy.authorize(actor, Operation.role_manage)
        role = self._get(role_id)
        if role.name in BUILTIN_ROLES:
            raise BadRequestError("Los roles base no se pueden eliminar")

        in_use = self.db.query(User).filter(User.role_id == role.id).count()
        if in_use:
            raise BadRequestError("No se puede eliminar el rol porque hay usuarios asignados")

        with db_transaction(self.db):
            self.db.delete(role)
        logger.info(f"Rol eliminado: {role.name}")
