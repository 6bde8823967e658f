"""
Inicialización de roles base.

Crea los roles Administrador e Investigador que usa la política de
autorización. Es idempotente: los roles existentes no se recrean.
"""

import logging

from sqlalchemy.orm import Session

from sisinvestiga.enums.enums import RoleName
from sisinvestiga.models.models import Role

logger = logging.getLogger(__name__)

BASE_ROLES = {
    RoleName.administrador: "Acceso total: evalúa proyectos, publica y administra usuarios",
    RoleName.investigador: "Participa en proyectos, publicaciones y solicitudes propias",
}


def init_roles(db: Session) -> None:
    """
    Inicializar roles básicos en la base de datos.

    Args:
        db (Session): Sesión de base de datos SQLAlchemy

    Raises:
        Exception: Si hay error en la BD durante commit
    """
    for role_name, description in BASE_ROLES.items():
        exists = db.query(Role).filter(Role.name == role_name.value).first()
        if not exists:
            db.add(Role(name=role_name.value, description=description))
            logger.info(f"Rol creado: {role_name.value}")
    db.commit()
