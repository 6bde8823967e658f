"""
Política de autorización.

Evalúa si un actor puede ejecutar una operación sobre un recurso. Combina dos
formas de regla:

    - Por rol: la operación está reservada a un conjunto fijo de roles.
    - Por pertenencia: el actor debe participar en el recurso (investigador
      del proyecto, autor de la publicación, solicitante, evaluador).

Una regla concede acceso si el rol del actor está en `bypass_roles`, o si
está en `roles` y además se cumple el predicado de pertenencia.

La tabla de reglas es inmutable, se construye una vez al arrancar y se
inyecta en los servicios (`app.state.policy`), de modo que ningún servicio
depende de constantes globales mutables.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, FrozenSet, Mapping, Optional

from fastapi import Request as HttpRequest

from sisinvestiga.core.exceptions import ForbiddenError
from sisinvestiga.enums.enums import RoleName

OwnershipCheck = Callable[[int, Any], bool]


class Operation(str, Enum):
    project_create = "project:create"
    project_update = "project:update"
    project_delete = "project:delete"
    project_delete_closed = "project:delete_closed"
    project_restore = "project:restore"

    evaluation_create = "evaluation:create"
    evaluation_update = "evaluation:update"
    evaluation_delete = "evaluation:delete"
    evaluation_restore = "evaluation:restore"
    evaluation_list = "evaluation:list"

    publication_create = "publication:create"
    publication_update = "publication:update"
    publication_update_locked = "publication:update_locked"
    publication_publish = "publication:publish"
    publication_delete = "publication:delete"
    publication_delete_published = "publication:delete_published"
    publication_restore = "publication:restore"

    request_create = "request:create"
    request_view = "request:view"
    request_view_all = "request:view_all"
    request_comment = "request:comment"
    request_resolve = "request:resolve"
    request_delete = "request:delete"
    request_restore = "request:restore"

    user_manage = "user:manage"
    role_manage = "role:manage"

    report_global = "report:global"
    report_own = "report:own"


@dataclass(frozen=True)
class Rule:
    roles: FrozenSet[RoleName] = frozenset()
    bypass_roles: FrozenSet[RoleName] = frozenset()
    ownership: Optional[OwnershipCheck] = None
    message: str = "No tienes permisos para realizar esta acción"


# =========================================================
#  PREDICADOS DE PERTENENCIA
# =========================================================

def is_project_member(actor_id: int, project) -> bool:
    return project is not None and project.has_investigator(actor_id)


def is_publication_author(actor_id: int, publication) -> bool:
    return publication is not None and actor_id in publication.author_ids


def is_request_owner(actor_id: int, request) -> bool:
    return request is not None and request.solicitante_id == actor_id


def is_evaluator(actor_id: int, evaluation) -> bool:
    return evaluation is not None and evaluation.evaluator_id == actor_id


# =========================================================
#  TABLA DE REGLAS
# =========================================================

ADMIN = RoleName.administrador
INVESTIGATOR = RoleName.investigador
_ANY = frozenset({ADMIN, INVESTIGATOR})
_ADMIN_ONLY = frozenset({ADMIN})


def build_role_table() -> Mapping[Operation, Rule]:
    """
    Construye la tabla inmutable operación -> regla.

    Returns:
        Mapping de solo lectura; cualquier intento de modificarlo falla.
    """
    table = {
        # Proyectos
        Operation.project_create: Rule(roles=_ANY, message="No tienes permisos para crear proyectos"),
        Operation.project_update: Rule(
            roles=_ANY, bypass_roles=_ADMIN_ONLY, ownership=is_project_member,
            message="No tienes permisos para actualizar este proyecto",
        ),
        Operation.project_delete: Rule(
            roles=_ANY, bypass_roles=_ADMIN_ONLY, ownership=is_project_member,
            message="No tienes permisos para eliminar este proyecto.",
        ),
        Operation.project_delete_closed: Rule(
            bypass_roles=_ADMIN_ONLY,
            message="Solo los administradores pueden eliminar proyectos en estado finalizado o cancelado.",
        ),
        Operation.project_restore: Rule(
            bypass_roles=_ADMIN_ONLY,
            message="Solo los administradores pueden restaurar proyectos",
        ),

        # Evaluaciones: rol de administrador y además autoría propia
        Operation.evaluation_create: Rule(
            bypass_roles=_ADMIN_ONLY,
            message="Solo los administradores pueden evaluar proyectos",
        ),
        Operation.evaluation_update: Rule(
            roles=_ADMIN_ONLY, ownership=is_evaluator,
            message="Solo el evaluador original puede modificar esta evaluación",
        ),
        Operation.evaluation_delete: Rule(
            roles=_ADMIN_ONLY, ownership=is_evaluator,
            message="Solo el evaluador original puede eliminar esta evaluación",
        ),
        Operation.evaluation_restore: Rule(
            roles=_ADMIN_ONLY, ownership=is_evaluator,
            message="Solo el evaluador original puede restaurar esta evaluación",
        ),
        Operation.evaluation_list: Rule(
            bypass_roles=_ADMIN_ONLY,
            message="Solo los administradores pueden listar todas las evaluaciones",
        ),

        # Publicaciones
        Operation.publication_create: Rule(
            roles=_ANY, bypass_roles=_ADMIN_ONLY, ownership=is_project_member,
            message="No eres investigador de este proyecto",
        ),
        Operation.publication_update: Rule(
            roles=_ANY, bypass_roles=_ADMIN_ONLY, ownership=is_publication_author,
            message="No tienes permisos para actualizar esta publicación",
        ),
        Operation.publication_update_locked: Rule(bypass_roles=_ADMIN_ONLY),
        Operation.publication_publish: Rule(
            bypass_roles=_ADMIN_ONLY,
            message="Solo los administradores pueden publicar una publicación",
        ),
        Operation.publication_delete: Rule(
            roles=_ANY, bypass_roles=_ADMIN_ONLY, ownership=is_publication_author,
            message="No tienes permisos para eliminar esta publicación",
        ),
        Operation.publication_delete_published: Rule(bypass_roles=_ADMIN_ONLY),
        Operation.publication_restore: Rule(
            bypass_roles=_ADMIN_ONLY,
            message="Solo los administradores pueden restaurar publicaciones",
        ),

        # Solicitudes
        Operation.request_create: Rule(roles=_ANY, message="No tienes permisos para crear solicitudes"),
        Operation.request_view: Rule(
            roles=_ANY, bypass_roles=_ADMIN_ONLY, ownership=is_request_owner,
            message="No tienes permisos para ver esta solicitud",
        ),
        Operation.request_view_all: Rule(bypass_roles=_ADMIN_ONLY),
        Operation.request_comment: Rule(
            roles=_ANY, bypass_roles=_ADMIN_ONLY, ownership=is_request_owner,
            message="No tienes permisos para comentar esta solicitud",
        ),
        Operation.request_resolve: Rule(
            bypass_roles=_ADMIN_ONLY,
            message="Solo los administradores pueden cambiar el estado de una solicitud",
        ),
        Operation.request_delete: Rule(
            roles=_ANY, bypass_roles=_ADMIN_ONLY, ownership=is_request_owner,
            message="No tienes permisos para eliminar esta solicitud",
        ),
        Operation.request_restore: Rule(
            bypass_roles=_ADMIN_ONLY,
            message="Solo los administradores pueden restaurar solicitudes",
        ),

        # Administración
        Operation.user_manage: Rule(bypass_roles=_ADMIN_ONLY, message="Se requieren permisos de administrador"),
        Operation.role_manage: Rule(bypass_roles=_ADMIN_ONLY, message="Se requieren permisos de administrador"),

        # Informes
        Operation.report_global: Rule(bypass_roles=_ADMIN_ONLY, message="Se requieren permisos de administrador"),
        Operation.report_own: Rule(roles=_ANY, message="No tienes permisos para generar informes"),
    }
    return MappingProxyType(table)


def _as_role(role_name: str) -> Optional[RoleName]:
    try:
        return RoleName(role_name)
    except ValueError:
        return None


class AuthorizationPolicy:
    """
    Evaluador de permisos sobre una tabla de reglas inyectada.

    Un rol desconocido para la tabla (por ejemplo, un rol creado a mano por
    un administrador) no recibe ningún permiso.
    """

    def __init__(self, role_table: Mapping[Operation, Rule]):
        self._table = role_table

    @classmethod
    def default(cls) -> "AuthorizationPolicy":
        return cls(build_role_table())

    @property
    def table(self) -> Mapping[Operation, Rule]:
        return self._table

    def can_perform(self, actor_role: str, actor_id: int, operation: Operation, resource: Any = None) -> bool:
        rule = self._table.get(operation)
        role = _as_role(actor_role)
        if rule is None or role is None:
            return False
        if role in rule.bypass_roles:
            return True
        if role not in rule.roles:
            return False
        if rule.ownership is None:
            return True
        return rule.ownership(actor_id, resource)

    def authorize(self, actor, operation: Operation, resource: Any = None, message: Optional[str] = None) -> None:
        """
        Exige permiso para `actor` (un User) o lanza ForbiddenError.

        Args:
            actor: Usuario autenticado
            operation: Operación a ejecutar
            resource: Recurso afectado (para reglas de pertenencia)
            message: Mensaje alternativo al de la regla

        Raises:
            ForbiddenError: Si la regla no concede acceso
        """
        if not self.can_perform(actor.role_name, actor.id, operation, resource):
            rule = self._table.get(operation)
            raise ForbiddenError(message or (rule.message if rule else "Acceso denegado"))


def get_policy(request: HttpRequest) -> AuthorizationPolicy:
    """Dependencia FastAPI: política cargada al arrancar la aplicación."""
    return request.app.state.policy
