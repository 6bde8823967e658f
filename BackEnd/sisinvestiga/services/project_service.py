"""
Servicio del ciclo de vida de proyectos.

Reglas principales:
    - El nombre es único entre proyectos no eliminados (índice único parcial
      en BD como garantía ante peticiones concurrentes)
    - El creador siempre forma parte de los investigadores
    - Todo proyecto tiene cronograma completo y al menos un hito con nombre y fecha
    - Modifican el proyecto sus investigadores o un administrador
    - Un proyecto Finalizado o Cancelado solo lo elimina un administrador
    - Solo un administrador restaura proyectos eliminados
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from sisinvestiga.core.exceptions import BadRequestError, ConflictError, NotFoundError
from sisinvestiga.core.policy import AuthorizationPolicy, Operation
from sisinvestiga.enums.enums import CLOSED_PROJECT_STATUSES
from sisinvestiga.models.models import Milestone, Project, User
from sisinvestiga.schemas.project_schemas import CronogramaIn, MilestoneIn, ProjectCreate, ProjectUpdate
from sisinvestiga.services.utils import db_transaction, like_pattern, paginate

logger = logging.getLogger(__name__)

PROJECT_NOT_FOUND_MESSAGE = "Proyecto no encontrado o eliminado"
PROJECT_NAME_TAKEN_MESSAGE = "Ya existe un proyecto con ese nombre"
SCHEDULE_REQUIRED_MESSAGE = "El cronograma debe incluir fechaInicio y fechaFin"
MILESTONES_REQUIRED_MESSAGE = "Al menos un hito es obligatorio con nombre y fecha"

# Campos que se copian tal cual desde una actualización
SIMPLE_FIELDS = ("nombre", "descripcion", "objetivos", "presupuesto", "recursos", "estado", "imagen")


class ProjectService:
    """Creación, actualización, borrado lógico, restauración y consultas de proyectos"""

    def __init__(self, db: Session, policy: AuthorizationPolicy):
        self.db = db
        self.policy = policy

    # ========================================
    #  AUXILIARES
    # ========================================

    def _active(self) -> Query:
        return self.db.query(Project).filter(Project.is_deleted.is_(False))

    def get_active(self, project_id: int) -> Project:
        """
        Proyecto no eliminado por id.

        Raises:
            NotFoundError: Si no existe o está eliminado
        """
        project = self._active().filter(Project.id == project_id).first()
        if not project:
            raise NotFoundError(PROJECT_NOT_FOUND_MESSAGE)
        return project

    def _ensure_unique_name(self, nombre: str, exclude_id: Optional[int] = None) -> None:
        query = self._active().filter(Project.nombre == nombre)
        if exclude_id is not None:
            query = query.filter(Project.id != exclude_id)
        if query.first():
            raise ConflictError(PROJECT_NAME_TAKEN_MESSAGE)

    @staticmethod
    def _validate_schedule(fecha_inicio: Optional[datetime], fecha_fin: Optional[datetime]) -> Tuple[datetime, datetime]:
        if not fecha_inicio or not fecha_fin:
            raise BadRequestError(SCHEDULE_REQUIRED_MESSAGE)
        if fecha_inicio > fecha_fin:
            raise BadRequestError("La fecha de inicio no puede ser posterior a la fecha de fin")
        return fecha_inicio, fecha_fin

    @staticmethod
    def _build_milestones(hitos: Optional[List[MilestoneIn]]) -> List[Milestone]:
        """
        Valida y construye los hitos en orden.

        Raises:
            BadRequestError: Lista vacía o algún hito sin nombre o fecha
        """
        if not hitos:
            raise BadRequestError(MILESTONES_REQUIRED_MESSAGE)

        milestones = []
        for position, hito in enumerate(hitos, start=1):
            if not hito.nombre or not hito.fecha:
                raise BadRequestError(f"El hito en la posición {position} debe tener un nombre y una fecha")
            entregables = hito.entregables
            if entregables is None:
                entregables = [hito.entregable] if hito.entregable else []
            milestones.append(Milestone(
                position=position,
                nombre=hito.nombre,
                fecha=hito.fecha,
                entregables=list(entregables),
            ))
        return milestones

    def _resolve_investigators(self, user_ids: Iterable[int]) -> List[User]:
        unique_ids = list(dict.fromkeys(user_ids))
        if not unique_ids:
            return []
        users = self.db.query(User).filter(User.id.in_(unique_ids)).all()
        found = {user.id for user in users}
        missing = [user_id for user_id in unique_ids if user_id not in found]
        if missing:
            raise BadRequestError(
                "Algunos investigadores no existen",
                errors=[f"Usuario no encontrado: {user_id}" for user_id in missing]
            )
        return sorted(users, key=lambda user: unique_ids.index(user.id))

    @staticmethod
    def _text_filter(query: Query, search: Optional[str]) -> Query:
        if not search or not search.strip():
            return query
        pattern = like_pattern(search.strip())
        return query.filter(or_(
            Project.nombre.ilike(pattern, escape="\\"),
            Project.descripcion.ilike(pattern, escape="\\"),
        ))

    @staticmethod
    def _newest_first(query: Query) -> Query:
        return query.order_by(Project.created_at.desc(), Project.id.desc())

    # ========================================
    #  MUTACIONES
    # ========================================

    def create(self, data: ProjectCreate, actor: User) -> Project:
        """
        Crea un proyecto con el actor como investigador.

        Raises:
            BadRequestError: Cronograma incompleto, hitos ausentes o inválidos,
                investigadores inexistentes
            ConflictError: Nombre ya usado por un proyecto activo
        """
        self.policy.authorize(actor, Operation.project_create)

        cronograma = data.cronograma or CronogramaIn()
        fecha_inicio, fecha_fin = self._validate_schedule(cronograma.fecha_inicio, cronograma.fecha_fin)
        milestones = self._build_milestones(data.hitos)
        self._ensure_unique_name(data.nombre)

        investigators = self._resolve_investigators(data.investigadores)
        if actor.id not in {user.id for user in investigators}:
            investigators.append(actor)

        project = Project(
            nombre=data.nombre,
            descripcion=data.descripcion,
            objetivos=data.objetivos,
            presupuesto=data.presupuesto,
            fecha_inicio=fecha_inicio,
            fecha_fin=fecha_fin,
            recursos=list(data.recursos),
            estado=data.estado,
            imagen=data.imagen,
            created_by=actor.id,
        )
        project.investigadores = investigators
        project.hitos = milestones

        with db_transaction(self.db, conflict_message=PROJECT_NAME_TAKEN_MESSAGE):
            self.db.add(project)
        self.db.refresh(project)
        logger.info(f"Proyecto creado: {project.id} por {actor.email}")
        return project

    def update(self, project_id: int, actor: User, payload: Dict[str, Any]) -> Project:
        """
        Actualiza los campos permitidos; los demás se ignoran.

        Raises:
            NotFoundError: Proyecto inexistente o eliminado
            ForbiddenError: Actor que no es investigador ni administrador
            ConflictError: Nuevo nombre ya usado
        """
        patch = ProjectUpdate.parse_patch(payload)
        project = self.get_active(project_id)
        self.policy.authorize(actor, Operation.project_update, project)

        changes = patch.changes()
        new_name = changes.get("nombre")
        if new_name and new_name != project.nombre:
            self._ensure_unique_name(new_name, exclude_id=project.id)

        cronograma = changes.pop("cronograma", None)
        if cronograma is not None:
            project.fecha_inicio, project.fecha_fin = self._validate_schedule(
                cronograma.fecha_inicio or project.fecha_inicio,
                cronograma.fecha_fin or project.fecha_fin,
            )

        hitos = changes.pop("hitos", None)
        if hitos is not None:
            project.hitos = self._build_milestones(hitos)

        investigator_ids = changes.pop("investigadores", None)
        if investigator_ids is not None:
            if not investigator_ids:
                raise BadRequestError("El proyecto debe tener al menos un investigador")
            project.investigadores = self._resolve_investigators(investigator_ids)

        for field in SIMPLE_FIELDS:
            if field in changes:
                setattr(project, field, changes[field])

        with db_transaction(self.db, conflict_message=PROJECT_NAME_TAKEN_MESSAGE):
            self.db.add(project)
        self.db.refresh(project)
        logger.info(f"Proyecto actualizado: {project.id} por {actor.email}")
        return project

    def soft_delete(self, project_id: int, actor: User) -> Project:
        """
        Marca el proyecto como eliminado.

        Raises:
            NotFoundError: Proyecto inexistente o ya eliminado
            ForbiddenError: Actor sin pertenencia, o no administrador con el
                proyecto Finalizado o Cancelado
        """
        project = self.get_active(project_id)
        self.policy.authorize(actor, Operation.project_delete, project)
        if project.estado in CLOSED_PROJECT_STATUSES:
            self.policy.authorize(actor, Operation.project_delete_closed, project)

        with db_transaction(self.db):
            project.is_deleted = True
        self.db.refresh(project)
        logger.info(f"Proyecto eliminado: {project.id} por {actor.email}")
        return project

    def restore(self, project_id: int, actor: User) -> Project:
        """
        Restaura un proyecto eliminado (solo administradores).

        Raises:
            NotFoundError: Proyecto inexistente o no eliminado
            ForbiddenError: Actor no administrador
            ConflictError: Otro proyecto activo tomó el mismo nombre
        """
        project = self.db.get(Project, project_id)
        if not project or not project.is_deleted:
            raise NotFoundError("Proyecto no encontrado o no está eliminado.")
        self.policy.authorize(actor, Operation.project_restore, project)
        self._ensure_unique_name(project.nombre, exclude_id=project.id)

        with db_transaction(self.db, conflict_message=PROJECT_NAME_TAKEN_MESSAGE):
            project.is_deleted = False
        self.db.refresh(project)
        logger.info(f"Proyecto restaurado: {project.id} por {actor.email}")
        return project

    # ========================================
    #  CONSULTAS
    # ========================================

    def get(self, project_id: int) -> Project:
        return self.get_active(project_id)

    def list(self, page: Optional[int] = None, limit: Optional[int] = None, search: Optional[str] = None) -> dict:
        query = self._text_filter(self._active(), search)
        return paginate(self._newest_first(query), page, limit)

    def list_for_user(self, user: User, page: Optional[int] = None, limit: Optional[int] = None,
                      search: Optional[str] = None) -> dict:
        """Proyectos activos en los que el usuario es investigador"""
        query = self._active().filter(Project.investigadores.any(User.id == user.id))
        query = self._text_filter(query, search)
        return paginate(self._newest_first(query), page, limit)

    def search(self, text: str, page: Optional[int] = None, limit: Optional[int] = None) -> dict:
        """
        Búsqueda por subcadena en nombre y descripción.

        Raises:
            BadRequestError: Texto de búsqueda vacío
            NotFoundError: Sin resultados
        """
        if not text or not text.strip():
            raise BadRequestError("Debe indicar un texto de búsqueda")
        result = self.list(page, limit, search=text)
        if result["total"] == 0:
            raise NotFoundError("No se encontraron proyectos")
        return result
