"""
Servicio de evaluaciones de proyectos.

Solo los administradores evalúan, y cada evaluación solo la modifica,
elimina o restaura quien la creó. Un evaluador evalúa un proyecto una
única vez (restricción única en BD sobre el par proyecto/evaluador).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Query, Session

from sisinvestiga.core.exceptions import BadRequestError, ConflictError, NotFoundError
from sisinvestiga.core.policy import AuthorizationPolicy, Operation
from sisinvestiga.models.models import Evaluation, Project, User
from sisinvestiga.schemas.evaluation_schemas import EvaluationCreate, EvaluationUpdate
from sisinvestiga.services.project_service import PROJECT_NOT_FOUND_MESSAGE
from sisinvestiga.services.utils import db_transaction, paginate

logger = logging.getLogger(__name__)

ALREADY_EVALUATED_MESSAGE = "Ya has evaluado este proyecto."
EVALUATION_NOT_FOUND_MESSAGE = "Evaluación no encontrada"


class EvaluationService:

    def __init__(self, db: Session, policy: AuthorizationPolicy):
        self.db = db
        self.policy = policy

    def _visible(self) -> Query:
        """Evaluaciones activas de proyectos activos"""
        return (
            self.db.query(Evaluation)
            .join(Project, Evaluation.project_id == Project.id)
            .filter(Evaluation.is_deleted.is_(False), Project.is_deleted.is_(False))
        )

    def _get_visible(self, evaluation_id: int) -> Evaluation:
        evaluation = self._visible().filter(Evaluation.id == evaluation_id).first()
        if not evaluation:
            raise NotFoundError(EVALUATION_NOT_FOUND_MESSAGE)
        return evaluation

    def _get_active_project(self, project_id: int) -> Project:
        project = (
            self.db.query(Project)
            .filter(Project.id == project_id, Project.is_deleted.is_(False))
            .first()
        )
        if not project:
            raise NotFoundError(PROJECT_NOT_FOUND_MESSAGE)
        return project

    def create(self, project_id: int, actor: User, data: EvaluationCreate) -> Evaluation:
        """
        Registra la evaluación del actor y marca el proyecto como evaluado.

        Ambas escrituras se confirman en la misma transacción.

        Raises:
            ForbiddenError: Actor no administrador
            NotFoundError: Proyecto inexistente o eliminado
            ConflictError: El actor ya evaluó este proyecto
        """
        self.policy.authorize(actor, Operation.evaluation_create)
        project = self._get_active_project(project_id)

        existing = (
            self.db.query(Evaluation)
            .filter(Evaluation.project_id == project.id, Evaluation.evaluator_id == actor.id)
            .first()
        )
        if existing:
            raise ConflictError(ALREADY_EVALUATED_MESSAGE)

        evaluation = Evaluation(
            project_id=project.id,
            evaluator_id=actor.id,
            puntuacion=data.puntuacion,
            comentarios=data.comentarios,
            fecha_evaluacion=datetime.utcnow(),
        )
        with db_transaction(self.db, conflict_message=ALREADY_EVALUATED_MESSAGE):
            self.db.add(evaluation)
            project.is_evaluated = True

        self.db.refresh(evaluation)
        logger.info(f"Proyecto {project.id} evaluado por {actor.email} con {data.puntuacion}")
        return evaluation

    def update(self, evaluation_id: int, actor: User, payload: Dict[str, Any]) -> Evaluation:
        """
        Modifica puntuación y/o comentarios de una evaluación propia.

        Raises:
            NotFoundError: Evaluación inexistente, eliminada o de un proyecto eliminado
            ForbiddenError: El actor no es el evaluador original
        """
        patch = EvaluationUpdate.parse_patch(payload)
        evaluation = self._get_visible(evaluation_id)
        self.policy.authorize(actor, Operation.evaluation_update, evaluation)

        with db_transaction(self.db):
            for field, value in patch.changes().items():
                setattr(evaluation, field, value)
        self.db.refresh(evaluation)
        return evaluation

    def delete(self, evaluation_id: int, actor: User) -> Evaluation:
        """Borrado lógico; el proyecto conserva su marca de evaluado."""
        evaluation = self._get_visible(evaluation_id)
        self.policy.authorize(actor, Operation.evaluation_delete, evaluation)

        with db_transaction(self.db):
            evaluation.is_deleted = True
        self.db.refresh(evaluation)
        logger.info(f"Evaluación eliminada: {evaluation.id} por {actor.email}")
        return evaluation

    def restore(self, evaluation_id: int, actor: User) -> Evaluation:
        """
        Restaura una evaluación eliminada.

        Raises:
            NotFoundError: Evaluación inexistente
            ForbiddenError: El actor no es el evaluador original
            BadRequestError: La evaluación no está eliminada o su proyecto sí
        """
        evaluation = self.db.get(Evaluation, evaluation_id)
        if not evaluation:
            raise NotFoundError(EVALUATION_NOT_FOUND_MESSAGE)
        self.policy.authorize(actor, Operation.evaluation_restore, evaluation)

        if not evaluation.is_deleted:
            raise BadRequestError("La evaluación no está eliminada.")
        if evaluation.project.is_deleted:
            raise BadRequestError("No se puede restaurar la evaluación de un proyecto eliminado")

        with db_transaction(self.db):
            evaluation.is_deleted = False
        self.db.refresh(evaluation)
        logger.info(f"Evaluación restaurada: {evaluation.id} por {actor.email}")
        return evaluation

    def list(self, actor: User, page: Optional[int] = None, limit: Optional[int] = None) -> dict:
        self.policy.authorize(actor, Operation.evaluation_list)
        query = self._visible().order_by(Evaluation.fecha_evaluacion.desc(), Evaluation.id.desc())
        return paginate(query, page, limit)

    def list_by_project(self, project_id: int) -> List[Evaluation]:
        project = self._get_active_project(project_id)
        return (
            self.db.query(Evaluation)
            .filter(Evaluation.project_id == project.id, Evaluation.is_deleted.is_(False))
            .order_by(Evaluation.fecha_evaluacion.desc(), Evaluation.id.desc())
            .all()
        )
