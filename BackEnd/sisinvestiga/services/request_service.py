"""
Servicio de solicitudes (tickets) de investigadores.

El estado solo lo cambia un administrador, que queda registrado como
revisor junto con la fecha de resolución. Los comentarios forman un hilo de
solo inserción.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Query, Session

from sisinvestiga.core.exceptions import BadRequestError, NotFoundError
from sisinvestiga.core.policy import AuthorizationPolicy, Operation
from sisinvestiga.enums.enums import REQUEST_TYPES_REQUIRING_PROJECT, RequestStatus, RequestType
from sisinvestiga.models.models import Project, Request, RequestComment, User
from sisinvestiga.schemas.request_schemas import RequestCreate, RequestUpdate
from sisinvestiga.services.utils import db_transaction, paginate

logger = logging.getLogger(__name__)

REQUEST_NOT_FOUND_MESSAGE = "Solicitud no encontrada"


class RequestService:

    def __init__(self, db: Session, policy: AuthorizationPolicy):
        self.db = db
        self.policy = policy

    def _active(self) -> Query:
        return self.db.query(Request).filter(Request.is_deleted.is_(False))

    def _get_active(self, request_id: int) -> Request:
        request = self._active().filter(Request.id == request_id).first()
        if not request:
            raise NotFoundError(REQUEST_NOT_FOUND_MESSAGE)
        return request

    @staticmethod
    def _newest_first(query: Query) -> Query:
        return query.order_by(Request.created_at.desc(), Request.id.desc())

    def create(self, data: RequestCreate, actor: User) -> Request:
        """
        Registra una solicitud del actor en estado Pendiente.

        Raises:
            BadRequestError: El tipo exige proyecto y no se indicó
            NotFoundError: El proyecto indicado no existe o está eliminado
        """
        self.policy.authorize(actor, Operation.request_create)

        if data.tipo_solicitud in REQUEST_TYPES_REQUIRING_PROJECT and data.proyecto is None:
            raise BadRequestError("El proyecto es obligatorio para este tipo de solicitud")

        project_id = None
        if data.proyecto is not None:
            project = (
                self.db.query(Project)
                .filter(Project.id == data.proyecto, Project.is_deleted.is_(False))
                .first()
            )
            if not project:
                raise NotFoundError("Proyecto no encontrado")
            project_id = project.id

        request = Request(
            solicitante_id=actor.id,
            tipo_solicitud=data.tipo_solicitud,
            descripcion=data.descripcion,
            project_id=project_id,
            estado=RequestStatus.pendiente,
        )
        with db_transaction(self.db):
            self.db.add(request)
        self.db.refresh(request)
        logger.info(f"Solicitud creada: {request.id} ({request.tipo_solicitud.value}) por {actor.email}")
        return request

    def update(self, request_id: int, actor: User, payload: Dict[str, Any]) -> Request:
        """
        Cambia el estado y/o agrega un comentario.

        Raises:
            NotFoundError: Solicitud inexistente o eliminada
            BadRequestError: Campos no permitidos o sin cambios
            ForbiddenError: Cambio de estado por no administrador, o
                comentario de alguien ajeno a la solicitud
        """
        request = self._get_active(request_id)
        changes = RequestUpdate.parse_patch(payload).changes()
        new_status = changes.get("estado")
        comment = changes.get("comentario")
        if new_status is None and comment is None:
            raise BadRequestError("No hay cambios para aplicar")

        if new_status is not None:
            self.policy.authorize(actor, Operation.request_resolve, request)
        if comment is not None:
            self.policy.authorize(actor, Operation.request_comment, request)

        with db_transaction(self.db):
            if new_status is not None:
                request.estado = new_status
                request.revisado_por_id = actor.id
                request.fecha_resolucion = datetime.utcnow()
            if comment is not None:
                request.comentarios.append(RequestComment(
                    usuario_id=actor.id,
                    comentario=comment,
                    fecha=datetime.utcnow(),
                ))

        self.db.refresh(request)
        if new_status is not None:
            logger.info(f"Solicitud {request.id} pasó a {new_status.value} por {actor.email}")
        return request

    def delete(self, request_id: int, actor: User) -> Request:
        request = self._get_active(request_id)
        self.policy.authorize(actor, Operation.request_delete, request)

        with db_transaction(self.db):
            request.is_deleted = True
        self.db.refresh(request)
        logger.info(f"Solicitud eliminada: {request.id} por {actor.email}")
        return request

    def restore(self, request_id: int, actor: User) -> Request:
        request = self.db.get(Request, request_id)
        if not request or not request.is_deleted:
            raise NotFoundError("Solicitud no encontrada o no está eliminada.")
        self.policy.authorize(actor, Operation.request_restore, request)

        with db_transaction(self.db):
            request.is_deleted = False
        self.db.refresh(request)
        logger.info(f"Solicitud restaurada: {request.id} por {actor.email}")
        return request

    # ========================================
    #  CONSULTAS
    # ========================================

    def list(self, actor: User, page: Optional[int] = None, limit: Optional[int] = None,
             estado: Optional[RequestStatus] = None, tipo: Optional[RequestType] = None) -> dict:
        """Los administradores ven todas las solicitudes; el resto solo las suyas."""
        query = self._active()
        if not self.policy.can_perform(actor.role_name, actor.id, Operation.request_view_all):
            query = query.filter(Request.solicitante_id == actor.id)
        if estado:
            query = query.filter(Request.estado == estado)
        if tipo:
            query = query.filter(Request.tipo_solicitud == tipo)
        return paginate(self._newest_first(query), page, limit)

    def list_for_user(self, actor: User, page: Optional[int] = None, limit: Optional[int] = None) -> dict:
        query = self._active().filter(Request.solicitante_id == actor.id)
        return paginate(self._newest_first(query), page, limit)

    def get(self, request_id: int, actor: User) -> Request:
        request = self._get_active(request_id)
        self.policy.authorize(actor, Operation.request_view, request)
        return request

    def get_including_deleted(self, request_id: int, actor: User) -> Request:
        """Vista de administración: también devuelve solicitudes eliminadas."""
        self.policy.authorize(actor, Operation.request_view_all, message="Se requieren permisos de administrador")
        request = self.db.get(Request, request_id)
        if not request:
            raise NotFoundError(REQUEST_NOT_FOUND_MESSAGE)
        return request
