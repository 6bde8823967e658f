"""
Servicio de publicaciones.

Reglas:
    - Los autores se copian del equipo del proyecto al crear; el cliente no
      los elige
    - Crear o pasar a Publicado requiere rol administrador
    - En estado Revisado o Publicado, autores y proyecto solo los cambia un
      administrador
    - La actualización rechaza por completo cualquier campo no permitido
    - Una publicación Publicada solo la elimina un administrador
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy import String, cast, or_
from sqlalchemy.orm import Query, Session

from sisinvestiga.core.exceptions import BadRequestError, NotFoundError
from sisinvestiga.core.policy import AuthorizationPolicy, Operation
from sisinvestiga.enums.enums import LOCKED_PUBLICATION_STATUSES, PublicationStatus, PublicationType
from sisinvestiga.models.models import Project, Publication, User
from sisinvestiga.schemas.publication_schemas import PublicationCreate, PublicationUpdate
from sisinvestiga.services.project_service import PROJECT_NOT_FOUND_MESSAGE
from sisinvestiga.services.utils import db_transaction, like_pattern, paginate

logger = logging.getLogger(__name__)

PUBLICATION_NOT_FOUND_MESSAGE = "Publicación no encontrada"
LOCKED_FIELDS_MESSAGE = "No puedes cambiar autores o el proyecto de una publicación revisada o publicada."
INVALID_AUTHORS_MESSAGE = "Algunos autores no pertenecen al proyecto especificado."

SIMPLE_FIELDS = ("titulo", "fecha", "revista", "resumen", "palabras_clave", "tipo_publicacion", "anexos", "idioma")


class PublicationService:
    """Ciclo de vida y consultas de publicaciones"""

    def __init__(self, db: Session, policy: AuthorizationPolicy):
        self.db = db
        self.policy = policy

    def _visible(self) -> Query:
        return (
            self.db.query(Publication)
            .join(Project, Publication.project_id == Project.id)
            .filter(Publication.is_deleted.is_(False), Project.is_deleted.is_(False))
        )

    def _get_visible(self, publication_id: int) -> Publication:
        publication = self._visible().filter(Publication.id == publication_id).first()
        if not publication:
            raise NotFoundError(PUBLICATION_NOT_FOUND_MESSAGE)
        return publication

    def _get_active_project(self, project_id: int) -> Project:
        project = (
            self.db.query(Project)
            .filter(Project.id == project_id, Project.is_deleted.is_(False))
            .first()
        )
        if not project:
            raise NotFoundError(PROJECT_NOT_FOUND_MESSAGE)
        return project

    @staticmethod
    def _newest_first(query: Query) -> Query:
        return query.order_by(Publication.fecha.desc(), Publication.id.desc())

    # ========================================
    #  MUTACIONES
    # ========================================

    def create(self, data: PublicationCreate, actor: User) -> Publication:
        """
        Crea una publicación cuyos autores son los investigadores actuales del proyecto.

        Raises:
            NotFoundError: Proyecto inexistente o eliminado
            ForbiddenError: Actor ajeno al proyecto, o no administrador
                creando directamente en estado Publicado
        """
        project = self._get_active_project(data.proyecto)
        self.policy.authorize(actor, Operation.publication_create, project)
        if data.estado == PublicationStatus.publicado:
            self.policy.authorize(actor, Operation.publication_publish)

        publication = Publication(
            titulo=data.titulo,
            fecha=data.fecha,
            project_id=project.id,
            revista=data.revista,
            resumen=data.resumen,
            palabras_clave=list(data.palabras_clave),
            tipo_publicacion=data.tipo_publicacion,
            estado=data.estado,
            anexos=list(data.anexos),
            idioma=data.idioma,
            created_by=actor.id,
        )
        publication.autores = list(project.investigadores)

        with db_transaction(self.db):
            self.db.add(publication)
        self.db.refresh(publication)
        logger.info(f"Publicación creada: {publication.id} en proyecto {project.id} por {actor.email}")
        return publication

    def update(self, publication_id: int, actor: User, payload: Dict[str, Any]) -> Publication:
        """
        Actualiza una publicación.

        Orden de comprobaciones: existencia, autoría, campos bloqueados,
        pertenencia al nuevo proyecto, autores válidos y permiso de publicar.

        Raises:
            NotFoundError: Publicación o nuevo proyecto inexistentes
            ForbiddenError: Actor sin autoría o sin permiso para publicar
            BadRequestError: Campos no permitidos, campos bloqueados o autores
                ajenos al proyecto
        """
        publication = self._get_visible(publication_id)
        self.policy.authorize(actor, Operation.publication_update, publication)

        changes = PublicationUpdate.parse_patch(payload).changes()

        touches_locked = "autores" in changes or "proyecto" in changes
        if (
            touches_locked
            and publication.estado in LOCKED_PUBLICATION_STATUSES
            and not self.policy.can_perform(actor.role_name, actor.id, Operation.publication_update_locked)
        ):
            raise BadRequestError(LOCKED_FIELDS_MESSAGE)

        target_project = publication.project
        new_project_id = changes.pop("proyecto", None)
        if new_project_id is not None and new_project_id != publication.project_id:
            target_project = self._get_active_project(new_project_id)
            self.policy.authorize(
                actor, Operation.publication_create, target_project,
                message="No eres investigador del nuevo proyecto"
            )

        author_ids = changes.pop("autores", None)
        members = set(target_project.investigator_ids)
        if author_ids is None and target_project.id != publication.project_id:
            # Los autores actuales deben pertenecer también al nuevo proyecto
            invalid = [author_id for author_id in publication.author_ids if author_id not in members]
            if invalid:
                raise BadRequestError(INVALID_AUTHORS_MESSAGE, errors=[str(author_id) for author_id in invalid])
        if author_ids is not None:
            invalid = [author_id for author_id in author_ids if author_id not in members]
            if invalid:
                raise BadRequestError(INVALID_AUTHORS_MESSAGE, errors=[str(author_id) for author_id in invalid])
            if not author_ids:
                raise BadRequestError("La publicación debe tener al menos un autor")

        new_status = changes.pop("estado", None)
        if new_status == PublicationStatus.publicado and publication.estado != PublicationStatus.publicado:
            self.policy.authorize(actor, Operation.publication_publish)

        with db_transaction(self.db):
            if target_project.id != publication.project_id:
                publication.project = target_project
            if author_ids is not None:
                by_id = {user.id: user for user in target_project.investigadores}
                publication.autores = [by_id[author_id] for author_id in dict.fromkeys(author_ids)]
            if new_status is not None:
                publication.estado = new_status
            for field in SIMPLE_FIELDS:
                if field in changes:
                    setattr(publication, field, changes[field])

        self.db.refresh(publication)
        logger.info(f"Publicación actualizada: {publication.id} por {actor.email}")
        return publication

    def delete(self, publication_id: int, actor: User) -> Publication:
        """
        Borrado lógico.

        Raises:
            ForbiddenError: Actor que no es autor ni administrador
            BadRequestError: Publicación ya Publicada y actor no administrador
        """
        publication = self._get_visible(publication_id)
        self.policy.authorize(actor, Operation.publication_delete, publication)
        if (
            publication.estado == PublicationStatus.publicado
            and not self.policy.can_perform(actor.role_name, actor.id, Operation.publication_delete_published)
        ):
            raise BadRequestError("No puedes eliminar una publicación que ya ha sido publicada.")

        with db_transaction(self.db):
            publication.is_deleted = True
        self.db.refresh(publication)
        logger.info(f"Publicación eliminada: {publication.id} por {actor.email}")
        return publication

    def restore(self, publication_id: int, actor: User) -> Publication:
        """
        Restaura una publicación eliminada (solo administradores).

        Raises:
            NotFoundError: Publicación inexistente o no eliminada
            BadRequestError: Su proyecto está eliminado
        """
        publication = self.db.get(Publication, publication_id)
        if not publication or not publication.is_deleted:
            raise NotFoundError("Publicación no encontrada o no está eliminada.")
        self.policy.authorize(actor, Operation.publication_restore, publication)
        if publication.project.is_deleted:
            raise BadRequestError("No se puede restaurar la publicación de un proyecto eliminado")

        with db_transaction(self.db):
            publication.is_deleted = False
        self.db.refresh(publication)
        logger.info(f"Publicación restaurada: {publication.id} por {actor.email}")
        return publication

    # ========================================
    #  CONSULTAS
    # ========================================

    def get(self, publication_id: int) -> Publication:
        return self._get_visible(publication_id)

    def list(self, page: Optional[int] = None, limit: Optional[int] = None,
             tipo: Optional[PublicationType] = None, titulo: Optional[str] = None) -> dict:
        query = self._visible()
        if tipo:
            query = query.filter(Publication.tipo_publicacion == tipo)
        if titulo and titulo.strip():
            query = query.filter(Publication.titulo.ilike(like_pattern(titulo.strip()), escape="\\"))
        return paginate(self._newest_first(query), page, limit)

    def list_for_user(self, user: User, page: Optional[int] = None, limit: Optional[int] = None) -> dict:
        """
        Publicaciones de las que el usuario es autor, con los catálogos de
        tipos y estados para los filtros del cliente.
        """
        query = self._visible().filter(Publication.autores.any(User.id == user.id))
        result = paginate(self._newest_first(query), page, limit)
        result["tipos_publicacion"] = [tipo.value for tipo in PublicationType]
        result["estados_publicacion"] = [estado.value for estado in PublicationStatus]
        return result

    def search(self, text: str, page: Optional[int] = None, limit: Optional[int] = None) -> dict:
        """
        Búsqueda por subcadena en título, resumen y palabras clave.

        Raises:
            BadRequestError: Texto vacío
            NotFoundError: Sin resultados
        """
        if not text or not text.strip():
            raise BadRequestError("Debe indicar un texto de búsqueda")
        pattern = like_pattern(text.strip())
        query = self._visible().filter(or_(
            Publication.titulo.ilike(pattern, escape="\\"),
            Publication.resumen.ilike(pattern, escape="\\"),
            cast(Publication.palabras_clave, String).ilike(pattern, escape="\\"),
        ))
        result = paginate(self._newest_first(query), page, limit)
        if result["total"] == 0:
            raise NotFoundError("No se encontraron publicaciones")
        return result
