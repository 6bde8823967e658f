"""
Endpoints de publicaciones.

Los autores de una publicación nueva son siempre los investigadores del
proyecto; la actualización rechaza cualquier campo no permitido.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from sisinvestiga.core.policy import AuthorizationPolicy, get_policy
from sisinvestiga.db.database import get_db
from sisinvestiga.enums.enums import PublicationType
from sisinvestiga.models.models import User
from sisinvestiga.schemas.common_schemas import Page
from sisinvestiga.schemas.publication_schemas import (
    PublicationCreate,
    PublicationEnvelope,
    PublicationOut,
    UserPublicationsResponse,
)
from sisinvestiga.services.auth_service import get_current_user
from sisinvestiga.services.publication_service import PublicationService

router = APIRouter(prefix="/publications", tags=["publications"])


def get_publication_service(
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> PublicationService:
    return PublicationService(db, policy)


@router.get("", response_model=Page[PublicationOut])
def list_publications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    tipo: Optional[PublicationType] = None,
    titulo: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    service: PublicationService = Depends(get_publication_service),
):
    return service.list(page, limit, tipo, titulo)


@router.get("/me", response_model=UserPublicationsResponse)
def list_my_publications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: User = Depends(get_current_user),
    service: PublicationService = Depends(get_publication_service),
):
    """Publicaciones del usuario y catálogos de tipos y estados."""
    return service.list_for_user(current_user, page, limit)


@router.get("/search", response_model=Page[PublicationOut])
def search_publications(
    q: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: User = Depends(get_current_user),
    service: PublicationService = Depends(get_publication_service),
):
    return service.search(q, page, limit)


@router.post("", response_model=PublicationEnvelope, status_code=status.HTTP_201_CREATED)
def create_publication(
    data: PublicationCreate,
    current_user: User = Depends(get_current_user),
    service: PublicationService = Depends(get_publication_service),
):
    publication = service.create(data, current_user)
    return {"message": "Publicación creada correctamente", "publicacion": publication}


@router.get("/{publication_id}", response_model=PublicationEnvelope)
def get_publication(
    publication_id: int,
    current_user: User = Depends(get_current_user),
    service: PublicationService = Depends(get_publication_service),
):
    return {"publicacion": service.get(publication_id)}


@router.put("/{publication_id}", response_model=PublicationEnvelope)
def update_publication(
    publication_id: int,
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    service: PublicationService = Depends(get_publication_service),
):
    publication = service.update(publication_id, current_user, payload)
    return {"message": "Publicación actualizada correctamente", "publicacion": publication}


@router.delete("/{publication_id}", response_model=PublicationEnvelope)
def delete_publication(
    publication_id: int,
    current_user: User = Depends(get_current_user),
    service: PublicationService = Depends(get_publication_service),
):
    publication = service.delete(publication_id, current_user)
    return {"message": "Publicación eliminada correctamente", "publicacion": publication}


@router.put("/{publication_id}/restore", response_model=PublicationEnvelope)
def restore_publication(
    publication_id: int,
    current_user: User = Depends(get_current_user),
    service: PublicationService = Depends(get_publication_service),
):
    publication = service.restore(publication_id, current_user)
    return {"message": "Publicación restaurada correctamente", "publicacion": publication}
