from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from sisinvestiga.core.policy import AuthorizationPolicy, get_policy
from sisinvestiga.db.database import get_db
from sisinvestiga.enums.enums import RequestStatus, RequestType
from sisinvestiga.models.models import User
from sisinvestiga.schemas.common_schemas import Page
from sisinvestiga.schemas.request_schemas import RequestCreate, RequestEnvelope, RequestOut
from sisinvestiga.services.auth_service import get_current_user
from sisinvestiga.services.request_service import RequestService

router = APIRouter(prefix="/requests", tags=["requests"])


def get_request_service(
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> RequestService:
    return RequestService(db, policy)


@router.get("", response_model=Page[RequestOut])
def list_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    estado: Optional[RequestStatus] = None,
    tipo: Optional[RequestType] = None,
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    """Todas las solicitudes para administradores; las propias para el resto."""
    return service.list(current_user, page, limit, estado, tipo)


@router.get("/me", response_model=Page[RequestOut])
def list_my_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    return service.list_for_user(current_user, page, limit)


@router.post("", response_model=RequestEnvelope, status_code=status.HTTP_201_CREATED)
def create_request(
    data: RequestCreate,
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    request = service.create(data, current_user)
    return {"message": "Solicitud creada correctamente", "solicitud": request}


@router.get("/{request_id}", response_model=RequestEnvelope)
def get_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    return {"solicitud": service.get(request_id, current_user)}


@router.get("/{request_id}/admin", response_model=RequestEnvelope)
def get_request_admin(
    request_id: int,
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    """Consulta de administración: incluye solicitudes eliminadas."""
    return {"solicitud": service.get_including_deleted(request_id, current_user)}


@router.put("/{request_id}", response_model=RequestEnvelope)
def update_request(
    request_id: int,
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    """
    Cambiar el estado (solo administradores) y/o agregar un comentario.

    Body: `{"estado": "Aprobada", "comentario": "..."}`
    """
    request = service.update(request_id, current_user, payload)
    return {"message": "Solicitud actualizada correctamente", "solicitud": request}


@router.delete("/{request_id}", response_model=RequestEnvelope)
def delete_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    request = service.delete(request_id, current_user)
    return {"message": "Solicitud eliminada correctamente", "solicitud": request}


@router.put("/{request_id}/restore", response_model=RequestEnvelope)
def restore_request(
    request_id: int,
    current_user: User = Depends(get_current_user),
    service: RequestService = Depends(get_request_service),
):
    request = service.restore(request_id, current_user)
    return {"message": "Solicitud restaurada correctamente", "solicitud": request}
