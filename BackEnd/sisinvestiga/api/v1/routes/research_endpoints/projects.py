"""
Endpoints de proyectos de investigación.

Listado, búsqueda, proyectos propios, creación, actualización, borrado
lógico y restauración.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from sisinvestiga.core.policy import AuthorizationPolicy, get_policy
from sisinvestiga.db.database import get_db
from sisinvestiga.models.models import User
from sisinvestiga.schemas.common_schemas import Page
from sisinvestiga.schemas.project_schemas import ProjectCreate, ProjectEnvelope, ProjectOut
from sisinvestiga.services.auth_service import get_current_user
from sisinvestiga.services.project_service import ProjectService

router = APIRouter(prefix="/projects", tags=["projects"])


def get_project_service(
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> ProjectService:
    return ProjectService(db, policy)


@router.get("", response_model=Page[ProjectOut])
def list_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """Proyectos activos, los más recientes primero."""
    return service.list(page, limit, search)


@router.get("/me", response_model=Page[ProjectOut])
def list_my_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """Proyectos en los que el usuario autenticado es investigador."""
    return service.list_for_user(current_user, page, limit, search)


@router.get("/search", response_model=Page[ProjectOut])
def search_projects(
    q: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return service.search(q, page, limit)


@router.post("", response_model=ProjectEnvelope, status_code=status.HTTP_201_CREATED)
def create_project(
    data: ProjectCreate,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """
    Crear un proyecto.

    Requiere cronograma completo y al menos un hito con nombre y fecha. El
    creador queda siempre entre los investigadores.
    """
    project = service.create(data, current_user)
    return {"message": "Proyecto creado correctamente", "proyecto": project}


@router.get("/{project_id}", response_model=ProjectEnvelope)
def get_project(
    project_id: int,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    return {"proyecto": service.get(project_id)}


@router.put("/{project_id}", response_model=ProjectEnvelope)
def update_project(
    project_id: int,
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    """Actualizar un proyecto. Los campos no modificables se ignoran."""
    project = service.update(project_id, current_user, payload)
    return {"message": "Proyecto actualizado correctamente", "proyecto": project}


@router.delete("/{project_id}", response_model=ProjectEnvelope)
def delete_project(
    project_id: int,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    project = service.soft_delete(project_id, current_user)
    return {"message": "Proyecto eliminado correctamente", "proyecto": project}


@router.put("/{project_id}/restore", response_model=ProjectEnvelope)
def restore_project(
    project_id: int,
    current_user: User = Depends(get_current_user),
    service: ProjectService = Depends(get_project_service),
):
    project = service.restore(project_id, current_user)
    return {"message": "Proyecto restaurado correctamente", "proyecto": project}
