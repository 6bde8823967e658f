from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session

from sisinvestiga.core.policy import AuthorizationPolicy, get_policy
from sisinvestiga.db.database import get_db
from sisinvestiga.models.models import User
from sisinvestiga.schemas.common_schemas import Page
from sisinvestiga.schemas.evaluation_schemas import EvaluationCreate, EvaluationEnvelope, EvaluationOut
from sisinvestiga.services.auth_service import get_current_user
from sisinvestiga.services.evaluation_service import EvaluationService

router = APIRouter(prefix="/evaluations", tags=["evaluations"])


def get_evaluation_service(
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> EvaluationService:
    return EvaluationService(db, policy)


@router.post(
    "/projects/{project_id}",
    response_model=EvaluationEnvelope,
    status_code=status.HTTP_201_CREATED
)
def evaluate_project(
    project_id: int,
    data: EvaluationCreate,
    current_user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
):
    """
    Evaluar un proyecto (solo administradores).

    Cada administrador evalúa un proyecto una sola vez; la primera evaluación
    marca el proyecto como evaluado.
    """
    evaluation = service.create(project_id, current_user, data)
    return {"message": "Evaluación creada correctamente", "evaluacion": evaluation}


@router.get("/projects/{project_id}", response_model=List[EvaluationOut])
def list_project_evaluations(
    project_id: int,
    current_user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
):
    return service.list_by_project(project_id)


@router.get("", response_model=Page[EvaluationOut])
def list_evaluations(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
):
    return service.list(current_user, page, limit)


@router.put("/{evaluation_id}", response_model=EvaluationEnvelope)
def update_evaluation(
    evaluation_id: int,
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
):
    evaluation = service.update(evaluation_id, current_user, payload)
    return {"message": "Evaluación actualizada correctamente", "evaluacion": evaluation}


@router.delete("/{evaluation_id}", response_model=EvaluationEnvelope)
def delete_evaluation(
    evaluation_id: int,
    current_user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
):
    evaluation = service.delete(evaluation_id, current_user)
    return {"message": "Evaluación eliminada correctamente", "evaluacion": evaluation}


@router.put("/{evaluation_id}/restore", response_model=EvaluationEnvelope)
def restore_evaluation(
    evaluation_id: int,
    current_user: User = Depends(get_current_user),
    service: EvaluationService = Depends(get_evaluation_service),
):
    evaluation = service.restore(evaluation_id, current_user)
    return {"message": "Evaluación restaurada correctamente", "evaluacion": evaluation}
