from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.orm import Session

from sisinvestiga.core.policy import AuthorizationPolicy, get_policy
from sisinvestiga.db.database import get_db
from sisinvestiga.models.models import User
from sisinvestiga.schemas.common_schemas import MessageResponse
from sisinvestiga.schemas.role_schemas import RoleCreate, RoleEnvelope, RoleOut
from sisinvestiga.services.auth_service import get_current_user
from sisinvestiga.services.role_service import RoleService

router = APIRouter(prefix="/roles", tags=["roles"])


@router.get("", response_model=List[RoleOut])
def list_roles(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
):
    return RoleService(db, policy).list_roles(current_user)


@router.post("", response_model=RoleEnvelope, status_code=status.HTTP_201_CREATED)
def create_role(
    data: RoleCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
):
    role = RoleService(db, policy).create(data, current_user)
    return {"message": "Rol creado correctamente", "rol": role}


@router.put("/{role_id}", response_model=RoleEnvelope)
def update_role(
    role_id: int,
    payload: Dict[str, Any] = Body(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
):
    role = RoleService(db, policy).update(role_id, current_user, payload)
    return {"message": "Rol actualizado correctamente", "rol": role}


@router.delete("/{role_id}", response_model=MessageResponse)
def delete_role(
    role_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
):
    """Eliminar un rol. Falla mientras haya usuarios con ese rol."""
    RoleService(db, policy).delete(role_id, current_user)
    return {"message": "Rol eliminado correctamente"}
