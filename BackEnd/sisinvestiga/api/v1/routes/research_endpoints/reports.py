"""
Endpoints de informes descargables (CSV y PDF).

Los informes globales son solo para administradores; los propios se limitan
a los proyectos del usuario autenticado y a sus evaluaciones.
"""

from enum import Enum

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from sisinvestiga.core.policy import AuthorizationPolicy, get_policy
from sisinvestiga.db.database import get_db
from sisinvestiga.models.models import User
from sisinvestiga.services.auth_service import get_current_user
from sisinvestiga.services.report_service import ReportFile, ReportService

router = APIRouter(prefix="/reports", tags=["reports"])


class ReportFormat(str, Enum):
    csv = "csv"
    pdf = "pdf"


def get_report_service(
    db: Session = Depends(get_db),
    policy: AuthorizationPolicy = Depends(get_policy),
) -> ReportService:
    return ReportService(db, policy)


def _download(report: ReportFile) -> StreamingResponse:
    return StreamingResponse(
        iter([report.content]),
        media_type=report.media_type,
        headers={"Content-Disposition": f"attachment; filename={report.filename}"}
    )


@router.get("/projects/{fmt}")
def export_projects(
    fmt: ReportFormat,
    current_user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    """Informe de todos los proyectos activos."""
    return _download(service.projects_report(current_user, fmt.value))


@router.get("/evaluations/{fmt}")
def export_evaluations(
    fmt: ReportFormat,
    current_user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    return _download(service.evaluations_report(current_user, fmt.value))


@router.get("/me/projects/{fmt}")
def export_my_projects(
    fmt: ReportFormat,
    current_user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    """Informe de los proyectos en los que participa el usuario."""
    return _download(service.projects_report(current_user, fmt.value, own=True))


@router.get("/me/evaluations/{fmt}")
def export_my_evaluations(
    fmt: ReportFormat,
    current_user: User = Depends(get_current_user),
    service: ReportService = Depends(get_report_service),
):
    return _download(service.evaluations_report(current_user, fmt.value, own=True))
