"""
Servicio de informes.

Proyecciones de solo lectura sobre proyectos y evaluaciones, exportables a
CSV y PDF. Dos alcances:

    - Global (administradores): todos los proyectos y evaluaciones activos
    - Propio: proyectos donde el actor es investigador y las evaluaciones
      de esos proyectos

Un alcance sin datos produce un informe vacío, no un error.
"""

import csv
import io
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional
from xml.sax.saxutils import escape

from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer
from sqlalchemy.orm import Session, selectinload

from sisinvestiga.core.policy import AuthorizationPolicy, Operation
from sisinvestiga.models.models import Evaluation, Project, User

logger = logging.getLogger(__name__)

NOT_AVAILABLE = "N/A"

PROJECT_FIELDS = [
    "nombre", "descripcion", "objetivos", "presupuesto", "estado", "fechaInicio",
    "fechaFin", "investigadores", "recursos", "hitos", "evaluacionPromedio",
]
EVALUATION_FIELDS = [
    "evaluadorNombre", "evaluadorApellido", "evaluadorEmail", "evaluadorEspecializacion",
    "evaluadorRol", "proyectoNombre", "proyectoDescripcion", "proyectoEstado",
    "puntuacion", "comentarios", "fechaEvaluacion",
]

CSV_MEDIA_TYPE = "text/csv"
PDF_MEDIA_TYPE = "application/pdf"


@dataclass
class ReportFile:
    filename: str
    media_type: str
    content: bytes


def format_date(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y") if value else NOT_AVAILABLE


def generate_unique_filename(prefix: str, extension: str) -> str:
    """`<prefijo>_<marca ISO con ':' y '.' cambiados por '-'>.<ext>`"""
    timestamp = datetime.utcnow().isoformat(timespec="milliseconds") + "Z"
    timestamp = timestamp.replace(":", "-").replace(".", "-")
    return f"{prefix}_{timestamp}.{extension}"


def average_score(evaluations: List[Evaluation]) -> str:
    """Media de las evaluaciones activas con dos decimales, o N/A si no hay."""
    scores = [evaluation.puntuacion for evaluation in evaluations if not evaluation.is_deleted]
    if not scores:
        return NOT_AVAILABLE
    return f"{sum(scores) / len(scores):.2f}"


def _value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


# ========================================
#  RENDERIZADO
# ========================================

def to_csv(rows: List[Dict[str, Any]], fields: List[str]) -> bytes:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=fields)
    writer.writeheader()
    for row in rows:
        writer.writerow({field: "" if row.get(field) is None else row[field] for field in fields})
    return output.getvalue().encode("utf-8")


def _pdf(title: str, sections: List[Dict[str, Any]], empty_message: str) -> bytes:
    """
    Construye un PDF con un título y una sección por registro.

    Cada sección es {"heading": str, "lines": [str, ...]}.
    """
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=letter, title=title)
    styles = getSampleStyleSheet()

    story = [Paragraph(escape(title), styles["Title"]), Spacer(1, 12)]
    if not sections:
        story.append(Paragraph(escape(empty_message), styles["Normal"]))
    for section in sections:
        story.append(Paragraph(escape(section["heading"]), styles["Heading2"]))
        for line in section["lines"]:
            story.append(Paragraph(escape(line), styles["Normal"]))
        story.append(Spacer(1, 12))

    doc.build(story)
    return buffer.getvalue()


class ReportService:

    def __init__(self, db: Session, policy: AuthorizationPolicy):
        self.db = db
        self.policy = policy

    # ========================================
    #  CONSULTAS
    # ========================================

    def _projects(self, owner: Optional[User] = None) -> List[Project]:
        query = (
            self.db.query(Project)
            .options(
                selectinload(Project.investigadores).selectinload(User.role),
                selectinload(Project.hitos),
                selectinload(Project.evaluations),
            )
            .filter(Project.is_deleted.is_(False))
        )
        if owner is not None:
            query = query.filter(Project.investigadores.any(User.id == owner.id))
        return query.order_by(Project.created_at.desc(), Project.id.desc()).all()

    def _evaluations(self, owner: Optional[User] = None) -> List[Evaluation]:
        query = (
            self.db.query(Evaluation)
            .join(Project, Evaluation.project_id == Project.id)
            .options(selectinload(Evaluation.evaluator).selectinload(User.role))
            .filter(Evaluation.is_deleted.is_(False), Project.is_deleted.is_(False))
        )
        if owner is not None:
            query = query.filter(Project.investigadores.any(User.id == owner.id))
        return query.order_by(Evaluation.fecha_evaluacion.desc(), Evaluation.id.desc()).all()

    def project_rows(self, owner: Optional[User] = None) -> List[Dict[str, Any]]:
        rows = []
        for project in self._projects(owner):
            rows.append({
                "nombre": project.nombre,
                "descripcion": project.descripcion,
                "objetivos": project.objetivos,
                "presupuesto": project.presupuesto,
                "estado": _value(project.estado),
                "fechaInicio": format_date(project.fecha_inicio),
                "fechaFin": format_date(project.fecha_fin),
                "investigadores": ", ".join(
                    f"{user.nombre} {user.apellido} ({user.especializacion or NOT_AVAILABLE})"
                    for user in project.investigadores
                ),
                "recursos": ", ".join(project.recursos or []),
                "hitos": "; ".join(f"{hito.nombre}: {format_date(hito.fecha)}" for hito in project.hitos),
                "evaluacionPromedio": average_score(project.evaluations),
            })
        return rows

    def evaluation_rows(self, owner: Optional[User] = None) -> List[Dict[str, Any]]:
        rows = []
        for evaluation in self._evaluations(owner):
            evaluator = evaluation.evaluator
            project = evaluation.project
            rows.append({
                "evaluadorNombre": evaluator.nombre,
                "evaluadorApellido": evaluator.apellido,
                "evaluadorEmail": evaluator.email,
                "evaluadorEspecializacion": evaluator.especializacion,
                "evaluadorRol": evaluator.role_name,
                "proyectoNombre": project.nombre,
                "proyectoDescripcion": project.descripcion,
                "proyectoEstado": _value(project.estado),
                "puntuacion": evaluation.puntuacion,
                "comentarios": evaluation.comentarios,
                "fechaEvaluacion": format_date(evaluation.fecha_evaluacion),
            })
        return rows

    # ========================================
    #  PDF
    # ========================================

    def _projects_pdf(self, owner: Optional[User]) -> bytes:
        sections = []
        for project in self._projects(owner):
            lines = [
                f"Descripción: {project.descripcion or NOT_AVAILABLE}",
                f"Objetivos: {project.objetivos or NOT_AVAILABLE}",
                f"Presupuesto: ${project.presupuesto}",
                f"Estado: {_value(project.estado)}",
                f"Fecha de inicio: {format_date(project.fecha_inicio)}",
                f"Fecha de finalización: {format_date(project.fecha_fin)}",
                "Investigadores:",
            ]
            if project.investigadores:
                lines.extend(
                    f"  - {user.nombre} {user.apellido} ({user.especializacion or NOT_AVAILABLE}) - {user.role_name}"
                    for user in project.investigadores
                )
            else:
                lines.append("  No hay investigadores asignados")
            lines.append(f"Recursos: {', '.join(project.recursos or []) or NOT_AVAILABLE}")
            lines.append("Hitos:")
            if project.hitos:
                lines.extend(f"  - {hito.nombre}: {format_date(hito.fecha)}" for hito in project.hitos)
            else:
                lines.append("  No hay hitos definidos")
            average = average_score(project.evaluations)
            if average == NOT_AVAILABLE:
                lines.append("No hay evaluaciones disponibles")
            else:
                lines.append(f"Evaluación promedio: {average}")
            sections.append({"heading": project.nombre, "lines": lines})
        return _pdf("Informe Detallado de Proyectos", sections, "No hay proyectos para mostrar")

    def _evaluations_pdf(self, owner: Optional[User]) -> bytes:
        sections = []
        for evaluation in self._evaluations(owner):
            evaluator = evaluation.evaluator
            project = evaluation.project
            sections.append({
                "heading": f"Evaluación para {project.nombre}",
                "lines": [
                    f"Evaluador: {evaluator.nombre} {evaluator.apellido}",
                    f"Email: {evaluator.email}",
                    f"Especialización: {evaluator.especializacion or NOT_AVAILABLE}",
                    f"Rol: {evaluator.role_name}",
                    f"Proyecto: {project.nombre}",
                    f"Descripción del proyecto: {project.descripcion or NOT_AVAILABLE}",
                    f"Estado del proyecto: {_value(project.estado)}",
                    f"Puntuación: {evaluation.puntuacion}",
                    f"Comentarios: {evaluation.comentarios or NOT_AVAILABLE}",
                    f"Fecha de evaluación: {format_date(evaluation.fecha_evaluacion)}",
                ],
            })
        return _pdf("Informe Detallado de Evaluaciones", sections, "No hay evaluaciones para mostrar")

    # ========================================
    #  EXPORTACIÓN
    # ========================================

    def _scope(self, actor: User, own: bool) -> Optional[User]:
        operation = Operation.report_own if own else Operation.report_global
        self.policy.authorize(actor, operation)
        return actor if own else None

    def projects_report(self, actor: User, fmt: str, own: bool = False) -> ReportFile:
        """
        Informe de proyectos en formato `csv` o `pdf`.

        Args:
            actor: Usuario que solicita el informe
            fmt: "csv" o "pdf"
            own: True para limitarlo a los proyectos del actor
        """
        owner = self._scope(actor, own)
        prefix = "My_Projects_Report" if own else "Project_Reports"
        if fmt == "pdf":
            report = ReportFile(generate_unique_filename(prefix, "pdf"), PDF_MEDIA_TYPE, self._projects_pdf(owner))
        else:
            content = to_csv(self.project_rows(owner), PROJECT_FIELDS)
            report = ReportFile(generate_unique_filename(prefix, "csv"), CSV_MEDIA_TYPE, content)
        logger.info(f"Informe de proyectos {report.filename} generado por {actor.email}")
        return report

    def evaluations_report(self, actor: User, fmt: str, own: bool = False) -> ReportFile:
        owner = self._scope(actor, own)
        prefix = "My_Projects_Evaluations_Report" if own else "Evaluations_Report"
        if fmt == "pdf":
            report = ReportFile(generate_unique_filename(prefix, "pdf"), PDF_MEDIA_TYPE, self._evaluations_pdf(owner))
        else:
            content = to_csv(self.evaluation_rows(owner), EVALUATION_FIELDS)
            report = ReportFile(generate_unique_filename(prefix, "csv"), CSV_MEDIA_TYPE, content)
        logger.info(f"Informe de evaluaciones {report.filename} generado por {actor.email}")
        return report
