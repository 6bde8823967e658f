"""
Módulo de modelos ORM para base de datos.

Define las tablas y relaciones del sistema de gestión de investigación usando
SQLAlchemy ORM.

Estructura:
    - Mixins: TimestampMixin para created_at/updated_at
    - Autenticación: Role, User, ActiveSession, LoginAttempt
    - Proyectos: Project, Milestone, project_investigators
    - Evaluaciones: Evaluation
    - Publicaciones: Publication, publication_authors
    - Solicitudes: Request, RequestComment

Las entidades con borrado lógico (Project, Evaluation, Publication, Request)
nunca se eliminan físicamente: `is_deleted` las oculta de las consultas por
defecto.
"""

from datetime import datetime
from typing import List

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Index, Integer,
    String, Table, Text, CheckConstraint, UniqueConstraint, text
)
from sqlalchemy import Enum as SqlEnum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from sisinvestiga.db.database import Base
from sisinvestiga.enums.enums import (
    ProjectStatus, PublicationStatus, PublicationType, RequestStatus,
    RequestType, RoleName
)


def _enum_values(enum_cls):
    """Persistir el valor legible del enum ("En Proceso") en lugar del nombre."""
    return [member.value for member in enum_cls]


# =========================================================
# MIXINS - Campos comunes
# =========================================================

class TimestampMixin:
    """
    Mixin para agregar campos de timestamp automáticos.

    Campos:
        - created_at: Cuándo se creó el registro (inmutable)
        - updated_at: Cuándo se actualizó por última vez
    """
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        server_default=func.now(),
        nullable=False
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        server_default=func.now(),
        onupdate=datetime.utcnow,
        nullable=False
    )


# =========================================================
# TABLAS DE ASOCIACIÓN
# =========================================================

project_investigators = Table(
    "project_investigators",
    Base.metadata,
    Column("project_id", Integer, ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
)

publication_authors = Table(
    "publication_authors",
    Base.metadata,
    Column("publication_id", Integer, ForeignKey("publications.id", ondelete="CASCADE"), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), primary_key=True),
)


# =========================================================
# AUTENTICACIÓN
# =========================================================

class Role(Base):
    """
    Grupo de permisos con nombre (Administrador, Investigador).

    El usuario referencia el rol por clave foránea; un rol no puede
    eliminarse mientras algún usuario lo tenga asignado.
    """
    __tablename__ = "roles"

    id = Column(Integer, primary_key=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)

    users = relationship("User", back_populates="role")

    def __repr__(self):
        return f"<Role(id={self.id}, name={self.name})>"


class User(Base, TimestampMixin):
    """
    Modelo de usuario.

    Campos principales:
        - email: Correo único (usado para login, siempre en minúsculas)
        - password_hash: Hash bcrypt_sha256 (nunca la contraseña en claro)
        - nombre, apellido, especializacion, responsabilidades, foto_perfil
        - role_id: FK a Role
        - is_active: False cuando un administrador deshabilita la cuenta
        - is_verified: True tras confirmar el email

    Campos de tokens de un solo uso:
        - verification_token / verification_token_expires
        - reset_password_token / reset_password_expires

    Relaciones:
        - role: Role del usuario
        - active_sessions: Sesiones abiertas (una por token emitido)
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    nombre = Column(String(100), nullable=False)
    apellido = Column(String(100), nullable=False)
    especializacion = Column(String(200), nullable=True)
    responsabilidades = Column(JSON, default=list, nullable=False)
    foto_perfil = Column(String(500), nullable=True)

    role_id = Column(Integer, ForeignKey("roles.id"), nullable=False)
    role = relationship("Role", back_populates="users")

    is_active = Column(Boolean, default=True, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    last_login = Column(DateTime, nullable=True)

    verification_token = Column(String(128), nullable=True, index=True)
    verification_token_expires = Column(DateTime, nullable=True)
    reset_password_token = Column(String(512), nullable=True)
    reset_password_expires = Column(DateTime, nullable=True)

    active_sessions = relationship(
        "ActiveSession",
        back_populates="user",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email})>"

    @property
    def role_name(self) -> str:
        return self.role.name if self.role else ""

    @property
    def is_admin(self) -> bool:
        """Verifica si el usuario es administrador"""
        return self.role_name == RoleName.administrador.value

    @property
    def full_name(self) -> str:
        return f"{self.nombre} {self.apellido}".strip()


class ActiveSession(Base):
    """
    Sesión abierta de un usuario.

    Cada login emite un JWT con un `jti` propio y registra aquí una fila.
    Un token solo es válido mientras su fila exista: cerrar sesión borra
    exactamente esa fila y cerrar todas borra todas las del usuario.
    """
    __tablename__ = "active_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    token_jti = Column(String(64), unique=True, nullable=False, index=True)

    device = Column(String(255), nullable=True)
    ip_address = Column(String(50), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="active_sessions")

    def __repr__(self):
        return f"<ActiveSession(user_id={self.user_id}, device={self.device})>"


class LoginAttempt(Base):
    """
    Registro de intentos de login.

    Se usa para limitar intentos fallidos por email dentro de una ventana
    de tiempo. Se registra incluso si el email no existe.
    """
    __tablename__ = "login_attempts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), index=True, nullable=False)
    ip_address = Column(String(45), nullable=True)
    success = Column(Boolean, default=False, nullable=False)
    attempted_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    user_agent = Column(String(255), nullable=True)


# =========================================================
# PROYECTOS
# =========================================================

class Project(Base, TimestampMixin):
    """
    Proyecto de investigación.

    Campos:
        - nombre: Único entre proyectos no eliminados
        - fecha_inicio / fecha_fin: Cronograma (ambas obligatorias)
        - estado: Planeado, En Proceso, Finalizado, Cancelado
        - is_evaluated: Se activa con la primera evaluación y nunca se desactiva
        - is_deleted: Borrado lógico

    Relaciones:
        - investigadores: Usuarios participantes (el creador siempre incluido)
        - hitos: Hitos ordenados por posición
        - evaluations, publications

    Índices:
        - uq_projects_nombre_activo: unicidad de nombre solo entre activos
    """
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    nombre = Column(String(255), nullable=False, index=True)
    descripcion = Column(Text, nullable=False)
    objetivos = Column(Text, nullable=True)
    presupuesto = Column(Float, nullable=False)
    fecha_inicio = Column(DateTime, nullable=False)
    fecha_fin = Column(DateTime, nullable=False)
    recursos = Column(JSON, default=list, nullable=False)
    estado = Column(
        SqlEnum(ProjectStatus, name="project_status_enum", values_callable=_enum_values),
        default=ProjectStatus.planeado,
        nullable=False
    )
    imagen = Column(String(500), nullable=True)
    is_evaluated = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    creator = relationship("User", foreign_keys=[created_by])

    investigadores = relationship(
        "User",
        secondary=project_investigators,
        order_by="User.id"
    )
    hitos = relationship(
        "Milestone",
        back_populates="project",
        order_by="Milestone.position",
        cascade="all, delete-orphan"
    )
    evaluations = relationship("Evaluation", back_populates="project")
    publications = relationship("Publication", back_populates="project")

    __table_args__ = (
        Index(
            "uq_projects_nombre_activo",
            "nombre",
            unique=True,
            sqlite_where=text("is_deleted = 0"),
            postgresql_where=text("is_deleted = false"),
        ),
        CheckConstraint("presupuesto >= 0", name="check_project_budget_positive"),
    )

    def __repr__(self):
        return f"<Project(id={self.id}, nombre={self.nombre})>"

    @property
    def investigator_ids(self) -> List[int]:
        return [user.id for user in self.investigadores]

    def has_investigator(self, user_id: int) -> bool:
        return user_id in self.investigator_ids


class Milestone(Base):
    """Hito de un proyecto: nombre, fecha y entregables."""
    __tablename__ = "milestones"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(
        Integer,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position = Column(Integer, nullable=False, default=0)
    nombre = Column(String(255), nullable=False)
    fecha = Column(DateTime, nullable=False)
    entregables = Column(JSON, default=list, nullable=False)

    project = relationship("Project", back_populates="hitos")


# =========================================================
# EVALUACIONES
# =========================================================

class Evaluation(Base, TimestampMixin):
    """
    Evaluación de un proyecto por un administrador.

    Constraints:
        - Único (project_id, evaluator_id): un evaluador no puede evaluar
          dos veces el mismo proyecto
        - 0 <= puntuacion <= 100
    """
    __tablename__ = "evaluations"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    evaluator_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    puntuacion = Column(Float, nullable=False)
    comentarios = Column(Text, nullable=True)
    fecha_evaluacion = Column(DateTime, default=datetime.utcnow, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)

    project = relationship("Project", back_populates="evaluations")
    evaluator = relationship("User")

    __table_args__ = (
        UniqueConstraint("project_id", "evaluator_id", name="uq_evaluation_project_evaluator"),
        CheckConstraint("puntuacion >= 0 AND puntuacion <= 100", name="check_evaluation_score_range"),
    )

    def __repr__(self):
        return f"<Evaluation(project_id={self.project_id}, evaluator_id={self.evaluator_id})>"


# =========================================================
# PUBLICACIONES
# =========================================================

class Publication(Base, TimestampMixin):
    """
    Publicación derivada de un proyecto.

    Los autores se copian del equipo del proyecto al crearla. Una vez en
    estado Revisado o Publicado, autores y proyecto solo los cambia un
    administrador.
    """
    __tablename__ = "publications"

    id = Column(Integer, primary_key=True, index=True)
    titulo = Column(String(255), nullable=False, index=True)
    fecha = Column(DateTime, nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    revista = Column(String(255), nullable=False)
    resumen = Column(Text, nullable=True)
    palabras_clave = Column(JSON, default=list, nullable=False)
    tipo_publicacion = Column(
        SqlEnum(PublicationType, name="publication_type_enum", values_callable=_enum_values),
        nullable=False
    )
    estado = Column(
        SqlEnum(PublicationStatus, name="publication_status_enum", values_callable=_enum_values),
        default=PublicationStatus.borrador,
        nullable=False
    )
    anexos = Column(JSON, default=list, nullable=False)
    idioma = Column(String(50), nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)

    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    project = relationship("Project", back_populates="publications")
    autores = relationship(
        "User",
        secondary=publication_authors,
        order_by="User.id"
    )

    def __repr__(self):
        return f"<Publication(id={self.id}, titulo={self.titulo})>"

    @property
    def author_ids(self) -> List[int]:
        return [user.id for user in self.autores]


# =========================================================
# SOLICITUDES
# =========================================================

class Request(Base, TimestampMixin):
    """
    Solicitud (ticket) de un investigador.

    Campos:
        - tipo_solicitud: algunos tipos exigen proyecto asociado
        - estado: solo un administrador lo cambia; al hacerlo se registran
          revisado_por y fecha_resolucion
        - comentarios: hilo de solo inserción
    """
    __tablename__ = "requests"

    id = Column(Integer, primary_key=True, index=True)
    solicitante_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tipo_solicitud = Column(
        SqlEnum(RequestType, name="request_type_enum", values_callable=_enum_values),
        nullable=False
    )
    descripcion = Column(Text, nullable=False)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True)
    estado = Column(
        SqlEnum(RequestStatus, name="request_status_enum", values_callable=_enum_values),
        default=RequestStatus.pendiente,
        nullable=False
    )
    revisado_por_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    fecha_resolucion = Column(DateTime, nullable=True)
    is_deleted = Column(Boolean, default=False, nullable=False, index=True)

    solicitante = relationship("User", foreign_keys=[solicitante_id])
    revisado_por = relationship("User", foreign_keys=[revisado_por_id])
    project = relationship("Project")
    comentarios = relationship(
        "RequestComment",
        back_populates="request",
        order_by="RequestComment.id",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Request(id={self.id}, tipo={self.tipo_solicitud})>"


class RequestComment(Base):
    """Comentario en el hilo de una solicitud."""
    __tablename__ = "request_comments"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(
        Integer,
        ForeignKey("requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    usuario_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    comentario = Column(Text, nullable=False)
    fecha = Column(DateTime, default=datetime.utcnow, nullable=False)

    request = relationship("Request", back_populates="comentarios")
    usuario = relationship("User")
