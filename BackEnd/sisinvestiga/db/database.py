"""
Módulo de configuración de base de datos.

Gestiona la creación del motor SQLAlchemy, la factory de sesiones, la base
declarativa de los modelos y la inyección de sesiones en FastAPI.

Componentes:
    - engine: Motor SQLAlchemy de conexión
    - SessionLocal: Factory de sesiones
    - Base: Declarative base para modelos ORM
    - get_db: Dependency injection para FastAPI
"""

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base

from sisinvestiga.core.config import settings

# =========================================================
#  CONFIGURACIÓN DE CONEXIÓN
# =========================================================

DATABASE_URL = settings.DATABASE_URL


def build_engine(url: str):
    """
    Crea un motor SQLAlchemy para la URL indicada.

    En SQLite se permite el uso desde varios hilos (FastAPI ejecuta los
    endpoints síncronos en un threadpool) y se activan las claves foráneas,
    que SQLite deja desactivadas por defecto.
    """
    is_sqlite = url.startswith("sqlite")
    new_engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if is_sqlite else {}
    )

    if is_sqlite:
        @event.listens_for(new_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return new_engine


engine = build_engine(DATABASE_URL)

# =========================================================
#  SESIONES DE BASE DE DATOS
# =========================================================

# **SessionLocal**: una sesión por request
#   - autocommit=False: cada servicio confirma explícitamente
#   - autoflush=False: flush explícito antes de consultas dependientes
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# **Base**: Base declarativa para definir modelos ORM
Base = declarative_base()

# =========================================================
#  REGISTRAR MODELOS
# =========================================================

# Importar modelos para registrar con Base.metadata
from sisinvestiga.models.models import (  # noqa: E402,F401
    Role,
    User,
    ActiveSession,
    LoginAttempt,
    Project,
    Milestone,
    Evaluation,
    Publication,
    Request,
    RequestComment,
)

# =========================================================
#  DEPENDENCY INJECTION PARA FASTAPI
# =========================================================

def get_db():
    """
    Obtener sesión de base de datos para inyectar en endpoints.

    Crea una sesión nueva por request y la cierra siempre al terminar,
    incluso si el endpoint lanza una excepción.

    Yields:
        Session: Sesión SQLAlchemy lista para usar
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
