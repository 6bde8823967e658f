"""
Punto de entrada principal de la aplicación FastAPI.

API de gestión de investigación: usuarios, proyectos, evaluaciones,
publicaciones, solicitudes e informes.
"""

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

load_dotenv()

from sisinvestiga.api.v1.routes.auth_endpoints import router as auth_router
from sisinvestiga.api.v1.routes.research_endpoints import router as research_router
from sisinvestiga.core.config import settings
from sisinvestiga.core.exceptions import AppError
from sisinvestiga.core.init_roles import init_roles
from sisinvestiga.core.policy import AuthorizationPolicy
from sisinvestiga.db.database import Base, SessionLocal, engine
from sisinvestiga.schemas.common_schemas import ErrorResponse, format_validation_errors

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("sisinvestiga")


def initialize_database():
    """
    Crea las tablas que falten y asegura los roles base.

    Tanto create_all como init_roles son idempotentes.
    """
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("✅ Tablas de base de datos verificadas/creadas")

        with SessionLocal() as db:
            init_roles(db)
        logger.info("✅ Roles base verificados")
    except Exception as e:
        logger.error(f"❌ Error al inicializar la base de datos: {e}")
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Ciclo de vida: inicializa la BD y carga la política de autorización
    una sola vez al arrancar.
    """
    logger.info("🚀 Iniciando aplicación...")
    initialize_database()
    app.state.policy = AuthorizationPolicy.default()
    yield
    logger.info("🛑 Cerrando aplicación...")


app = FastAPI(
    title="SISINVESTIGA API",
    description="API para la gestión de proyectos de investigación",
    version="1.0.0",
    lifespan=lifespan
)

# Disponible también cuando el cliente de pruebas no ejecuta el lifespan
app.state.policy = AuthorizationPolicy.default()


# ========================================
#  MANEJADORES DE ERRORES
# ========================================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Datos inválidos", "errors": format_validation_errors(exc.errors())}
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Error no controlado en {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Error interno del servidor"})


# ========================================
#  RUTAS Y MIDDLEWARE
# ========================================

# Cuerpo de error común documentado en OpenAPI
ERROR_RESPONSES = {
    code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409)
}

app.include_router(auth_router, prefix="/api", responses=ERROR_RESPONSES)
app.include_router(research_router, prefix="/api", responses=ERROR_RESPONSES)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    """
    Endpoint raíz para verificar que la API está funcionando.

    Returns:
        dict: Estado de la aplicación.
    """
    return {
        "status": "ok",
        "message": "SISINVESTIGA API",
        "version": "1.0.0"
    }
