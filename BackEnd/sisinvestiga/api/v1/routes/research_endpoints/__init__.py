from fastapi import APIRouter
from .projects import router as projects_router
from .evaluations import router as evaluations_router
from .publications import router as publications_router
from .requests import router as requests_router
from .reports import router as reports_router


router = APIRouter()
router.include_router(projects_router)
router.include_router(evaluations_router)
router.include_router(publications_router)
router.include_router(requests_router)
router.include_router(reports_router)
