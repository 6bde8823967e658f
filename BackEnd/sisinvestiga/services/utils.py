import logging
from contextlib import contextmanager
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from sisinvestiga.core.config import settings
from sisinvestiga.core.exceptions import AppError, ConflictError

logger = logging.getLogger(__name__)


@contextmanager
def db_transaction(db: Session, conflict_message: Optional[str] = None):
    """
    Context manager para transacciones de base de datos con rollback automático

    Una violación de restricción única al confirmar se traduce en
    ConflictError: la restricción de la BD es la garantía definitiva de
    unicidad aunque dos peticiones pasen a la vez la comprobación previa.

    Args:
        db: Sesión de base de datos
        conflict_message: Mensaje para el ConflictError

    Yields:
        Sesión de base de datos
    """
    try:
        yield db
        db.commit()
    except AppError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Integrity error on commit: {e.orig}")
        raise ConflictError(conflict_message or "El registro entra en conflicto con datos existentes") from e
    except Exception as e:
        db.rollback()
        logger.error(f"Database transaction failed: {e}")
        raise


def normalize_pagination(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    """Página mínima 1 y límite acotado a MAX_PAGE_SIZE."""
    page = page if page and page > 0 else 1
    limit = limit if limit and limit > 0 else settings.DEFAULT_PAGE_SIZE
    return page, min(limit, settings.MAX_PAGE_SIZE)


def paginate(query: Query, page: Optional[int], limit: Optional[int]) -> dict:
    """
    Ejecuta una consulta ya ordenada y retorna la forma paginada estándar.

    Returns:
        dict: {total, page, limit, data}
    """
    page, limit = normalize_pagination(page, limit)
    total = query.order_by(None).count()
    data = query.offset((page - 1) * limit).limit(limit).all()
    return {"total": total, "page": page, "limit": limit, "data": data}


def like_pattern(text: str) -> str:
    """Patrón LIKE con comodines escapados para búsquedas por subcadena."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
