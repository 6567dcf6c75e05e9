"""
Configuración de base de datos con SQLAlchemy 2.0 async.

Cada request obtiene una sesión propia: todo lo que el handler ejecuta
se confirma junto al final o se revierte completo ante cualquier error.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import get_settings
from app.core.exceptions import ConflictException

logger = logging.getLogger(__name__)

settings = get_settings()

# ── Engine async ─────────────────────────────────────
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_pre_ping=True,
)

# ── Session factory ──────────────────────────────────
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base declarativa ─────────────────────────────────
class Base(DeclarativeBase):
    pass


# ── Flush con detección de violaciones de unicidad ───
def is_unique_violation(exc: IntegrityError) -> bool:
    """True si el IntegrityError proviene de un índice/constraint único."""
    message = str(exc.orig).lower()
    return "unique" in message or "duplicate" in message


async def flush_or_conflict(session: AsyncSession, detail: str) -> None:
    """
    Ejecuta flush y traduce una violación de unicidad a ConflictException.
    El índice único es la garantía real; los pre-checks de los servicios
    solo adelantan un mensaje legible.
    """
    try:
        await session.flush()
    except IntegrityError as exc:
        if is_unique_violation(exc):
            logger.warning("Colisión detectada por la base: %s", detail)
            raise ConflictException(detail) from exc
        raise


# ── Dependency: sesión de DB ─────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency de FastAPI que provee una sesión de base de datos.
    Commit al terminar el handler, rollback ante cualquier excepción.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
