"""
Endpoints del archivo: listado, restauración y purga definitiva.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_practice_scope, require_permission
from app.database import get_db
from app.models.archive import ArchiveType
from app.schemas.common import (
    PageParams,
    paginated_response,
    pagination_params,
    success_response,
)
from app.services import archive_service
from app.services.access_service import PracticeScope

router = APIRouter()


@router.get("")
async def list_archives(
    params: PageParams = Depends(pagination_params),
    table: str | None = Query(None, description="patients | consultations"),
    archive_type: ArchiveType | None = Query(None),
    search: str | None = Query(None, description="Nombre del paciente"),
    latest_treatment: str | None = Query(None),
    archived_at_gte: datetime | None = Query(None),
    archived_at_lte: datetime | None = Query(None),
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    items, total = await archive_service.list_archives(
        db,
        scope,
        params,
        table=table,
        archive_type=archive_type,
        search=search,
        latest_treatment=latest_treatment,
        archived_from=archived_at_gte,
        archived_to=archived_at_lte,
    )
    return paginated_response(items, params, total)


@router.get("/{archive_id}")
async def get_archive(
    archive_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await archive_service.get_archive(db, scope, archive_id))


@router.post("/restore/{archive_id}")
async def restore_archive(
    archive_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    """Reinserta las filas archivadas con sus ids originales y elimina el archivo."""
    result = await archive_service.restore_archive(db, scope, archive_id)
    return success_response(result, message="Registro restaurado")


@router.delete("/{archive_id}", dependencies=[Depends(require_permission("archive", "purge"))])
async def purge_archive(
    archive_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    await archive_service.purge_archive(db, scope, archive_id)
    return success_response(message="Registro eliminado definitivamente")
