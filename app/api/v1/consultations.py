"""
Endpoints de consultas: creación compuesta, edición, borrado (archivo)
y recibo imprimible.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_practice_scope, require_receipt_access
from app.database import get_db
from app.schemas.common import (
    PageParams,
    paginated_response,
    pagination_params,
    success_response,
)
from app.schemas.consultation import ConsultationCreate, ConsultationUpdate
from app.services import consultation_service, receipt_service
from app.services.access_service import PracticeScope

router = APIRouter()


@router.get("")
async def list_consultations(
    params: PageParams = Depends(pagination_params),
    patient_id: int | None = Query(None, description="Filtrar por paciente"),
    search: str | None = Query(None, description="Paciente, tratamiento o recibo"),
    date_from: date | None = Query(None, description="Desde fecha (YYYY-MM-DD)"),
    date_to: date | None = Query(None, description="Hasta fecha (YYYY-MM-DD)"),
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    items, total = await consultation_service.list_consultations(
        db,
        scope,
        params,
        patient_id=patient_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
    )
    return paginated_response(items, params, total)


@router.get("/{consultation_id}/receipt", dependencies=[Depends(require_receipt_access)])
async def consultation_receipt(
    consultation_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    receipt = await receipt_service.consultation_receipt(db, scope, consultation_id)
    return success_response(receipt, message="Recibo generado")


@router.get("/{consultation_id}")
async def get_consultation(
    consultation_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    return success_response(
        await consultation_service.get_consultation(db, scope, consultation_id)
    )


@router.post("", status_code=201)
async def create_consultation(
    data: ConsultationCreate,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    """
    Crea en una sola transacción el paciente (o lo reutiliza),
    la consulta, el pago inicial y la cita de seguimiento.
    """
    result = await consultation_service.create_consultation(db, scope, data)
    return success_response(result, message="Consulta creada")


@router.put("/{consultation_id}")
async def update_consultation(
    consultation_id: int,
    data: ConsultationUpdate,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    result = await consultation_service.update_consultation(db, scope, consultation_id, data)
    return success_response(result, message="Consulta actualizada")


@router.delete("/{consultation_id}")
async def delete_consultation(
    consultation_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    """Archiva la consulta con sus pagos y citas y la retira de las tablas vivas."""
    archive = await consultation_service.delete_consultation(db, scope, consultation_id)
    return success_response(archive, message="Consulta archivada")
