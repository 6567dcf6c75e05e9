"""
Endpoints de pagos. Ningún endpoint está disponible para asistentes.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_practice_scope, require_payment_access
from app.database import get_db
from app.models.payment import PaymentMethod
from app.schemas.common import (
    PageParams,
    paginated_response,
    pagination_params,
    success_response,
)
from app.schemas.payment import PaymentCreate, PaymentUpdate
from app.services import payment_service, receipt_service
from app.services.access_service import PracticeScope

router = APIRouter(dependencies=[Depends(require_payment_access)])


@router.get("")
async def list_payments(
    params: PageParams = Depends(pagination_params),
    date_from: date | None = Query(None, description="Desde fecha (YYYY-MM-DD)"),
    date_to: date | None = Query(None, description="Hasta fecha (YYYY-MM-DD)"),
    patient_id: int | None = Query(None),
    consultation_id: int | None = Query(None),
    payment_method: PaymentMethod | None = Query(None),
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    items, total, summary = await payment_service.list_payments(
        db,
        scope,
        params,
        date_from=date_from,
        date_to=date_to,
        patient_id=patient_id,
        consultation_id=consultation_id,
        payment_method=payment_method,
    )
    return paginated_response(items, params, total, summary=summary)


@router.get("/reports")
async def financial_report(
    period: str | None = Query(None, description="today | week | month | year"),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    """Ingresos del periodo, ingreso diario, por método y saldos pendientes."""
    report = await payment_service.financial_report(
        db, scope, period=period, start_date=start_date, end_date=end_date
    )
    return success_response(report)


@router.get("/{payment_id}/receipt")
async def payment_receipt(
    payment_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    receipt = await receipt_service.payment_receipt(db, scope, payment_id)
    return success_response(receipt, message="Recibo generado")


@router.get("/{payment_id}")
async def get_payment(
    payment_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await payment_service.get_payment(db, scope, payment_id))


@router.post("", status_code=201)
async def create_payment(
    data: PaymentCreate,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    result = await payment_service.create_payment(db, scope, data)
    return success_response(result, message="Pago registrado")


@router.put("/{payment_id}")
async def update_payment(
    payment_id: int,
    data: PaymentUpdate,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    payment = await payment_service.update_payment(db, scope, payment_id, data)
    return success_response(payment, message="Pago actualizado")


@router.delete("/{payment_id}")
async def delete_payment(
    payment_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    result = await payment_service.delete_payment(db, scope, payment_id)
    return success_response(result, message="Pago eliminado")
