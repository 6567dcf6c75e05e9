"""
Endpoints de citas: CRUD, cancelación, cierre,
slots disponibles y agenda diaria.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_practice_scope
from app.database import get_db
from app.models.appointment import AppointmentStatus
from app.schemas.appointment import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentUpdate,
)
from app.schemas.common import (
    PageParams,
    paginated_response,
    pagination_params,
    success_response,
)
from app.services import appointment_service
from app.services.access_service import PracticeScope

router = APIRouter()


@router.get("")
async def list_appointments(
    params: PageParams = Depends(pagination_params),
    date_from: date | None = Query(None, description="Desde fecha (YYYY-MM-DD)"),
    date_to: date | None = Query(None, description="Hasta fecha (YYYY-MM-DD)"),
    status: AppointmentStatus | None = Query(None, description="Filtrar por estado"),
    patient_id: int | None = Query(None, description="Filtrar por paciente"),
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    items, total = await appointment_service.list_appointments(
        db,
        scope,
        params,
        date_from=date_from,
        date_to=date_to,
        status=status,
        patient_id=patient_id,
    )
    return paginated_response(items, params, total)


@router.get("/daily")
async def daily_schedule(
    target_date: date | None = Query(None, alias="date", description="Fecha (por defecto hoy)"),
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    """Agenda del día con conteo por estado."""
    schedule = await appointment_service.get_daily_schedule(
        db, scope, target_date or date.today()
    )
    return success_response(schedule)


@router.get("/schedule/{target_date}")
async def appointments_by_date(
    target_date: date,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await appointment_service.list_by_date(db, scope, target_date))


@router.get("/slots/{target_date}")
async def available_slots(
    target_date: date,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    """Slots de 30 minutos (09:00–11:30 y 14:00–17:00) que siguen libres."""
    return success_response(
        await appointment_service.get_available_slots(db, scope, target_date)
    )


@router.get("/{appointment_id}")
async def get_appointment(
    appointment_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    return success_response(
        await appointment_service.get_appointment(db, scope, appointment_id)
    )


@router.post("", status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.create_appointment(db, scope, data)
    return success_response(appointment, message="Cita creada")


@router.put("/{appointment_id}")
async def update_appointment(
    appointment_id: int,
    data: AppointmentUpdate,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.update_appointment(
        db, scope, appointment_id, data
    )
    return success_response(appointment, message="Cita actualizada")


@router.post("/cancel/{appointment_id}")
async def cancel_appointment(
    appointment_id: int,
    data: AppointmentCancel | None = None,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.cancel_appointment(
        db, scope, appointment_id, reason=data.cancellation_reason if data else None
    )
    return success_response(appointment, message="Cita cancelada")


@router.post("/complete/{appointment_id}")
async def complete_appointment(
    appointment_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    appointment = await appointment_service.complete_appointment(db, scope, appointment_id)
    return success_response(appointment, message="Cita completada")
