"""
Endpoints de pacientes: CRUD, archivo y restauración.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_practice_scope
from app.database import get_db
from app.schemas.common import (
    PageParams,
    paginated_response,
    pagination_params,
    success_response,
)
from app.schemas.patient import PatientCreate, PatientUpdate
from app.services import archive_service, patient_service
from app.services.access_service import PracticeScope

router = APIRouter()


@router.get("")
async def list_patients(
    params: PageParams = Depends(pagination_params),
    search: str | None = Query(None, description="Nombre, apellido o teléfono"),
    archived: bool = Query(False, description="Listar pacientes archivados"),
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    """
    Lista pacientes del consultorio con su último tratamiento,
    estado de pago y próxima cita.
    """
    items, total = await patient_service.list_patients(
        db, scope, params, search=search, archived=archived
    )
    return paginated_response(items, params, total)


@router.get("/{patient_id}")
async def get_patient(
    patient_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    return success_response(
        await patient_service.get_patient_detail(db, scope, patient_id)
    )


@router.post("", status_code=201)
async def create_patient(
    data: PatientCreate,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    patient = await patient_service.create_patient(db, scope, data)
    return success_response(patient, message="Paciente creado")


@router.put("/{patient_id}")
async def update_patient(
    patient_id: int,
    data: PatientUpdate,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    patient = await patient_service.update_patient(db, scope, patient_id, data)
    return success_response(patient, message="Paciente actualizado")


@router.post("/archive/{patient_id}")
async def archive_patient(
    patient_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    """Archiva al paciente guardando una instantánea de todo su historial."""
    archive = await archive_service.archive_patient(db, scope, patient_id)
    return success_response(archive, message="Paciente archivado")


@router.post("/restore/{patient_id}")
async def restore_patient(
    patient_id: int,
    scope: PracticeScope = Depends(get_practice_scope),
    db: AsyncSession = Depends(get_db),
):
    result = await archive_service.restore_latest_for_patient(db, scope, patient_id)
    return success_response(result, message="Paciente restaurado")
