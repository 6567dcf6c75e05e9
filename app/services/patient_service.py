"""
Servicio de pacientes: CRUD por consultorio con resumen financiero.

El teléfono es único entre pacientes activos del mismo dentista; el índice
parcial uq_patients_dentist_phone_active es la garantía final.
"""

import logging
from datetime import date

from sqlalchemy import or_, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException
from app.core.updates import apply_changes, changed_fields
from app.database import flush_or_conflict
from app.models.appointment import Appointment
from app.models.consultation import Consultation
from app.models.patient import Patient
from app.models.payment import Payment
from app.schemas.appointment import AppointmentResponse
from app.schemas.common import PageParams
from app.schemas.consultation import ConsultationResponse
from app.schemas.patient import PatientCreate, PatientResponse, PatientUpdate
from app.schemas.payment import PaymentResponse
from app.services import appointment_service
from app.services.access_service import PracticeScope

logger = logging.getLogger(__name__)

DUPLICATE_PHONE_MESSAGE = "Ya existe un paciente activo con ese teléfono"


def _patient_to_response(patient: Patient) -> PatientResponse:
    return PatientResponse.model_validate(patient)


# ── Helpers compartidos ──────────────────────────────

async def get_patient_in_scope(
    db: AsyncSession,
    scope: PracticeScope,
    patient_id: int,
    include_archived: bool = True,
) -> Patient:
    query = scope.restrict(
        select(Patient).where(Patient.id == patient_id), Patient.dentist_id
    )
    if not include_archived:
        query = query.where(Patient.is_archived.is_(False))
    patient = (await db.execute(query)).scalar_one_or_none()
    if patient is None:
        raise NotFoundException("Paciente")
    return patient


async def find_active_by_phone(
    db: AsyncSession,
    dentist_id: int,
    phone: str,
    exclude_id: int | None = None,
) -> Patient | None:
    query = select(Patient).where(
        Patient.dentist_id == dentist_id,
        Patient.phone == phone,
        Patient.is_archived.is_(False),
    )
    if exclude_id is not None:
        query = query.where(Patient.id != exclude_id)
    return (await db.execute(query.limit(1))).scalar_one_or_none()


async def add_patient(
    db: AsyncSession,
    dentist_id: int,
    first_name: str,
    last_name: str,
    phone: str,
    created_by: int,
) -> Patient:
    """Inserta un paciente; teléfono repetido entre activos → Conflict."""
    if await find_active_by_phone(db, dentist_id, phone):
        raise ConflictException(DUPLICATE_PHONE_MESSAGE)

    patient = Patient(
        dentist_id=dentist_id,
        first_name=first_name,
        last_name=last_name,
        phone=phone,
        is_archived=False,
        created_by=created_by,
    )
    db.add(patient)
    await flush_or_conflict(db, DUPLICATE_PHONE_MESSAGE)
    await db.refresh(patient)
    return patient


async def _latest_consultation(db: AsyncSession, patient_id: int) -> Consultation | None:
    result = await db.execute(
        select(Consultation)
        .where(Consultation.patient_id == patient_id)
        .order_by(Consultation.date_of_consultation.desc(), Consultation.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


# ── CRUD ─────────────────────────────────────────────

async def create_patient(
    db: AsyncSession, scope: PracticeScope, data: PatientCreate
) -> PatientResponse:
    patient = await add_patient(
        db,
        dentist_id=scope.require_dentist_id(),
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
        created_by=scope.user.id,
    )
    logger.info("Paciente %s creado en consultorio %s", patient.id, patient.dentist_id)
    return _patient_to_response(patient)


async def list_patients(
    db: AsyncSession,
    scope: PracticeScope,
    params: PageParams,
    search: str | None = None,
    archived: bool = False,
) -> tuple[list[dict], int]:
    """
    Lista pacientes con el resumen de su última consulta
    (tratamiento, saldo, estado de pago) y la próxima cita activa.
    """
    query = scope.restrict(
        select(Patient).where(Patient.is_archived.is_(archived)), Patient.dentist_id
    )
    if search:
        term = f"%{search.strip()}%"
        query = query.where(
            or_(
                Patient.first_name.ilike(term),
                Patient.last_name.ilike(term),
                Patient.phone.ilike(term),
            )
        )

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar_one()
    result = await db.execute(
        query.order_by(Patient.created_at.desc(), Patient.id.desc())
        .offset(params.offset)
        .limit(params.limit)
    )

    today = date.today()
    items = []
    for patient in result.scalars().all():
        item = _patient_to_response(patient).model_dump()
        latest = await _latest_consultation(db, patient.id)
        item["latest_treatment"] = latest.type_of_prosthesis if latest else None
        item["latest_consultation_date"] = latest.date_of_consultation if latest else None
        item["total_price"] = latest.total_price if latest else None
        item["amount_paid"] = latest.amount_paid if latest else None
        item["remaining_balance"] = latest.remaining_balance if latest else None
        item["payment_status"] = latest.payment_status if latest else None

        upcoming = await appointment_service.next_appointment_for_patient(
            db, patient.id, today
        )
        item["next_appointment"] = (
            AppointmentResponse.model_validate(upcoming).model_dump(mode="json")
            if upcoming else None
        )
        items.append(scope.redact(item))
    return items, total


async def get_patient_detail(
    db: AsyncSession, scope: PracticeScope, patient_id: int
) -> dict:
    """Paciente + consultas + citas (+ pagos si el rol puede ver montos)."""
    patient = await get_patient_in_scope(db, scope, patient_id)

    consultations = await db.execute(
        select(Consultation)
        .where(Consultation.patient_id == patient.id)
        .order_by(Consultation.date_of_consultation.desc(), Consultation.id.desc())
    )
    appointments = await db.execute(
        select(Appointment)
        .where(Appointment.patient_id == patient.id)
        .order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
    )

    detail = {
        "patient": _patient_to_response(patient).model_dump(),
        "consultations": [
            scope.redact(ConsultationResponse.model_validate(c).model_dump())
            for c in consultations.scalars().all()
        ],
        "appointments": [
            AppointmentResponse.model_validate(a).model_dump(mode="json")
            for a in appointments.scalars().all()
        ],
    }
    if scope.can_view_financials:
        payments = await db.execute(
            select(Payment)
            .where(Payment.patient_id == patient.id)
            .order_by(Payment.payment_date.desc(), Payment.id.desc())
        )
        detail["payments"] = [
            PaymentResponse.model_validate(p).model_dump() for p in payments.scalars().all()
        ]
    return detail


async def update_patient(
    db: AsyncSession,
    scope: PracticeScope,
    patient_id: int,
    data: PatientUpdate,
) -> PatientResponse:
    patient = await get_patient_in_scope(db, scope, patient_id, include_archived=False)
    changes = changed_fields(data)

    if changes.get("phone") and changes["phone"] != patient.phone:
        if await find_active_by_phone(
            db, patient.dentist_id, changes["phone"], exclude_id=patient.id
        ):
            raise ConflictException(DUPLICATE_PHONE_MESSAGE)

    apply_changes(patient, changes, required=("first_name", "last_name", "phone"))
    await flush_or_conflict(db, DUPLICATE_PHONE_MESSAGE)
    await db.refresh(patient)
    return _patient_to_response(patient)
