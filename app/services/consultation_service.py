"""
Servicio de consultas.

La creación es compuesta y atómica: paciente (reutilizado o nuevo),
consulta con recibo CON-, pago inicial PAY- y cita de seguimiento.
Cualquier error (p. ej. horario de seguimiento ocupado) revierte todo
porque la sesión del request solo confirma al final del handler.
"""

import logging
from datetime import date, datetime, time, timezone

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from app.core.updates import apply_changes, changed_fields
from app.database import flush_or_conflict
from app.models.appointment import FOLLOWUP_TREATMENT, Appointment, AppointmentStatus
from app.models.consultation import Consultation
from app.models.patient import Patient
from app.models.payment import Payment, PaymentMethod
from app.schemas.appointment import AppointmentResponse
from app.schemas.common import PageParams
from app.schemas.consultation import (
    ConsultationCreate,
    ConsultationResponse,
    ConsultationUpdate,
)
from app.schemas.patient import PatientResponse
from app.schemas.payment import PaymentResponse
from app.services import (
    appointment_service,
    archive_service,
    patient_service,
    receipt_service,
)
from app.services.access_service import PracticeScope

logger = logging.getLogger(__name__)

_FOLLOWUP_FIELDS = ("follow_up_date", "follow_up_time")


def _consultation_to_dict(consultation: Consultation, scope: PracticeScope) -> dict:
    return scope.redact(ConsultationResponse.model_validate(consultation).model_dump())


def _appointment_to_dict(appointment: Appointment | None) -> dict | None:
    if appointment is None:
        return None
    return AppointmentResponse.model_validate(appointment).model_dump(mode="json")


async def _get_consultation(
    db: AsyncSession, scope: PracticeScope, consultation_id: int
) -> Consultation:
    consultation = (
        await db.execute(
            scope.restrict(
                select(Consultation).where(Consultation.id == consultation_id),
                Consultation.dentist_id,
            )
        )
    ).scalar_one_or_none()
    if consultation is None:
        raise NotFoundException("Consulta")
    return consultation


async def _resolve_patient(
    db: AsyncSession, scope: PracticeScope, dentist_id: int, data: ConsultationCreate
) -> tuple[Patient, bool]:
    """patient_id explícito → teléfono de un paciente activo → paciente nuevo."""
    if data.patient_id is not None:
        result = await db.execute(
            select(Patient).where(
                Patient.id == data.patient_id,
                Patient.dentist_id == dentist_id,
                Patient.is_archived.is_(False),
            )
        )
        patient = result.scalar_one_or_none()
        if patient is None:
            raise NotFoundException("Paciente")
        return patient, False

    phone = data.phone.strip() if data.phone else None
    if not phone:
        raise ValidationException("phone es obligatorio para registrar un paciente nuevo")

    existing = await patient_service.find_active_by_phone(db, dentist_id, phone)
    if existing is not None:
        return existing, False

    patient = await patient_service.add_patient(
        db,
        dentist_id=dentist_id,
        first_name=data.first_name.strip(),
        last_name=data.last_name.strip(),
        phone=phone,
        created_by=scope.user.id,
    )
    return patient, True


async def _book_followup(
    db: AsyncSession,
    scope: PracticeScope,
    consultation: Consultation,
    patient: Patient,
    followup_date: date,
    followup_time: time,
) -> Appointment:
    await appointment_service.ensure_slot_free(
        db, consultation.dentist_id, followup_date, followup_time
    )
    appointment = Appointment(
        patient_id=patient.id,
        dentist_id=consultation.dentist_id,
        consultation_id=consultation.id,
        appointment_date=followup_date,
        appointment_time=followup_time,
        patient_name=patient.full_name,
        patient_phone=patient.phone,
        treatment_type=FOLLOWUP_TREATMENT,
        status=AppointmentStatus.CONFIRMED,
        created_by=scope.user.id,
    )
    db.add(appointment)
    await appointment_service.flush_appointment(db, appointment)
    await db.refresh(appointment)
    return appointment


# ── Creación compuesta ───────────────────────────────

async def create_consultation(
    db: AsyncSession, scope: PracticeScope, data: ConsultationCreate
) -> dict:
    dentist_id = scope.require_dentist_id()
    if data.amount_paid > data.total_price:
        raise ValidationException("amount_paid no puede superar total_price")

    if data.needs_followup:
        # Falla rápido antes de insertar nada
        await appointment_service.ensure_slot_free(
            db, dentist_id, data.follow_up_date, data.follow_up_time
        )

    patient, patient_created = await _resolve_patient(db, scope, dentist_id, data)

    consultation = Consultation(
        patient_id=patient.id,
        dentist_id=dentist_id,
        date_of_consultation=data.date_of_consultation,
        type_of_prosthesis=data.type_of_prosthesis.strip(),
        total_price=data.total_price,
        amount_paid=data.amount_paid,
        needs_followup=data.needs_followup,
        receipt_number=await receipt_service.next_receipt_number(
            db, receipt_service.CONSULTATION_PREFIX, dentist_id
        ),
        created_by=scope.user.id,
    )
    db.add(consultation)
    await flush_or_conflict(db, "Número de recibo duplicado")

    payment = None
    if data.amount_paid > 0:
        payment = Payment(
            consultation_id=consultation.id,
            patient_id=patient.id,
            dentist_id=dentist_id,
            patient_name=patient.full_name,
            payment_date=data.date_of_consultation,
            amount=data.amount_paid,
            payment_method=PaymentMethod.CASH,
            remaining_balance=data.total_price - data.amount_paid,
            receipt_number=await receipt_service.next_receipt_number(
                db, receipt_service.PAYMENT_PREFIX, dentist_id
            ),
            created_by=scope.user.id,
        )
        db.add(payment)
        await flush_or_conflict(db, "Número de recibo duplicado")
        await db.refresh(payment)

    followup = None
    if data.needs_followup:
        followup = await _book_followup(
            db, scope, consultation, patient, data.follow_up_date, data.follow_up_time
        )

    await db.refresh(consultation)
    logger.info(
        "Consulta %s creada (paciente %s%s, pago=%s, seguimiento=%s)",
        consultation.id, patient.id, " nuevo" if patient_created else "",
        payment.id if payment else None, followup.id if followup else None,
    )

    result = {
        "consultation": _consultation_to_dict(consultation, scope),
        "patient": PatientResponse.model_validate(patient).model_dump(),
        "patient_created": patient_created,
        "follow_up_appointment": _appointment_to_dict(followup),
    }
    if scope.can_view_financials:
        result["payment"] = (
            PaymentResponse.model_validate(payment).model_dump() if payment else None
        )
    return result


# ── Consultas ────────────────────────────────────────

async def list_consultations(
    db: AsyncSession,
    scope: PracticeScope,
    params: PageParams,
    patient_id: int | None = None,
    search: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> tuple[list[dict], int]:
    query = scope.restrict(
        select(Consultation, Patient).join(Patient, Patient.id == Consultation.patient_id),
        Consultation.dentist_id,
    )
    if patient_id:
        query = query.where(Consultation.patient_id == patient_id)
    if date_from:
        query = query.where(Consultation.date_of_consultation >= date_from)
    if date_to:
        query = query.where(Consultation.date_of_consultation <= date_to)
    if search:
        term = f"%{search.strip()}%"
        query = query.where(
            or_(
                Patient.first_name.ilike(term),
                Patient.last_name.ilike(term),
                Consultation.type_of_prosthesis.ilike(term),
                Consultation.receipt_number.ilike(term),
            )
        )

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar_one()
    result = await db.execute(
        query.order_by(Consultation.date_of_consultation.desc(), Consultation.id.desc())
        .offset(params.offset)
        .limit(params.limit)
    )
    items = []
    for consultation, patient in result.all():
        item = _consultation_to_dict(consultation, scope)
        item["patient_name"] = patient.full_name
        item["patient_phone"] = patient.phone
        items.append(item)
    return items, total


async def get_consultation(
    db: AsyncSession, scope: PracticeScope, consultation_id: int
) -> dict:
    consultation = await _get_consultation(db, scope, consultation_id)
    patient = await db.get(Patient, consultation.patient_id)
    followup = await appointment_service.get_active_followup(db, consultation.id)

    result = _consultation_to_dict(consultation, scope)
    result["patient"] = PatientResponse.model_validate(patient).model_dump() if patient else None
    result["follow_up_appointment"] = _appointment_to_dict(followup)
    return result


async def update_consultation(
    db: AsyncSession,
    scope: PracticeScope,
    consultation_id: int,
    data: ConsultationUpdate,
) -> dict:
    """
    Actualización parcial. amount_paid solo cambia vía pagos;
    total_price no puede quedar por debajo de lo ya pagado.
    """
    consultation = await _get_consultation(db, scope, consultation_id)
    changes = changed_fields(data, exclude=_FOLLOWUP_FIELDS)

    if "total_price" in changes:
        if not scope.can_view_financials:
            raise ForbiddenException("Su rol no puede modificar montos")
        if changes["total_price"] is not None and changes["total_price"] < consultation.amount_paid:
            raise ValidationException(
                "total_price no puede ser menor que el monto ya pagado"
            )

    apply_changes(
        consultation,
        changes,
        required=("date_of_consultation", "type_of_prosthesis", "total_price", "needs_followup"),
    )
    await db.flush()

    followup_sent = data.model_fields_set & set(_FOLLOWUP_FIELDS)
    followup = await appointment_service.get_active_followup(db, consultation.id)

    if changes.get("needs_followup") is False:
        if followup is not None:
            followup.status = AppointmentStatus.CANCELLED
            followup.cancellation_reason = "Seguimiento no requerido"
            followup.cancelled_by = scope.user.id
            followup.cancelled_at = datetime.now(timezone.utc)
            await db.flush()
            followup = None
    elif consultation.needs_followup and (followup_sent or "needs_followup" in changes):
        followup = await _reschedule_followup(db, scope, consultation, followup, data)

    await db.refresh(consultation)
    result = _consultation_to_dict(consultation, scope)
    if followup is not None:
        await db.refresh(followup)
    result["follow_up_appointment"] = _appointment_to_dict(followup)
    return result


async def _reschedule_followup(
    db: AsyncSession,
    scope: PracticeScope,
    consultation: Consultation,
    followup: Appointment | None,
    data: ConsultationUpdate,
) -> Appointment:
    new_date = data.follow_up_date or (followup.appointment_date if followup else None)
    new_time = data.follow_up_time or (followup.appointment_time if followup else None)
    if new_date is None or new_time is None:
        raise ValidationException(
            "follow_up_date y follow_up_time son obligatorios si needs_followup es true"
        )

    if followup is None:
        patient = await db.get(Patient, consultation.patient_id)
        return await _book_followup(db, scope, consultation, patient, new_date, new_time)

    if (new_date, new_time) != (followup.appointment_date, followup.appointment_time):
        await appointment_service.ensure_slot_free(
            db, consultation.dentist_id, new_date, new_time, exclude_id=followup.id
        )
        followup.appointment_date = new_date
        followup.appointment_time = new_time
        await appointment_service.flush_appointment(db, followup)
    return followup


async def delete_consultation(
    db: AsyncSession, scope: PracticeScope, consultation_id: int
):
    """Borrar una consulta = archivarla con sus pagos y citas."""
    return await archive_service.archive_consultation(db, scope, consultation_id)
