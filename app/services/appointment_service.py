"""
Servicio de citas: CRUD, state machine, choque de horarios,
slots disponibles y agenda diaria.

Un dentista no puede tener dos citas no canceladas en el mismo día y hora.
El pre-check da un mensaje legible; el índice único parcial
uq_appointments_dentist_slot resuelve las carreras entre requests.
"""

import logging
from datetime import date, datetime, time, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from app.core.updates import apply_changes, changed_fields
from app.database import flush_or_conflict
from app.models.appointment import (
    ACTIVE_STATUSES,
    VALID_TRANSITIONS,
    Appointment,
    AppointmentStatus,
    is_valid_transition,
)
from app.models.consultation import Consultation
from app.models.patient import Patient
from app.schemas.appointment import (
    AppointmentCreate,
    AppointmentResponse,
    AppointmentUpdate,
    AvailabilityResponse,
)
from app.schemas.common import PageParams, format_hhmm
from app.services.access_service import PracticeScope

logger = logging.getLogger(__name__)

# Plantilla diaria fija: mañana y tarde, cada 30 minutos (extremos incluidos)
DAILY_SLOTS: tuple[time, ...] = tuple(
    time(h, m)
    for h, m in (
        (9, 0), (9, 30), (10, 0), (10, 30), (11, 0), (11, 30),
        (14, 0), (14, 30), (15, 0), (15, 30), (16, 0), (16, 30), (17, 0),
    )
)

_REQUIRED_FIELDS = (
    "appointment_date", "appointment_time", "patient_name", "treatment_type", "status",
)


def _appointment_to_response(appt: Appointment) -> AppointmentResponse:
    return AppointmentResponse.model_validate(appt)


def _slot_taken_message(appointment_date: date, appointment_time: time) -> str:
    return (
        f"El horario {format_hhmm(appointment_time)} del {appointment_date.isoformat()} "
        "ya está ocupado"
    )


# ── Validación de choque de horario ──────────────────

async def ensure_slot_free(
    db: AsyncSession,
    dentist_id: int,
    appointment_date: date,
    appointment_time: time,
    exclude_id: int | None = None,
) -> None:
    """Conflict si otra cita no cancelada ocupa el mismo día y hora."""
    query = select(Appointment.id).where(
        Appointment.dentist_id == dentist_id,
        Appointment.appointment_date == appointment_date,
        Appointment.appointment_time == appointment_time,
        Appointment.status != AppointmentStatus.CANCELLED,
    )
    if exclude_id is not None:
        query = query.where(Appointment.id != exclude_id)

    existing = (await db.execute(query.limit(1))).scalar_one_or_none()
    if existing is not None:
        raise ConflictException(_slot_taken_message(appointment_date, appointment_time))


async def flush_appointment(db: AsyncSession, appointment: Appointment) -> None:
    """Flush que traduce la violación del índice de horario a Conflict."""
    await flush_or_conflict(
        db,
        _slot_taken_message(appointment.appointment_date, appointment.appointment_time),
    )


# ── Helpers de carga ─────────────────────────────────

async def _get_appointment(
    db: AsyncSession,
    scope: PracticeScope,
    appointment_id: int,
    statuses: tuple[AppointmentStatus, ...] | None = None,
) -> Appointment:
    query = scope.restrict(
        select(Appointment).where(Appointment.id == appointment_id),
        Appointment.dentist_id,
    )
    if statuses is not None:
        query = query.where(Appointment.status.in_(statuses))
    appointment = (await db.execute(query)).scalar_one_or_none()
    if appointment is None:
        raise NotFoundException("Cita")
    return appointment


async def _get_patient_for_booking(
    db: AsyncSession, dentist_id: int, patient_id: int
) -> Patient:
    result = await db.execute(
        select(Patient).where(
            Patient.id == patient_id,
            Patient.dentist_id == dentist_id,
            Patient.is_archived.is_(False),
        )
    )
    patient = result.scalar_one_or_none()
    if patient is None:
        raise NotFoundException("Paciente")
    return patient


# ── CRUD ─────────────────────────────────────────────

async def create_appointment(
    db: AsyncSession,
    scope: PracticeScope,
    data: AppointmentCreate,
) -> AppointmentResponse:
    """Crea una cita `pending` validando que el horario esté libre."""
    dentist_id = scope.require_dentist_id()
    patient = await _get_patient_for_booking(db, dentist_id, data.patient_id)

    if data.consultation_id is not None:
        consultation = await db.execute(
            select(Consultation.id).where(
                Consultation.id == data.consultation_id,
                Consultation.dentist_id == dentist_id,
                Consultation.patient_id == patient.id,
            )
        )
        if consultation.scalar_one_or_none() is None:
            raise NotFoundException("Consulta")

    await ensure_slot_free(db, dentist_id, data.appointment_date, data.appointment_time)

    appointment = Appointment(
        patient_id=patient.id,
        dentist_id=dentist_id,
        consultation_id=data.consultation_id,
        appointment_date=data.appointment_date,
        appointment_time=data.appointment_time,
        patient_name=data.patient_name or patient.full_name,
        patient_phone=data.patient_phone or patient.phone,
        treatment_type=data.treatment_type,
        status=AppointmentStatus.PENDING,
        notes=data.notes,
        created_by=scope.user.id,
    )
    db.add(appointment)
    await flush_appointment(db, appointment)
    await db.refresh(appointment)

    logger.info(
        "Cita %s creada para dentista %s el %s %s",
        appointment.id, dentist_id, appointment.appointment_date,
        format_hhmm(appointment.appointment_time),
    )
    return _appointment_to_response(appointment)


async def get_appointment(
    db: AsyncSession, scope: PracticeScope, appointment_id: int
) -> AppointmentResponse:
    return _appointment_to_response(await _get_appointment(db, scope, appointment_id))


async def list_appointments(
    db: AsyncSession,
    scope: PracticeScope,
    params: PageParams,
    date_from: date | None = None,
    date_to: date | None = None,
    status: AppointmentStatus | None = None,
    patient_id: int | None = None,
) -> tuple[list[AppointmentResponse], int]:
    query = scope.restrict(select(Appointment), Appointment.dentist_id)
    if date_from:
        query = query.where(Appointment.appointment_date >= date_from)
    if date_to:
        query = query.where(Appointment.appointment_date <= date_to)
    if status:
        query = query.where(Appointment.status == status)
    if patient_id:
        query = query.where(Appointment.patient_id == patient_id)

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar_one()

    result = await db.execute(
        query.order_by(
            Appointment.appointment_date.desc(), Appointment.appointment_time.desc()
        )
        .offset(params.offset)
        .limit(params.limit)
    )
    return [_appointment_to_response(a) for a in result.scalars().all()], total


async def list_by_date(
    db: AsyncSession, scope: PracticeScope, target_date: date
) -> list[AppointmentResponse]:
    result = await db.execute(
        scope.restrict(
            select(Appointment).where(Appointment.appointment_date == target_date),
            Appointment.dentist_id,
        ).order_by(Appointment.appointment_time, Appointment.id)
    )
    return [_appointment_to_response(a) for a in result.scalars().all()]


def _stamp_cancellation(
    appointment: Appointment, scope: PracticeScope, reason: str | None
) -> None:
    appointment.status = AppointmentStatus.CANCELLED
    appointment.cancelled_at = datetime.now(timezone.utc)
    appointment.cancelled_by = scope.user.id
    appointment.cancellation_reason = reason


async def update_appointment(
    db: AsyncSession,
    scope: PracticeScope,
    appointment_id: int,
    data: AppointmentUpdate,
) -> AppointmentResponse:
    """
    Actualización parcial. Citas completadas o canceladas no se editan;
    un cambio de estado debe respetar VALID_TRANSITIONS.
    """
    appointment = await _get_appointment(db, scope, appointment_id)
    if not VALID_TRANSITIONS.get(appointment.status):
        raise ValidationException(
            f"No se puede modificar una cita en estado '{appointment.status.value}'"
        )

    changes = changed_fields(data)
    new_status = changes.pop("status", None)
    if new_status is not None and new_status != appointment.status:
        if not is_valid_transition(appointment.status, new_status):
            valid = VALID_TRANSITIONS.get(appointment.status, [])
            raise ValidationException(
                f"No se puede cambiar de '{appointment.status.value}' a '{new_status.value}'. "
                f"Transiciones válidas: {', '.join(s.value for s in valid)}"
            )

    apply_changes(appointment, changes, required=_REQUIRED_FIELDS)

    if new_status == AppointmentStatus.CANCELLED:
        _stamp_cancellation(appointment, scope, appointment.cancellation_reason)
    elif new_status is not None:
        appointment.status = new_status

    if appointment.status != AppointmentStatus.CANCELLED and (
        "appointment_date" in changes or "appointment_time" in changes
    ):
        await ensure_slot_free(
            db,
            appointment.dentist_id,
            appointment.appointment_date,
            appointment.appointment_time,
            exclude_id=appointment.id,
        )

    await flush_appointment(db, appointment)
    await db.refresh(appointment)
    return _appointment_to_response(appointment)


async def cancel_appointment(
    db: AsyncSession,
    scope: PracticeScope,
    appointment_id: int,
    reason: str | None = None,
) -> AppointmentResponse:
    """Solo citas pending/confirmed; cualquier otro estado → NotFound."""
    appointment = await _get_appointment(db, scope, appointment_id, ACTIVE_STATUSES)
    _stamp_cancellation(appointment, scope, reason)
    await db.flush()
    await db.refresh(appointment)
    logger.info("Cita %s cancelada por usuario %s", appointment.id, scope.user.id)
    return _appointment_to_response(appointment)


async def complete_appointment(
    db: AsyncSession, scope: PracticeScope, appointment_id: int
) -> AppointmentResponse:
    appointment = await _get_appointment(db, scope, appointment_id, ACTIVE_STATUSES)
    appointment.status = AppointmentStatus.COMPLETED
    await db.flush()
    await db.refresh(appointment)
    return _appointment_to_response(appointment)


# ── Disponibilidad y agenda ──────────────────────────

async def get_available_slots(
    db: AsyncSession, scope: PracticeScope, target_date: date
) -> AvailabilityResponse:
    """Plantilla diaria menos los horarios ocupados por citas no canceladas."""
    dentist_id = scope.require_dentist_id()
    result = await db.execute(
        select(Appointment.appointment_time).where(
            Appointment.dentist_id == dentist_id,
            Appointment.appointment_date == target_date,
            Appointment.status != AppointmentStatus.CANCELLED,
        )
    )
    booked = {t.replace(second=0, microsecond=0) for t in result.scalars().all()}

    return AvailabilityResponse(
        date=target_date,
        dentist_id=dentist_id,
        available_slots=[format_hhmm(s) for s in DAILY_SLOTS if s not in booked],
        booked_slots=[format_hhmm(t) for t in sorted(booked)],
    )


async def get_daily_schedule(
    db: AsyncSession, scope: PracticeScope, target_date: date
) -> dict:
    appointments = await list_by_date(db, scope, target_date)
    counts = {status.value: 0 for status in AppointmentStatus}
    for appt in appointments:
        counts[appt.status.value] += 1
    return {
        "date": target_date,
        "appointments": appointments,
        "summary": {"total": len(appointments), **counts},
    }


# ── Citas de seguimiento (usadas por consultas) ──────

async def get_active_followup(
    db: AsyncSession, consultation_id: int
) -> Appointment | None:
    result = await db.execute(
        select(Appointment)
        .where(
            Appointment.consultation_id == consultation_id,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Appointment.appointment_date.desc(), Appointment.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def next_appointment_for_patient(
    db: AsyncSession, patient_id: int, from_date: date
) -> Appointment | None:
    result = await db.execute(
        select(Appointment)
        .where(
            Appointment.patient_id == patient_id,
            Appointment.appointment_date >= from_date,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        .order_by(Appointment.appointment_date, Appointment.appointment_time)
        .limit(1)
    )
    return result.scalar_one_or_none()
