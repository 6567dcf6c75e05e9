"""
Motor de archivo y restauración.

Política por entidad:
- consultations: instantánea {consultation, payments, appointments} en la tabla
  archives (tipo `deleted`) y borrado de hijos y padre en la misma transacción.
- patients: instantánea {patient, consultations, appointments, payments}
  (tipo `archived`); el paciente queda con is_archived = true.

La restauración reinserta las filas con sus ids originales en orden de
dependencia. Una fila cuyo id ya existe se omite si es el mismo registro
(mismo consultorio y mismo padre); si el id lo ocupa otro registro → Conflict.
"""

import enum
import json
import logging
from datetime import date, datetime, time, timezone
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictException,
    NotFoundException,
    ValidationException,
)
from app.database import flush_or_conflict
from app.models.appointment import Appointment
from app.models.archive import Archive, ArchiveType
from app.models.consultation import Consultation
from app.models.patient import Patient
from app.models.payment import Payment
from app.schemas.archive import ArchiveResponse
from app.schemas.common import PageParams
from app.services.access_service import PracticeScope

logger = logging.getLogger(__name__)

CONSULTATIONS = "consultations"
PATIENTS = "patients"

RESTORE_CONFLICT_MESSAGE = (
    "No se puede restaurar: el registro choca con datos existentes "
    "(horario ocupado, teléfono o recibo duplicado)"
)


# ── Serialización de filas ───────────────────────────

def _sanitize_for_json(data: dict | None) -> dict | None:
    """Convierte tipos no serializables (date, datetime, time, Decimal, Enum) a JSON."""
    if data is None:
        return None
    sanitized = {}
    for key, value in data.items():
        if isinstance(value, (date, datetime, time)):
            sanitized[key] = value.isoformat()
        elif isinstance(value, Decimal):
            sanitized[key] = float(value)
        elif isinstance(value, enum.Enum):
            sanitized[key] = value.value
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_for_json(value)
        else:
            sanitized[key] = value
    return sanitized


def row_to_dict(instance) -> dict:
    """Todas las columnas de una fila ORM como dict serializable."""
    return _sanitize_for_json(
        {column.key: getattr(instance, column.key) for column in instance.__table__.columns}
    )


def _coerce(column, value):
    if value is None:
        return None
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return value

    if isinstance(value, python_type):
        return value
    if python_type is datetime:
        return datetime.fromisoformat(value)
    if python_type is date:
        return date.fromisoformat(value)
    if python_type is time:
        return time.fromisoformat(value)
    if python_type is Decimal:
        return Decimal(str(value))
    if issubclass(python_type, enum.Enum):
        return python_type(value)
    return python_type(value)


def dict_to_row_values(model, data: dict) -> dict:
    """
    Convierte un dict de la instantánea a valores de columna del modelo.
    Las columnas generadas (remaining_balance) las recalcula la base.
    """
    if not isinstance(data, dict):
        raise ValidationException("Instantánea de archivo mal formada")
    values = {}
    for column in model.__table__.columns:
        if column.computed is not None or column.key not in data:
            continue
        try:
            values[column.key] = _coerce(column, data[column.key])
        except (TypeError, ValueError) as exc:
            raise ValidationException(
                f"Valor inválido para {model.__tablename__}.{column.key} en el archivo"
            ) from exc
    if values.get("id") is None:
        raise ValidationException(
            f"La instantánea de {model.__tablename__} no incluye el id original"
        )
    return values


def _parse_snapshot(archive: Archive) -> dict:
    try:
        data = json.loads(archive.data_json)
    except (TypeError, ValueError) as exc:
        raise ValidationException("El contenido del archivo no es JSON válido") from exc
    if not isinstance(data, dict):
        raise ValidationException("El contenido del archivo no es un objeto JSON")
    return data


def _redact_snapshot(data: dict, scope: PracticeScope) -> dict:
    """Sin permiso financiero: fuera los pagos y los montos de cada fila."""
    if scope.can_view_financials:
        return data
    redacted = {}
    for key, value in data.items():
        if key == "payments":
            continue
        if isinstance(value, dict):
            redacted[key] = scope.redact(value)
        elif isinstance(value, list):
            redacted[key] = [
                scope.redact(item) if isinstance(item, dict) else item for item in value
            ]
        else:
            redacted[key] = value
    return redacted


def _archive_to_response(archive: Archive, scope: PracticeScope) -> ArchiveResponse:
    data = None
    try:
        data = json.loads(archive.data_json)
    except (TypeError, ValueError):
        logger.warning("Archivo %s con JSON ilegible", archive.id)
    if isinstance(data, dict):
        data = _redact_snapshot(data, scope)
    else:
        data = None
    return ArchiveResponse(
        id=archive.id,
        dentist_id=archive.dentist_id,
        original_table=archive.original_table,
        original_id=archive.original_id,
        archive_type=archive.archive_type,
        patient_name=archive.patient_name,
        treatment=archive.treatment,
        archived_by=archive.archived_by,
        archived_at=archive.archived_at,
        data=data,
    )


# ── Archivar ─────────────────────────────────────────

async def archive_consultation(
    db: AsyncSession, scope: PracticeScope, consultation_id: int
) -> ArchiveResponse:
    """Instantánea de la consulta con sus pagos y citas, luego borrado (hijos primero)."""
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

    payments = (
        await db.execute(
            select(Payment).where(Payment.consultation_id == consultation.id).order_by(Payment.id)
        )
    ).scalars().all()
    appointments = (
        await db.execute(
            select(Appointment)
            .where(Appointment.consultation_id == consultation.id)
            .order_by(Appointment.id)
        )
    ).scalars().all()
    patient = await db.get(Patient, consultation.patient_id)

    snapshot = {
        "consultation": row_to_dict(consultation),
        "payments": [row_to_dict(p) for p in payments],
        "appointments": [row_to_dict(a) for a in appointments],
    }
    archive = Archive(
        dentist_id=consultation.dentist_id,
        original_table=CONSULTATIONS,
        original_id=consultation.id,
        data_json=json.dumps(snapshot),
        archive_type=ArchiveType.DELETED,
        patient_name=patient.full_name if patient else None,
        treatment=consultation.type_of_prosthesis,
        archived_by=scope.user.id,
    )
    db.add(archive)
    await db.flush()

    await db.execute(delete(Appointment).where(Appointment.consultation_id == consultation.id))
    await db.execute(delete(Payment).where(Payment.consultation_id == consultation.id))
    await db.delete(consultation)
    await db.flush()
    await db.refresh(archive)

    logger.info(
        "Consulta %s archivada (archivo %s, %d pagos, %d citas)",
        consultation_id, archive.id, len(payments), len(appointments),
    )
    return _archive_to_response(archive, scope)


async def archive_patient(
    db: AsyncSession, scope: PracticeScope, patient_id: int
) -> ArchiveResponse:
    """Instantánea del historial completo; el paciente queda marcado como archivado."""
    patient = (
        await db.execute(
            scope.restrict(
                select(Patient).where(
                    Patient.id == patient_id, Patient.is_archived.is_(False)
                ),
                Patient.dentist_id,
            )
        )
    ).scalar_one_or_none()
    if patient is None:
        raise NotFoundException("Paciente")

    consultations = (
        await db.execute(
            select(Consultation)
            .where(Consultation.patient_id == patient.id)
            .order_by(Consultation.date_of_consultation.desc(), Consultation.id.desc())
        )
    ).scalars().all()
    appointments = (
        await db.execute(
            select(Appointment).where(Appointment.patient_id == patient.id).order_by(Appointment.id)
        )
    ).scalars().all()
    payments = (
        await db.execute(
            select(Payment).where(Payment.patient_id == patient.id).order_by(Payment.id)
        )
    ).scalars().all()

    snapshot = {
        "patient": row_to_dict(patient),
        "consultations": [row_to_dict(c) for c in consultations],
        "appointments": [row_to_dict(a) for a in appointments],
        "payments": [row_to_dict(p) for p in payments],
    }
    archive = Archive(
        dentist_id=patient.dentist_id,
        original_table=PATIENTS,
        original_id=patient.id,
        data_json=json.dumps(snapshot),
        archive_type=ArchiveType.ARCHIVED,
        patient_name=patient.full_name,
        treatment=consultations[0].type_of_prosthesis if consultations else None,
        archived_by=scope.user.id,
    )
    db.add(archive)

    patient.is_archived = True
    patient.archived_at = datetime.now(timezone.utc)
    patient.archived_by = scope.user.id
    await db.flush()
    await db.refresh(archive)

    logger.info("Paciente %s archivado (archivo %s)", patient.id, archive.id)
    return _archive_to_response(archive, scope)


# ── Restaurar ────────────────────────────────────────

def _is_same_record(existing, values: dict, parent_key: str) -> bool:
    return (
        existing.dentist_id == values.get("dentist_id")
        and getattr(existing, parent_key) == values.get(parent_key)
    )


async def _reinsert_rows(
    db: AsyncSession,
    model,
    rows: list,
    parent_key: str,
    dentist_id: int,
) -> tuple[int, int]:
    """Reinserta filas con su id original. Retorna (restauradas, omitidas)."""
    if not isinstance(rows, list):
        raise ValidationException(f"Lista de {model.__tablename__} mal formada en el archivo")

    restored = skipped = 0
    for row in rows:
        values = dict_to_row_values(model, row)
        if values.get("dentist_id") != dentist_id:
            raise ValidationException(
                f"{model.__tablename__} #{values['id']} no pertenece al consultorio del archivo"
            )
        existing = await db.get(model, values["id"])
        if existing is not None:
            if _is_same_record(existing, values, parent_key):
                skipped += 1
                continue
            raise ConflictException(
                f"El id {values['id']} de {model.__tablename__} ya está en uso por otro registro"
            )
        db.add(model(**values))
        restored += 1
    return restored, skipped


async def _restore_consultation(db: AsyncSession, archive: Archive, data: dict) -> dict:
    if not isinstance(data.get("consultation"), dict):
        raise ValidationException("El archivo no contiene la consulta")

    summary = {}
    for key, model, rows, parent_key in (
        (CONSULTATIONS, Consultation, [data["consultation"]], "patient_id"),
        ("payments", Payment, data.get("payments", []), "consultation_id"),
        ("appointments", Appointment, data.get("appointments", []), "consultation_id"),
    ):
        restored, skipped = await _reinsert_rows(
            db, model, rows, parent_key, archive.dentist_id
        )
        # Padre antes que hijos
        await flush_or_conflict(db, RESTORE_CONFLICT_MESSAGE)
        summary[key] = {"restored": restored, "skipped": skipped}
    return summary


async def _restore_patient(db: AsyncSession, archive: Archive, data: dict) -> dict:
    if not isinstance(data.get("patient"), dict):
        raise ValidationException("El archivo no contiene el paciente")

    patient = await db.get(Patient, archive.original_id)
    if patient is not None and patient.dentist_id != archive.dentist_id:
        raise ConflictException(
            f"El id {archive.original_id} de patients ya está en uso por otro registro"
        )

    if patient is None:
        # El paciente desapareció de la tabla: se reconstruye desde la instantánea
        patient_values = dict_to_row_values(Patient, data["patient"])
        patient_values.update(is_archived=False, archived_at=None, archived_by=None)
        db.add(Patient(**patient_values))
        await flush_or_conflict(db, RESTORE_CONFLICT_MESSAGE)
        summary = {PATIENTS: {"restored": 1, "skipped": 0}}
        for key, model, parent_key in (
            (CONSULTATIONS, Consultation, "patient_id"),
            ("payments", Payment, "consultation_id"),
            ("appointments", Appointment, "patient_id"),
        ):
            restored, skipped = await _reinsert_rows(
                db, model, data.get(key, []), parent_key, archive.dentist_id
            )
            await flush_or_conflict(db, RESTORE_CONFLICT_MESSAGE)
            summary[key] = {"restored": restored, "skipped": skipped}
        return summary

    duplicate = await db.execute(
        select(Patient.id).where(
            Patient.dentist_id == patient.dentist_id,
            Patient.phone == patient.phone,
            Patient.is_archived.is_(False),
            Patient.id != patient.id,
        )
    )
    if duplicate.scalar_one_or_none() is not None:
        raise ConflictException("Ya existe un paciente activo con ese teléfono")

    patient.is_archived = False
    patient.archived_at = None
    patient.archived_by = None
    await flush_or_conflict(db, RESTORE_CONFLICT_MESSAGE)
    return {PATIENTS: {"restored": 1, "skipped": 0}}


async def _get_archive(db: AsyncSession, scope: PracticeScope, archive_id: int) -> Archive:
    archive = (
        await db.execute(
            scope.restrict(select(Archive).where(Archive.id == archive_id), Archive.dentist_id)
        )
    ).scalar_one_or_none()
    if archive is None:
        raise NotFoundException(detail="Registro archivado no encontrado")
    return archive


async def restore_archive(db: AsyncSession, scope: PracticeScope, archive_id: int) -> dict:
    """
    Reconstruye las filas del archivo y lo elimina.

    Raises:
        NotFoundException: archivo inexistente o de otro consultorio.
        ValidationException: JSON mal formado.
        ConflictException: un id original ocupado por otro registro.
    """
    archive = await _get_archive(db, scope, archive_id)
    data = _parse_snapshot(archive)

    if archive.original_table == CONSULTATIONS:
        summary = await _restore_consultation(db, archive, data)
    elif archive.original_table == PATIENTS:
        summary = await _restore_patient(db, archive, data)
    else:
        raise ValidationException(f"Tipo de archivo no soportado: {archive.original_table}")

    result = {
        "archive_id": archive.id,
        "original_table": archive.original_table,
        "original_id": archive.original_id,
        "restored": summary,
    }
    await db.delete(archive)
    await db.flush()

    logger.info(
        "Archivo %s restaurado (%s #%s) por usuario %s",
        result["archive_id"], result["original_table"], result["original_id"], scope.user.id,
    )
    return result


async def restore_latest_for_patient(
    db: AsyncSession, scope: PracticeScope, patient_id: int
) -> dict:
    """Restaura el archivo más reciente de un paciente archivado."""
    archive_id = (
        await db.execute(
            scope.restrict(
                select(Archive.id).where(
                    Archive.original_table == PATIENTS,
                    Archive.original_id == patient_id,
                ),
                Archive.dentist_id,
            )
            .order_by(Archive.archived_at.desc(), Archive.id.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    if archive_id is None:
        raise NotFoundException(detail="Paciente archivado no encontrado")
    return await restore_archive(db, scope, archive_id)


# ── Consulta y purga ─────────────────────────────────

async def list_archives(
    db: AsyncSession,
    scope: PracticeScope,
    params: PageParams,
    table: str | None = None,
    archive_type: ArchiveType | None = None,
    search: str | None = None,
    latest_treatment: str | None = None,
    archived_from: datetime | None = None,
    archived_to: datetime | None = None,
) -> tuple[list[ArchiveResponse], int]:
    query = scope.restrict(select(Archive), Archive.dentist_id)
    if table:
        query = query.where(Archive.original_table == table)
    if archive_type:
        query = query.where(Archive.archive_type == archive_type)
    if search:
        query = query.where(Archive.patient_name.ilike(f"%{search.strip()}%"))
    if latest_treatment and latest_treatment != "All Treatments":
        query = query.where(Archive.treatment == latest_treatment)
    if archived_from:
        query = query.where(Archive.archived_at >= archived_from)
    if archived_to:
        query = query.where(Archive.archived_at <= archived_to)

    total = (
        await db.execute(select(func.count()).select_from(query.subquery()))
    ).scalar_one()
    result = await db.execute(
        query.order_by(Archive.archived_at.desc(), Archive.id.desc())
        .offset(params.offset)
        .limit(params.limit)
    )
    return [_archive_to_response(a, scope) for a in result.scalars().all()], total


async def get_archive(db: AsyncSession, scope: PracticeScope, archive_id: int) -> ArchiveResponse:
    return _archive_to_response(await _get_archive(db, scope, archive_id), scope)


async def purge_archive(db: AsyncSession, scope: PracticeScope, archive_id: int) -> None:
    """
    Borrado definitivo. Para pacientes elimina también el paciente y todas
    sus consultas, pagos y citas; las consultas ya no tienen filas vivas.
    """
    archive = await _get_archive(db, scope, archive_id)

    if archive.original_table == PATIENTS:
        patient_id = archive.original_id
        patient = await db.get(Patient, patient_id)
        if patient is not None and patient.dentist_id == archive.dentist_id:
            await db.execute(delete(Payment).where(Payment.patient_id == patient_id))
            await db.execute(delete(Appointment).where(Appointment.patient_id == patient_id))
            await db.execute(delete(Consultation).where(Consultation.patient_id == patient_id))
            await db.delete(patient)

    await db.delete(archive)
    await db.flush()
    logger.info(
        "Archivo %s purgado (%s #%s) por usuario %s",
        archive_id, archive.original_table, archive.original_id, scope.user.id,
    )
