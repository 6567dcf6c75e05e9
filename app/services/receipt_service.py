"""
Números de recibo y datos imprimibles de recibos.

Formato: <CON|PAY>-<YYYYMMDD>-<dentista 3 dígitos>-<últimos 6 dígitos del timestamp ms>
    CON-20250314-007-482913
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.models.consultation import Consultation
from app.models.patient import Patient
from app.models.payment import Payment
from app.models.user import User
from app.services.access_service import PracticeScope

logger = logging.getLogger(__name__)

CONSULTATION_PREFIX = "CON"
PAYMENT_PREFIX = "PAY"

_MODELS_BY_PREFIX = {
    CONSULTATION_PREFIX: Consultation,
    PAYMENT_PREFIX: Payment,
}


def format_receipt_number(prefix: str, dentist_id: int, moment: datetime) -> str:
    millis = int(moment.timestamp() * 1000)
    return f"{prefix}-{moment:%Y%m%d}-{dentist_id:03d}-{str(millis)[-6:]}"


async def next_receipt_number(
    db: AsyncSession,
    prefix: str,
    dentist_id: int,
    now: datetime | None = None,
) -> str:
    """
    Genera un número de recibo libre en la tabla correspondiente.
    Si ya existe, avanza un milisegundo y vuelve a intentar.
    """
    model = _MODELS_BY_PREFIX[prefix]
    moment = now or datetime.now(timezone.utc)
    while True:
        candidate = format_receipt_number(prefix, dentist_id, moment)
        existing = await db.execute(
            select(model.id).where(model.receipt_number == candidate)
        )
        if existing.scalar_one_or_none() is None:
            return candidate
        logger.debug("Recibo %s ya existe, regenerando", candidate)
        moment += timedelta(milliseconds=1)


# ── Datos de recibos ─────────────────────────────────

async def _practice_header(db: AsyncSession, dentist_id: int) -> dict:
    dentist = await db.get(User, dentist_id)
    if dentist is None:
        return {"dentist_id": dentist_id}
    return {
        "dentist_id": dentist.id,
        "dentist_name": dentist.full_name,
        "practice_name": dentist.practice_name,
        "phone": dentist.phone,
    }


async def consultation_receipt(
    db: AsyncSession, scope: PracticeScope, consultation_id: int
) -> dict:
    stmt = scope.restrict(
        select(Consultation, Patient)
        .join(Patient, Patient.id == Consultation.patient_id)
        .where(Consultation.id == consultation_id),
        Consultation.dentist_id,
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFoundException("Consulta")
    consultation, patient = row

    payments = await db.execute(
        select(Payment)
        .where(Payment.consultation_id == consultation.id)
        .order_by(Payment.payment_date, Payment.id)
    )

    return {
        "receipt_number": consultation.receipt_number,
        "date": consultation.date_of_consultation,
        "practice": await _practice_header(db, consultation.dentist_id),
        "patient": {
            "id": patient.id,
            "name": patient.full_name,
            "phone": patient.phone,
        },
        "treatment": consultation.type_of_prosthesis,
        "total_price": consultation.total_price,
        "amount_paid": consultation.amount_paid,
        "remaining_balance": consultation.remaining_balance,
        "payment_status": consultation.payment_status,
        "payments": [
            {
                "receipt_number": p.receipt_number,
                "payment_date": p.payment_date,
                "amount": p.amount,
                "payment_method": p.payment_method.value,
            }
            for p in payments.scalars().all()
        ],
    }


async def payment_receipt(db: AsyncSession, scope: PracticeScope, payment_id: int) -> dict:
    stmt = scope.restrict(
        select(Payment, Consultation)
        .join(Consultation, Consultation.id == Payment.consultation_id)
        .where(Payment.id == payment_id),
        Payment.dentist_id,
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        raise NotFoundException("Pago")
    payment, consultation = row

    return {
        "receipt_number": payment.receipt_number,
        "payment_date": payment.payment_date,
        "practice": await _practice_header(db, payment.dentist_id),
        "patient_name": payment.patient_name,
        "treatment": consultation.type_of_prosthesis,
        "consultation_receipt_number": consultation.receipt_number,
        "amount": payment.amount,
        "payment_method": payment.payment_method.value,
        "remaining_balance": payment.remaining_balance,
        "total_price": consultation.total_price,
    }
