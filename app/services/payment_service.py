"""
Servicio de pagos: libro de abonos por consulta y reportes financieros.

Cada alta suma el monto a consultations.amount_paid y cada baja lo resta,
en la misma transacción; remaining_balance lo recalcula la base.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException, ValidationException
from app.core.updates import apply_changes, changed_fields
from app.database import flush_or_conflict
from app.models.consultation import Consultation
from app.models.patient import Patient
from app.models.payment import Payment, PaymentMethod
from app.schemas.common import PageParams
from app.schemas.payment import PaymentCreate, PaymentResponse, PaymentUpdate
from app.services import receipt_service
from app.services.access_service import PracticeScope

logger = logging.getLogger(__name__)

REPORT_PERIODS = ("today", "week", "month", "year")


def _payment_to_response(payment: Payment) -> PaymentResponse:
    return PaymentResponse.model_validate(payment)


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


def _consultation_balance(consultation: Consultation) -> dict:
    return {
        "id": consultation.id,
        "total_price": consultation.total_price,
        "amount_paid": consultation.amount_paid,
        "remaining_balance": consultation.remaining_balance,
        "payment_status": consultation.payment_status,
    }


async def _get_consultation_for_update(
    db: AsyncSession, scope: PracticeScope, consultation_id: int
) -> Consultation:
    result = await db.execute(
        scope.restrict(
            select(Consultation).where(Consultation.id == consultation_id),
            Consultation.dentist_id,
        ).with_for_update()
    )
    consultation = result.scalar_one_or_none()
    if consultation is None:
        raise NotFoundException(
            detail="Consulta no encontrada o no pertenece a su consultorio"
        )
    return consultation


async def _get_payment(db: AsyncSession, scope: PracticeScope, payment_id: int) -> Payment:
    result = await db.execute(
        scope.restrict(select(Payment).where(Payment.id == payment_id), Payment.dentist_id)
    )
    payment = result.scalar_one_or_none()
    if payment is None:
        raise NotFoundException("Pago")
    return payment


# ── CRUD ─────────────────────────────────────────────

async def create_payment(
    db: AsyncSession, scope: PracticeScope, data: PaymentCreate
) -> dict:
    """
    Registra un abono. Falla con ValidationException si supera el saldo
    pendiente; en ese caso amount_paid no se modifica.
    """
    consultation = await _get_consultation_for_update(db, scope, data.consultation_id)
    if data.amount > consultation.remaining_balance:
        raise ValidationException(
            f"El monto ({data.amount}) supera el saldo pendiente "
            f"({consultation.remaining_balance})"
        )

    patient = await db.get(Patient, consultation.patient_id)
    payment = Payment(
        consultation_id=consultation.id,
        patient_id=consultation.patient_id,
        dentist_id=consultation.dentist_id,
        patient_name=patient.full_name if patient else "",
        payment_date=data.payment_date or date.today(),
        amount=data.amount,
        payment_method=data.payment_method,
        remaining_balance=consultation.remaining_balance - data.amount,
        receipt_number=await receipt_service.next_receipt_number(
            db, receipt_service.PAYMENT_PREFIX, consultation.dentist_id
        ),
        created_by=scope.user.id,
    )
    db.add(payment)
    consultation.amount_paid = consultation.amount_paid + data.amount
    await flush_or_conflict(db, "Número de recibo duplicado")
    await db.refresh(payment)
    await db.refresh(consultation)

    logger.info(
        "Pago %s de %s registrado en consulta %s (saldo %s)",
        payment.id, payment.amount, consultation.id, consultation.remaining_balance,
    )
    return {
        "payment": _payment_to_response(payment),
        "consultation": _consultation_balance(consultation),
    }


async def get_payment(db: AsyncSession, scope: PracticeScope, payment_id: int) -> PaymentResponse:
    return _payment_to_response(await _get_payment(db, scope, payment_id))


async def list_payments(
    db: AsyncSession,
    scope: PracticeScope,
    params: PageParams,
    date_from: date | None = None,
    date_to: date | None = None,
    patient_id: int | None = None,
    consultation_id: int | None = None,
    payment_method: PaymentMethod | None = None,
) -> tuple[list[PaymentResponse], int, dict]:
    query = scope.restrict(select(Payment), Payment.dentist_id)
    if date_from:
        query = query.where(Payment.payment_date >= date_from)
    if date_to:
        query = query.where(Payment.payment_date <= date_to)
    if patient_id:
        query = query.where(Payment.patient_id == patient_id)
    if consultation_id:
        query = query.where(Payment.consultation_id == consultation_id)
    if payment_method:
        query = query.where(Payment.payment_method == payment_method)

    filtered = query.subquery()
    count, amount = (
        await db.execute(
            select(func.count(), func.coalesce(func.sum(filtered.c.amount), 0))
        )
    ).one()

    result = await db.execute(
        query.order_by(Payment.payment_date.desc(), Payment.id.desc())
        .offset(params.offset)
        .limit(params.limit)
    )
    summary = {"total_payments": count, "total_amount": _money(amount)}
    return [_payment_to_response(p) for p in result.scalars().all()], count, summary


async def update_payment(
    db: AsyncSession,
    scope: PracticeScope,
    payment_id: int,
    data: PaymentUpdate,
) -> PaymentResponse:
    """Solo fecha y método; el monto no se edita después del alta."""
    payment = await _get_payment(db, scope, payment_id)
    apply_changes(payment, changed_fields(data), required=("payment_date", "payment_method"))
    await db.flush()
    await db.refresh(payment)
    return _payment_to_response(payment)


async def delete_payment(db: AsyncSession, scope: PracticeScope, payment_id: int) -> dict:
    """Elimina el pago y descuenta su monto de la consulta."""
    payment = await _get_payment(db, scope, payment_id)
    consultation = await _get_consultation_for_update(db, scope, payment.consultation_id)

    consultation.amount_paid = consultation.amount_paid - payment.amount
    await db.delete(payment)
    await db.flush()
    await db.refresh(consultation)

    logger.info(
        "Pago %s eliminado; consulta %s queda con saldo %s",
        payment_id, consultation.id, consultation.remaining_balance,
    )
    return {"consultation": _consultation_balance(consultation)}


# ── Reportes ─────────────────────────────────────────

def resolve_period(
    period: str | None,
    start_date: date | None,
    end_date: date | None,
    today: date | None = None,
) -> tuple[date, date]:
    """Rango explícito o uno de today|week|month|year (por defecto month)."""
    today = today or date.today()
    if start_date or end_date:
        start = start_date or date.min
        end = end_date or today
        if start > end:
            raise ValidationException("start_date no puede ser posterior a end_date")
        return start, end

    period = period or "month"
    if period == "today":
        return today, today
    if period == "week":
        return today - timedelta(days=6), today
    if period == "month":
        return today.replace(day=1), today
    if period == "year":
        return today.replace(month=1, day=1), today
    raise ValidationException(
        f"Periodo inválido '{period}'. Valores: {', '.join(REPORT_PERIODS)}"
    )


async def financial_report(
    db: AsyncSession,
    scope: PracticeScope,
    period: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> dict:
    start, end = resolve_period(period, start_date, end_date)
    in_range = scope.restrict(
        select(Payment).where(Payment.payment_date >= start, Payment.payment_date <= end),
        Payment.dentist_id,
    ).subquery()

    count, income = (
        await db.execute(select(func.count(), func.coalesce(func.sum(in_range.c.amount), 0)))
    ).one()

    daily = await db.execute(
        select(in_range.c.payment_date, func.count(), func.sum(in_range.c.amount))
        .group_by(in_range.c.payment_date)
        .order_by(in_range.c.payment_date)
    )
    by_method = await db.execute(
        select(in_range.c.payment_method, func.count(), func.sum(in_range.c.amount))
        .group_by(in_range.c.payment_method)
    )

    outstanding = await db.execute(
        scope.restrict(
            select(Consultation, Patient)
            .join(Patient, Patient.id == Consultation.patient_id)
            .where(Consultation.remaining_balance > 0),
            Consultation.dentist_id,
        ).order_by(Consultation.remaining_balance.desc(), Consultation.id)
    )
    outstanding_rows = [
        {
            "consultation_id": c.id,
            "patient_id": p.id,
            "patient_name": p.full_name,
            "type_of_prosthesis": c.type_of_prosthesis,
            "date_of_consultation": c.date_of_consultation,
            "total_price": c.total_price,
            "amount_paid": c.amount_paid,
            "remaining_balance": c.remaining_balance,
        }
        for c, p in outstanding.all()
    ]

    return {
        "period": {"start_date": start if start != date.min else None, "end_date": end},
        "totals": {"payments": count, "income": _money(income)},
        "daily_income": [
            {"date": day, "payments": n, "amount": _money(total)}
            for day, n, total in daily.all()
        ],
        "by_method": [
            {
                "payment_method": method.value if isinstance(method, PaymentMethod) else method,
                "payments": n,
                "amount": _money(total),
            }
            for method, n, total in by_method.all()
        ],
        "outstanding": {
            "consultations": len(outstanding_rows),
            "total_balance": _money(sum(r["remaining_balance"] for r in outstanding_rows)),
            "items": outstanding_rows,
        },
    }
