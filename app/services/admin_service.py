"""
Servicio de administración: aprobación de cuentas, auto-asignación
asistente ↔ dentista por nombre de consultorio y estadísticas globales.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundException
from app.models.assignment import UserAssignment
from app.models.consultation import Consultation
from app.models.patient import Patient
from app.models.user import User, UserRole, UserStatus
from app.schemas.common import PageParams
from app.schemas.user import ApprovalResult, UserResponse

logger = logging.getLogger(__name__)

_COUNTERPART_ROLE = {
    UserRole.DENTIST: UserRole.ASSISTANT,
    UserRole.ASSISTANT: UserRole.DENTIST,
}


# ── Listados ─────────────────────────────────────────

async def list_pending(db: AsyncSession) -> list[UserResponse]:
    result = await db.execute(
        select(User)
        .where(User.status == UserStatus.PENDING)
        .order_by(User.created_at, User.id)
    )
    return [UserResponse.model_validate(u) for u in result.scalars().all()]


async def list_users(
    db: AsyncSession,
    params: PageParams,
    status: UserStatus | None = None,
    role: UserRole | None = None,
) -> tuple[list[UserResponse], int]:
    stmt = select(User)
    if status is not None:
        stmt = stmt.where(User.status == status)
    if role is not None:
        stmt = stmt.where(User.role == role)

    total = (
        await db.execute(select(func.count()).select_from(stmt.subquery()))
    ).scalar_one()
    result = await db.execute(
        stmt.order_by(User.created_at.desc(), User.id.desc())
        .offset(params.offset)
        .limit(params.limit)
    )
    return [UserResponse.model_validate(u) for u in result.scalars().all()], total


# ── Aprobación ───────────────────────────────────────

async def _get_pending_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id, User.status == UserStatus.PENDING)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundException(detail="Usuario no encontrado o ya procesado")
    return user


async def auto_assign(db: AsyncSession, user: User) -> UserAssignment | None:
    """
    Vincula al usuario recién aprobado con su contraparte del mismo consultorio.

    Busca el rol opuesto, mismo practice_name, estado approved, por id
    ascendente; gana el primero. Al aprobar un dentista solo se consideran
    asistentes que aún no tienen dentista.
    """
    counterpart_role = _COUNTERPART_ROLE.get(user.role)
    if counterpart_role is None or not user.practice_name:
        return None

    if user.role == UserRole.ASSISTANT:
        already = await db.execute(
            select(UserAssignment.id).where(UserAssignment.assistant_id == user.id)
        )
        if already.scalar_one_or_none() is not None:
            return None

    stmt = select(User).where(
        User.role == counterpart_role,
        User.status == UserStatus.APPROVED,
        User.practice_name == user.practice_name,
        User.id != user.id,
    )
    if counterpart_role == UserRole.ASSISTANT:
        stmt = stmt.outerjoin(
            UserAssignment, UserAssignment.assistant_id == User.id
        ).where(UserAssignment.id.is_(None))

    candidates = (await db.execute(stmt.order_by(User.id))).scalars().all()
    if not candidates:
        logger.info(
            "Sin contraparte aprobada para %s %s en '%s'",
            user.role.value, user.id, user.practice_name,
        )
        return None
    if len(candidates) > 1 and counterpart_role == UserRole.DENTIST:
        logger.warning(
            "Varios dentistas comparten el consultorio '%s' (%s); se asigna al id %s",
            user.practice_name, [c.id for c in candidates], candidates[0].id,
        )

    counterpart = candidates[0]
    if user.role == UserRole.DENTIST:
        dentist_id, assistant_id = user.id, counterpart.id
    else:
        dentist_id, assistant_id = counterpart.id, user.id

    assignment = UserAssignment(dentist_id=dentist_id, assistant_id=assistant_id)
    db.add(assignment)
    await db.flush()
    logger.info(
        "Asistente %s asignado al dentista %s ('%s')",
        assistant_id, dentist_id, user.practice_name,
    )
    return assignment


async def approve_user(db: AsyncSession, user_id: int, admin: User) -> ApprovalResult:
    """Solo desde `pending`. Sella la aprobación y ejecuta la auto-asignación."""
    user = await _get_pending_user(db, user_id)
    user.status = UserStatus.APPROVED
    user.approved_at = datetime.now(timezone.utc)
    user.approved_by = admin.id
    await db.flush()

    assignment = await auto_assign(db, user)
    await db.refresh(user)
    logger.info("Usuario %s aprobado por admin %s", user.id, admin.id)

    counterpart_id = None
    if assignment is not None:
        counterpart_id = (
            assignment.assistant_id if user.role == UserRole.DENTIST else assignment.dentist_id
        )
    return ApprovalResult(
        user=UserResponse.model_validate(user),
        assignment_created=assignment is not None,
        assigned_counterpart_id=counterpart_id,
    )


async def reject_user(db: AsyncSession, user_id: int, admin: User) -> UserResponse:
    """Solo desde `pending`; una cuenta rechazada ya no cambia de estado."""
    user = await _get_pending_user(db, user_id)
    user.status = UserStatus.REJECTED
    await db.flush()
    await db.refresh(user)
    logger.info("Usuario %s rechazado por admin %s", user.id, admin.id)
    return UserResponse.model_validate(user)


# ── Estadísticas ─────────────────────────────────────

async def system_stats(db: AsyncSession) -> dict:
    by_role_status = await db.execute(
        select(User.role, User.status, func.count(User.id)).group_by(User.role, User.status)
    )
    users = [
        {"role": role.value, "status": status.value, "count": count}
        for role, status, count in by_role_status.all()
    ]

    patients = (
        await db.execute(
            select(
                func.count(Patient.id),
                func.count(Patient.id).filter(Patient.is_archived.is_(False)),
                func.count(Patient.id).filter(Patient.is_archived.is_(True)),
            )
        )
    ).one()

    consultations = (
        await db.execute(
            select(
                func.count(Consultation.id),
                func.coalesce(func.sum(Consultation.total_price), 0),
                func.coalesce(func.sum(Consultation.amount_paid), 0),
                func.coalesce(func.sum(Consultation.remaining_balance), 0),
            )
        )
    ).one()

    since = datetime.now(timezone.utc) - timedelta(days=365)
    created = await db.execute(select(User.created_at).where(User.created_at >= since))
    monthly = Counter(ts.strftime("%Y-%m") for ts in created.scalars().all() if ts)

    return {
        "users": users,
        "patients": {
            "total": patients[0],
            "active": patients[1],
            "archived": patients[2],
        },
        "consultations": {
            "total": consultations[0],
            "total_revenue": Decimal(str(consultations[1])),
            "total_paid": Decimal(str(consultations[2])),
            "outstanding_balance": Decimal(str(consultations[3])),
        },
        "monthly_registrations": [
            {"month": month, "count": count} for month, count in sorted(monthly.items())
        ],
    }


async def dentist_details(db: AsyncSession, dentist_id: int) -> dict:
    dentist = await db.execute(
        select(User).where(User.id == dentist_id, User.role == UserRole.DENTIST)
    )
    dentist = dentist.scalar_one_or_none()
    if dentist is None:
        raise NotFoundException("Dentista")

    assistants = await db.execute(
        select(User, UserAssignment.assigned_at)
        .join(UserAssignment, UserAssignment.assistant_id == User.id)
        .where(UserAssignment.dentist_id == dentist_id)
        .order_by(User.id)
    )

    active_patients = (
        await db.execute(
            select(func.count(Patient.id)).where(
                Patient.dentist_id == dentist_id, Patient.is_archived.is_(False)
            )
        )
    ).scalar_one()
    totals = (
        await db.execute(
            select(
                func.count(Consultation.id),
                func.coalesce(func.sum(Consultation.total_price), 0),
                func.coalesce(func.sum(Consultation.remaining_balance), 0),
            ).where(Consultation.dentist_id == dentist_id)
        )
    ).one()

    return {
        "dentist": UserResponse.model_validate(dentist),
        "assistants": [
            {
                "id": assistant.id,
                "email": assistant.email,
                "first_name": assistant.first_name,
                "last_name": assistant.last_name,
                "phone": assistant.phone,
                "assigned_at": assigned_at,
            }
            for assistant, assigned_at in assistants.all()
        ],
        "statistics": {
            "active_patients": active_patients,
            "total_consultations": totals[0],
            "total_revenue": Decimal(str(totals[1])),
            "outstanding_balance": Decimal(str(totals[2])),
        },
    }
