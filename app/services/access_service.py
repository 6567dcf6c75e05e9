"""
Resolución del consultorio (dentist_id) sobre el que opera cada request.

- super_admin: sin restricción, o el consultorio que pida explícitamente.
- dentist: siempre su propio consultorio.
- assistant: el dentista al que está asignado.

El resultado es un PracticeScope explícito que los endpoints pasan
como parámetro a cada servicio.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.rbac import has_permission, redact_financials
from app.core.exceptions import (
    CredentialsException,
    ForbiddenException,
    ValidationException,
)
from app.models.assignment import UserAssignment
from app.models.user import User, UserRole, UserStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PracticeScope:
    """Usuario autenticado + consultorio efectivo del request."""

    user: User
    dentist_id: int | None

    @property
    def is_unrestricted(self) -> bool:
        return self.dentist_id is None

    @property
    def can_view_financials(self) -> bool:
        return has_permission(self.user.role, "financials", "read")

    def require_dentist_id(self) -> int:
        """Consultorio obligatorio para escrituras."""
        if self.dentist_id is None:
            raise ValidationException(
                "Debe indicar dentist_id para operar sobre un consultorio"
            )
        return self.dentist_id

    def restrict(self, stmt, column):
        """Aplica el filtro de consultorio a un select/update/delete."""
        if self.dentist_id is None:
            return stmt
        return stmt.where(column == self.dentist_id)

    def redact(self, data: dict) -> dict:
        return redact_financials(data, self.user.role)


async def get_assigned_dentist_id(db: AsyncSession, assistant_id: int) -> int | None:
    result = await db.execute(
        select(UserAssignment.dentist_id).where(
            UserAssignment.assistant_id == assistant_id
        )
    )
    return result.scalar_one_or_none()


async def resolve_practice_scope(
    db: AsyncSession,
    user: User,
    requested_dentist_id: int | None = None,
) -> PracticeScope:
    """
    Determina el consultorio que el usuario puede tocar en este request.

    Raises:
        CredentialsException: cuenta no aprobada.
        ForbiddenException: se pide otro consultorio, o asistente sin asignar.
    """
    if user.status != UserStatus.APPROVED:
        raise CredentialsException("La cuenta no está aprobada")

    if user.role == UserRole.SUPER_ADMIN:
        return PracticeScope(user=user, dentist_id=requested_dentist_id)

    if user.role == UserRole.DENTIST:
        if requested_dentist_id is not None and requested_dentist_id != user.id:
            raise ForbiddenException("No puede acceder a otro consultorio")
        return PracticeScope(user=user, dentist_id=user.id)

    if user.role == UserRole.ASSISTANT:
        dentist_id = await get_assigned_dentist_id(db, user.id)
        if dentist_id is None:
            logger.info("Asistente %s sin dentista asignado", user.id)
            raise ForbiddenException("No está asignado a ningún dentista")
        if requested_dentist_id is not None and requested_dentist_id != dentist_id:
            raise ForbiddenException("No puede acceder a otro consultorio")
        return PracticeScope(user=user, dentist_id=dentist_id)

    raise ForbiddenException("Rol no reconocido")
