"""
Servicio de autenticación: registro, login y perfil.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import create_access_token
from app.core.exceptions import (
    ConflictException,
    CredentialsException,
    ValidationException,
)
from app.core.security import hash_password, verify_password
from app.core.updates import apply_changes, changed_fields
from app.database import flush_or_conflict
from app.models.assignment import UserAssignment
from app.models.user import User, UserRole, UserStatus
from app.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
)
from app.schemas.user import AssignedDentist, ProfileResponse, UserResponse

logger = logging.getLogger(__name__)


def _user_to_response(user: User) -> UserResponse:
    return UserResponse.model_validate(user)


async def _ensure_practice_name_free(
    db: AsyncSession, practice_name: str, exclude_user_id: int | None = None
) -> None:
    """Un nombre de consultorio identifica a un único dentista no rechazado."""
    stmt = select(User.id).where(
        User.role == UserRole.DENTIST,
        User.status != UserStatus.REJECTED,
        func.lower(User.practice_name) == practice_name.lower(),
    )
    if exclude_user_id is not None:
        stmt = stmt.where(User.id != exclude_user_id)
    if (await db.execute(stmt.limit(1))).scalar_one_or_none() is not None:
        raise ConflictException("Ya existe un consultorio con ese nombre")


async def register(db: AsyncSession, data: RegisterRequest) -> UserResponse:
    """
    Registra un dentista o asistente en estado `pending`.
    No emite token: el login queda bloqueado hasta la aprobación.
    """
    if data.role == UserRole.SUPER_ADMIN:
        raise ValidationException("Rol no permitido en el registro")

    email = data.email.lower()
    existing_user = await db.execute(select(User.id).where(User.email == email))
    if existing_user.scalar_one_or_none() is not None:
        raise ConflictException("Ya existe un usuario con ese email")

    practice_name = data.practice_name.strip() if data.practice_name else None
    if practice_name and data.role == UserRole.DENTIST:
        await _ensure_practice_name_free(db, practice_name)

    user = User(
        email=email,
        password_hash=hash_password(data.password),
        first_name=data.first_name.strip(),
        last_name=data.last_name.strip(),
        phone=data.phone,
        role=data.role,
        practice_name=practice_name,
        status=UserStatus.PENDING,
    )
    db.add(user)
    await flush_or_conflict(db, "Ya existe un usuario con ese email")
    await db.refresh(user)

    logger.info("Registro de %s %s (pendiente de aprobación)", user.role.value, user.email)
    return _user_to_response(user)


async def get_assigned_dentist(db: AsyncSession, user: User) -> AssignedDentist | None:
    if user.role != UserRole.ASSISTANT:
        return None
    result = await db.execute(
        select(User)
        .join(UserAssignment, UserAssignment.dentist_id == User.id)
        .where(UserAssignment.assistant_id == user.id)
    )
    dentist = result.scalar_one_or_none()
    return AssignedDentist.model_validate(dentist) if dentist else None


async def _profile(db: AsyncSession, user: User) -> ProfileResponse:
    profile = ProfileResponse.model_validate(user)
    profile.assigned_dentist = await get_assigned_dentist(db, user)
    return profile


async def login(db: AsyncSession, data: LoginRequest) -> dict:
    """
    Autentica con email y contraseña.
    Cuentas pendientes o rechazadas reciben 401 con un mensaje específico.
    """
    result = await db.execute(select(User).where(User.email == data.email.lower()))
    user = result.scalar_one_or_none()

    if not user:
        logger.warning("Login fallido: usuario no encontrado para email=%s", data.email)
        raise CredentialsException("Email o contraseña incorrectos")

    if not verify_password(data.password, user.password_hash):
        logger.warning("Login fallido: contraseña incorrecta para user_id=%s", user.id)
        raise CredentialsException("Email o contraseña incorrectos")

    if user.status == UserStatus.PENDING:
        raise CredentialsException("Su cuenta está pendiente de aprobación")
    if user.status == UserStatus.REJECTED:
        raise CredentialsException("Su cuenta fue rechazada")

    token = create_access_token(user.id, user.role.value)
    logger.info("Login exitoso user_id=%s", user.id)
    return {
        "token": token,
        "token_type": "bearer",
        "user": await _profile(db, user),
    }


async def get_profile(db: AsyncSession, user: User) -> ProfileResponse:
    return await _profile(db, user)


async def update_profile(
    db: AsyncSession, user: User, data: ProfileUpdate
) -> ProfileResponse:
    changes = changed_fields(data)
    if changes.get("practice_name") and user.role == UserRole.DENTIST:
        await _ensure_practice_name_free(db, changes["practice_name"], exclude_user_id=user.id)

    apply_changes(user, changes, required=("first_name", "last_name"))
    await db.flush()
    await db.refresh(user)
    return await _profile(db, user)


async def change_password(
    db: AsyncSession, user: User, data: ChangePasswordRequest
) -> None:
    if not verify_password(data.current_password, user.password_hash):
        raise ValidationException("La contraseña actual es incorrecta")
    user.password_hash = hash_password(data.new_password)
    await db.flush()
    logger.info("Contraseña actualizada user_id=%s", user.id)
