"""
Dependencies de FastAPI para autenticación y alcance de consultorio.
"""

import jwt
from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.auth.rbac import has_permission
from app.core.exceptions import CredentialsException, ForbiddenException
from app.database import get_db
from app.models.user import User, UserRole, UserStatus
from app.services.access_service import PracticeScope, resolve_practice_scope

# ── Security scheme ──────────────────────────────────
security = HTTPBearer(auto_error=False)


# ── Token payload tipado ─────────────────────────────
class TokenPayload:
    """Datos extraídos del token JWT decodificado."""

    def __init__(self, payload: dict):
        self.user_id: int = int(payload["sub"])
        self.role: str = payload.get("role", "")


# ── Obtener usuario actual ───────────────────────────
async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency que:
    1. Decodifica el JWT del header Authorization
    2. Carga el usuario de la DB
    3. Rechaza cuentas que no estén aprobadas
    """
    if credentials is None:
        raise CredentialsException("Token de acceso requerido")

    try:
        payload = decode_token(credentials.credentials)
        token_data = TokenPayload(payload)
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise CredentialsException("Token inválido o expirado")

    result = await db.execute(select(User).where(User.id == token_data.user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise CredentialsException("Usuario no encontrado")
    if user.status != UserStatus.APPROVED:
        raise CredentialsException("La cuenta no está aprobada")

    return user


# ── Factory de dependency con roles ──────────────────
def require_role(*allowed_roles: UserRole):
    """
    Factory que crea un dependency que verifica el rol del usuario.

    Uso:
        @router.get("/admin-only")
        async def admin_endpoint(user: User = Depends(require_role(UserRole.SUPER_ADMIN))):
            ...
    """

    async def _check_role(
        user: User = Depends(get_current_user),
    ) -> User:
        if user.role not in allowed_roles:
            raise ForbiddenException(
                f"Se requiere uno de los roles: {', '.join(r.value for r in allowed_roles)}"
            )
        return user

    return _check_role


def require_permission(resource: str, action: str):
    """Factory de dependency que consulta la tabla PERMISSIONS."""

    async def _check_permission(
        user: User = Depends(get_current_user),
    ) -> User:
        if not has_permission(user.role, resource, action):
            raise ForbiddenException(
                f"Su rol no tiene acceso a {resource}"
            )
        return user

    return _check_permission


# Asistentes: sin acceso a pagos ni recibos
require_payment_access = require_permission("payment", "access")
require_receipt_access = require_permission("receipt", "read")


# ── Consultorio efectivo del request ─────────────────
async def get_practice_scope(
    dentist_id: int | None = Query(
        None, description="Consultorio objetivo (solo super_admin puede elegir libremente)"
    ),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> PracticeScope:
    return await resolve_practice_scope(db, user, dentist_id)
