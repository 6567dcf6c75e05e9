"""
Endpoints de administración (solo super_admin): aprobación de cuentas,
listado de usuarios y estadísticas del sistema.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import require_role
from app.database import get_db
from app.models.user import User, UserRole, UserStatus
from app.schemas.common import (
    PageParams,
    paginated_response,
    pagination_params,
    success_response,
)
from app.services import admin_service

router = APIRouter()

require_super_admin = require_role(UserRole.SUPER_ADMIN)


@router.get("/pending-registrations")
async def pending_registrations(
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await admin_service.list_pending(db))


@router.get("/users")
async def list_users(
    params: PageParams = Depends(pagination_params),
    status: UserStatus | None = Query(None, description="Filtrar por estado"),
    role: UserRole | None = Query(None, description="Filtrar por rol"),
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    users, total = await admin_service.list_users(db, params, status=status, role=role)
    return paginated_response(users, params, total)


@router.post("/approve/{user_id}")
async def approve_user(
    user_id: int,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    """Aprueba una cuenta pendiente y la vincula con su contraparte del consultorio."""
    result = await admin_service.approve_user(db, user_id, admin)
    return success_response(
        result, message=f"Usuario {result.user.full_name} aprobado"
    )


@router.post("/reject/{user_id}")
async def reject_user(
    user_id: int,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    user = await admin_service.reject_user(db, user_id, admin)
    return success_response(user, message=f"Usuario {user.full_name} rechazado")


@router.get("/stats")
async def system_stats(
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await admin_service.system_stats(db))


@router.get("/dentist/{dentist_id}")
async def dentist_details(
    dentist_id: int,
    admin: User = Depends(require_super_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await admin_service.dentist_details(db, dentist_id))
