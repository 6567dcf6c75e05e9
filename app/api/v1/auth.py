"""
Endpoints de autenticación: registro, login y perfil.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.dependencies import get_current_user
from app.database import get_db
from app.models.user import User
from app.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RegisterRequest,
)
from app.schemas.common import success_response
from app.services import auth_service

router = APIRouter()


@router.post("/register", status_code=201)
async def register(
    data: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Registra un dentista o asistente. La cuenta queda `pending`
    hasta que un super_admin la apruebe. No requiere autenticación.
    """
    user = await auth_service.register(db, data)
    return success_response(
        user, message="Registro exitoso. Su cuenta está pendiente de aprobación"
    )


@router.post("/login")
async def login(
    data: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    """Autentica con email y contraseña; retorna token y perfil."""
    result = await auth_service.login(db, data)
    return success_response(result, message="Login exitoso")


@router.get("/profile")
async def get_profile(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return success_response(await auth_service.get_profile(db, user))


@router.put("/profile")
async def update_profile(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await auth_service.update_profile(db, user, data)
    return success_response(profile, message="Perfil actualizado")


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await auth_service.change_password(db, user, data)
    return success_response(message="Contraseña actualizada")
