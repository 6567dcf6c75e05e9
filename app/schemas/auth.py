"""
Schemas de autenticación: registro, login y perfil.
"""

from pydantic import BaseModel, EmailStr, Field

from app.models.user import UserRole


# ── Registro ─────────────────────────────────────────
class RegisterRequest(BaseModel):
    """Alta de dentista o asistente; la cuenta queda pendiente de aprobación."""
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    phone: str | None = Field(None, max_length=30)
    role: UserRole = UserRole.DENTIST
    practice_name: str | None = Field(None, min_length=2, max_length=100)


# ── Login ────────────────────────────────────────────
class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


# ── Perfil ───────────────────────────────────────────
class ProfileUpdate(BaseModel):
    first_name: str | None = Field(None, min_length=2, max_length=50)
    last_name: str | None = Field(None, min_length=2, max_length=50)
    phone: str | None = Field(None, max_length=30)
    practice_name: str | None = Field(None, min_length=2, max_length=100)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6, max_length=128)
