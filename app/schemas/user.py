"""
Schemas para User y el flujo de aprobación.
"""

from datetime import datetime

from pydantic import BaseModel

from app.models.user import UserRole, UserStatus


class AssignedDentist(BaseModel):
    id: int
    first_name: str
    last_name: str
    practice_name: str | None = None

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    full_name: str
    phone: str | None = None
    role: UserRole
    practice_name: str | None = None
    status: UserStatus
    approved_at: datetime | None = None
    approved_by: int | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class ProfileResponse(UserResponse):
    """Usuario + dentista asignado (solo asistentes)."""
    assigned_dentist: AssignedDentist | None = None


class ApprovalResult(BaseModel):
    user: UserResponse
    assignment_created: bool = False
    assigned_counterpart_id: int | None = None
