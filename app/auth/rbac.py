"""
Definición de permisos RBAC por rol.
Mapea qué acciones puede realizar cada rol.
"""

from app.models.user import UserRole

_STAFF = [UserRole.SUPER_ADMIN, UserRole.DENTIST, UserRole.ASSISTANT]

# ── Permisos por recurso ─────────────────────────────
# Formato: {recurso: {acción: [roles permitidos]}}
PERMISSIONS: dict[str, dict[str, list[UserRole]]] = {
    "admin": {
        "read": [UserRole.SUPER_ADMIN],
        "approve": [UserRole.SUPER_ADMIN],
    },
    "patient": {
        "create": _STAFF,
        "read": _STAFF,
        "update": _STAFF,
        "archive": _STAFF,
    },
    "consultation": {
        "create": _STAFF,
        "read": _STAFF,
        "update": _STAFF,
        "delete": _STAFF,
    },
    "appointment": {
        "create": _STAFF,
        "read": _STAFF,
        "update": _STAFF,
        "cancel": _STAFF,
    },
    "archive": {
        "read": _STAFF,
        "restore": _STAFF,
        "purge": [UserRole.SUPER_ADMIN, UserRole.DENTIST],
    },
    # Asistentes no ven montos: pagos, recibos ni saldos
    "payment": {
        "access": [UserRole.SUPER_ADMIN, UserRole.DENTIST],
    },
    "receipt": {
        "read": [UserRole.SUPER_ADMIN, UserRole.DENTIST],
    },
    "financials": {
        "read": [UserRole.SUPER_ADMIN, UserRole.DENTIST],
    },
}

# Campos que se retiran de las respuestas sin permiso "financials.read"
FINANCIAL_FIELDS = ("total_price", "amount_paid", "remaining_balance", "payment_status")


def has_permission(role: UserRole, resource: str, action: str) -> bool:
    """Verifica si un rol tiene permiso para una acción en un recurso."""
    resource_perms = PERMISSIONS.get(resource, {})
    allowed_roles = resource_perms.get(action, [])
    return role in allowed_roles


def redact_financials(data: dict, role: UserRole) -> dict:
    """Quita los campos monetarios de un dict de respuesta si el rol no puede verlos."""
    if has_permission(role, "financials", "read"):
        return data
    return {k: v for k, v in data.items() if k not in FINANCIAL_FIELDS}
