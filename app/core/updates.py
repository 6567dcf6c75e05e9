"""
Regla única de actualización parcial.

A partir de `model_dump(exclude_unset=True)`:
- campo ausente: sin cambio
- campo presente con null: limpia la columna (si es nullable)
- null sobre una columna obligatoria: ValidationException
"""

from collections.abc import Iterable

from pydantic import BaseModel

from app.core.exceptions import ValidationException


def changed_fields(data: BaseModel, exclude: Iterable[str] = ()) -> dict:
    """Campos enviados explícitamente en el body, sin los excluidos."""
    excluded = set(exclude)
    return {
        k: v for k, v in data.model_dump(exclude_unset=True).items()
        if k not in excluded
    }


def reject_null_required(changes: dict, required: Iterable[str]) -> None:
    for field in required:
        if field in changes and changes[field] is None:
            raise ValidationException(f"El campo '{field}' no puede ser nulo")


def apply_changes(instance, changes: dict, required: Iterable[str] = ()) -> list[str]:
    """Aplica los cambios sobre el modelo y retorna los nombres modificados."""
    reject_null_required(changes, required)
    for field, value in changes.items():
        setattr(instance, field, value)
    return list(changes)
