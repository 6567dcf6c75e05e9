"""
Sobre de respuesta y paginación compartidos por todos los endpoints.

    {success: true, message?, data}
    {success: true, data: [...], pagination: {page, limit, total, pages}}
"""

import math
import re
from dataclasses import dataclass
from datetime import time
from typing import Any

from fastapi import Query
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

MAX_PAGE_LIMIT = 100
DEFAULT_PAGE_LIMIT = 10

# HH:MM en formato 24 horas; la hora admite un solo dígito (9:30)
HHMM_REGEX = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> PaginationMeta:
        return PaginationMeta(
            page=self.page,
            limit=self.limit,
            total=total,
            pages=math.ceil(total / self.limit) if total else 0,
        )


def pagination_params(
    page: int = Query(1, description="Página (desde 1)"),
    limit: int = Query(DEFAULT_PAGE_LIMIT, description="Tamaño de página (máx. 100)"),
) -> PageParams:
    """Normaliza page/limit: page >= 1, 1 <= limit <= 100."""
    return PageParams(
        page=max(page, 1),
        limit=min(max(limit, 1), MAX_PAGE_LIMIT),
    )


def success_response(data: Any = None, message: str | None = None, **extra: Any) -> dict:
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = jsonable_encoder(data)
    body.update(jsonable_encoder(extra))
    return body


def paginated_response(items: list, params: PageParams, total: int, **extra: Any) -> dict:
    body = {
        "success": True,
        "data": jsonable_encoder(items),
        "pagination": params.meta(total).model_dump(),
    }
    body.update(jsonable_encoder(extra))
    return body


def error_body(message: str, error: Any = None) -> dict:
    body: dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        body["error"] = jsonable_encoder(error)
    return body


def parse_hhmm(value: Any) -> time:
    """Convierte 'HH:MM' en time; acepta también objetos time ya parseados."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str) or not HHMM_REGEX.match(value.strip()):
        raise ValueError("Formato de hora inválido, use HH:MM (24 horas)")
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def format_hhmm(value: time | None) -> str | None:
    return value.strftime("%H:%M") if value is not None else None
