"""
Router principal de la API v1.
Agrupa todos los sub-routers de la versión 1.
"""

from fastapi import APIRouter

from app.api.v1.admin import router as admin_router
from app.api.v1.appointments import router as appointments_router
from app.api.v1.archives import router as archives_router
from app.api.v1.auth import router as auth_router
from app.api.v1.consultations import router as consultations_router
from app.api.v1.patients import router as patients_router
from app.api.v1.payments import router as payments_router

api_v1_router = APIRouter()

api_v1_router.include_router(
    auth_router,
    prefix="/auth",
    tags=["Autenticación"],
)

api_v1_router.include_router(
    admin_router,
    prefix="/admin",
    tags=["Administración"],
)

api_v1_router.include_router(
    patients_router,
    prefix="/patients",
    tags=["Pacientes"],
)

api_v1_router.include_router(
    consultations_router,
    prefix="/consultations",
    tags=["Consultas"],
)

api_v1_router.include_router(
    appointments_router,
    prefix="/appointments",
    tags=["Citas"],
)

api_v1_router.include_router(
    payments_router,
    prefix="/payments",
    tags=["Pagos"],
)

api_v1_router.include_router(
    archives_router,
    prefix="/archives",
    tags=["Archivo"],
)
