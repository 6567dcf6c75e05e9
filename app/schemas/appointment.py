"""
Schemas para Appointment: citas, cambio de estado y disponibilidad.
"""

from datetime import date, datetime, time

from pydantic import BaseModel, Field, field_serializer, field_validator

from app.models.appointment import AppointmentStatus
from app.schemas.common import format_hhmm, parse_hhmm


# ── CRUD de Citas ────────────────────────────────────

class AppointmentCreate(BaseModel):
    patient_id: int = Field(..., ge=1)
    consultation_id: int | None = Field(None, ge=1)
    appointment_date: date
    appointment_time: time = Field(..., description="HH:MM (24 horas)")
    patient_name: str | None = Field(None, min_length=2, max_length=200)
    patient_phone: str | None = Field(None, max_length=30)
    treatment_type: str = Field("Consultation", min_length=2, max_length=200)
    notes: str | None = Field(None, max_length=1000)

    @field_validator("appointment_time", mode="before")
    @classmethod
    def parse_time(cls, v):
        return parse_hhmm(v)


class AppointmentUpdate(BaseModel):
    appointment_date: date | None = None
    appointment_time: time | None = None
    patient_name: str | None = Field(None, min_length=2, max_length=200)
    patient_phone: str | None = Field(None, max_length=30)
    treatment_type: str | None = Field(None, min_length=2, max_length=200)
    status: AppointmentStatus | None = None
    notes: str | None = Field(None, max_length=1000)

    @field_validator("appointment_time", mode="before")
    @classmethod
    def parse_time(cls, v):
        if v is None:
            return v
        return parse_hhmm(v)


class AppointmentCancel(BaseModel):
    cancellation_reason: str | None = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    dentist_id: int
    consultation_id: int | None = None
    appointment_date: date
    appointment_time: time
    patient_name: str
    patient_phone: str | None = None
    treatment_type: str
    status: AppointmentStatus
    notes: str | None = None
    created_by: int | None = None
    cancelled_at: datetime | None = None
    cancelled_by: int | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_serializer("appointment_time")
    def serialize_time(self, value: time) -> str:
        return format_hhmm(value)


# ── Disponibilidad ───────────────────────────────────

class AvailabilityResponse(BaseModel):
    date: date
    dentist_id: int
    available_slots: list[str]
    booked_slots: list[str]
