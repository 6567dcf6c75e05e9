"""
Schemas para Consultation, incluida la creación compuesta
(paciente + consulta + pago inicial + cita de seguimiento).
"""

from datetime import date, datetime, time
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from app.schemas.common import parse_hhmm


class ConsultationCreate(BaseModel):
    # Paciente: se reutiliza patient_id o el teléfono; si no, se crea
    patient_id: int | None = Field(None, ge=1)
    first_name: str | None = Field(None, min_length=1, max_length=100)
    last_name: str | None = Field(None, min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=30)

    date_of_consultation: date
    type_of_prosthesis: str = Field(..., min_length=2, max_length=200)
    total_price: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    amount_paid: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)

    needs_followup: bool = False
    follow_up_date: date | None = None
    follow_up_time: time | None = Field(None, description="HH:MM (24 horas)")

    @field_validator("follow_up_time", mode="before")
    @classmethod
    def parse_time(cls, v):
        if v is None:
            return v
        return parse_hhmm(v)

    @model_validator(mode="after")
    def check_patient_and_followup(self):
        if self.patient_id is None and not (self.first_name and self.last_name):
            raise ValueError("first_name y last_name son obligatorios sin patient_id")
        if self.needs_followup and self.follow_up_date is None:
            raise ValueError("follow_up_date es obligatorio si needs_followup es true")
        if self.needs_followup and self.follow_up_time is None:
            raise ValueError("follow_up_time es obligatorio si needs_followup es true")
        return self


class ConsultationUpdate(BaseModel):
    date_of_consultation: date | None = None
    type_of_prosthesis: str | None = Field(None, min_length=2, max_length=200)
    total_price: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)
    needs_followup: bool | None = None
    follow_up_date: date | None = None
    follow_up_time: time | None = None

    @field_validator("follow_up_time", mode="before")
    @classmethod
    def parse_time(cls, v):
        if v is None:
            return v
        return parse_hhmm(v)


class ConsultationResponse(BaseModel):
    id: int
    patient_id: int
    dentist_id: int
    date_of_consultation: date
    type_of_prosthesis: str
    total_price: Decimal
    amount_paid: Decimal
    remaining_balance: Decimal
    payment_status: str
    needs_followup: bool
    receipt_number: str | None = None
    created_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
