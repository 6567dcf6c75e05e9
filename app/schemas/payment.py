"""
Schemas para Payment y reportes financieros.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import AliasChoices, BaseModel, Field

from app.models.payment import PaymentMethod


class PaymentCreate(BaseModel):
    consultation_id: int = Field(..., ge=1)
    amount: Decimal = Field(
        ..., gt=0, max_digits=10, decimal_places=2,
        validation_alias=AliasChoices("amount", "amount_paid"),
    )
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_date: date | None = None


class PaymentUpdate(BaseModel):
    """El monto no se edita: solo fecha y método."""
    payment_date: date | None = None
    payment_method: PaymentMethod | None = None


class PaymentResponse(BaseModel):
    id: int
    consultation_id: int
    patient_id: int
    dentist_id: int
    patient_name: str
    payment_date: date
    amount: Decimal
    payment_method: PaymentMethod
    remaining_balance: Decimal
    receipt_number: str | None = None
    created_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
