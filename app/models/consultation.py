"""
Modelo Consultation: Tratamiento protésico con su registro financiero.

`remaining_balance` es una columna generada por la base:
    remaining_balance = total_price - amount_paid
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Computed,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class Consultation(Base):
    __tablename__ = "consultations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    patient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("patients.id"), nullable=False, index=True
    )
    dentist_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )

    date_of_consultation: Mapped[date] = mapped_column(Date, nullable=False)
    type_of_prosthesis: Mapped[str] = mapped_column(String(200), nullable=False)

    # ── Finanzas ─────────────────────────────────────
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    remaining_balance: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), Computed("total_price - amount_paid", persisted=True)
    )

    needs_followup: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    receipt_number: Mapped[str | None] = mapped_column(String(40), unique=True)

    created_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_consultation_dentist_date", "dentist_id", "date_of_consultation"),
    )
    # La base calcula remaining_balance; se relee tras INSERT/UPDATE
    __mapper_args__ = {"eager_defaults": True}

    @property
    def payment_status(self) -> str:
        if self.remaining_balance is not None and self.remaining_balance <= 0:
            return "Paid"
        if self.amount_paid and self.amount_paid > 0:
            return "Partial"
        return "Pending"

    def __repr__(self) -> str:
        return f"<Consultation {self.id} {self.type_of_prosthesis} [{self.receipt_number}]>"
