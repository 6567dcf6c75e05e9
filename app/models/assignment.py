"""
Modelo UserAssignment: Delegación de un asistente a un dentista.
Un asistente trabaja para un único dentista; un dentista puede tener varios.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class UserAssignment(Base):
    __tablename__ = "user_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dentist_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    assistant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("dentist_id", "assistant_id", name="uq_assignment_pair"),
    )

    def __repr__(self) -> str:
        return f"<UserAssignment dentist={self.dentist_id} assistant={self.assistant_id}>"
