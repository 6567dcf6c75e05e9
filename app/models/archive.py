"""
Modelo Archive: Instantáneas JSON de registros archivados o eliminados.

- consultations: la instantánea conserva consulta, pagos y citas y las filas
  originales se eliminan (archive_type = deleted).
- patients: la instantánea conserva el historial completo y el paciente
  queda marcado is_archived (archive_type = archived).
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ArchiveType(str, enum.Enum):
    DELETED = "deleted"
    ARCHIVED = "archived"


class Archive(Base):
    __tablename__ = "archives"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    dentist_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    original_table: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="patients | consultations"
    )
    original_id: Mapped[int] = mapped_column(Integer, nullable=False)
    data_json: Mapped[str] = mapped_column(Text, nullable=False)
    archive_type: Mapped[ArchiveType] = mapped_column(
        Enum(ArchiveType, name="archive_type", values_callable=lambda e: [x.value for x in e]),
        nullable=False,
    )

    # ── Campos denormalizados para búsqueda ──────────
    patient_name: Mapped[str | None] = mapped_column(String(200))
    treatment: Mapped[str | None] = mapped_column(String(200))

    archived_by: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id"))
    archived_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_archive_original", "original_table", "original_id"),
    )

    def __repr__(self) -> str:
        return f"<Archive {self.original_table}#{self.original_id} ({self.archive_type.value})>"
