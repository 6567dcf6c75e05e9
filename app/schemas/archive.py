"""
Schemas para Archive.
"""

from datetime import datetime

from pydantic import BaseModel

from app.models.archive import ArchiveType


class ArchiveResponse(BaseModel):
    id: int
    dentist_id: int
    original_table: str
    original_id: int
    archive_type: ArchiveType
    patient_name: str | None = None
    treatment: str | None = None
    archived_by: int | None = None
    archived_at: datetime | None = None
    data: dict | None = None
