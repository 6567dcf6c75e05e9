"""
Schemas para Patient.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class PatientCreate(BaseModel):
    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    phone: str = Field(..., min_length=5, max_length=30)

    @field_validator("first_name", "last_name", "phone")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class PatientUpdate(BaseModel):
    first_name: str | None = Field(None, min_length=2, max_length=50)
    last_name: str | None = Field(None, min_length=2, max_length=50)
    phone: str | None = Field(None, min_length=5, max_length=30)


class PatientResponse(BaseModel):
    id: int
    dentist_id: int
    first_name: str
    last_name: str
    full_name: str
    phone: str
    is_archived: bool
    archived_at: datetime | None = None
    archived_by: int | None = None
    created_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}
