"""Source Record Schemas — ingestion and corrective edits of records awaiting submission.

Invariants:
    - competency is YYYY-MM with month 01-12
    - payload is a JSON object (arbitrarily nested)
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from remessa.core.domain_types import Module, SourceRecordStatus

COMPETENCY_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class SourceRecordCreate(BaseModel):
    unit_id: int = Field(gt=0)
    module: Module
    competency: str = Field(pattern=COMPETENCY_PATTERN)
    payload: dict


class SourceRecordUpdate(BaseModel):
    """Corrective edit — unit and module are fixed once ingested."""
    competency: str | None = Field(None, pattern=COMPETENCY_PATTERN)
    payload: dict | None = None


class SourceRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    unit_id: int
    module: str
    competency: str
    payload: dict
    status: SourceRecordStatus
    created_at: datetime
    updated_at: datetime
