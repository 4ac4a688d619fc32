"""Remittance Schemas — request/response models for the remittance lifecycle API.

Invariants:
    - RemittanceCreate.source_record_id is a positive int
    - Responses are built from ORM rows (from_attributes); payloads pass through unchanged
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from remessa.core.domain_types import RemittanceStatus


class RemittanceCreate(BaseModel):
    """Remittance creation — the only input is the source record to submit."""
    source_record_id: int = Field(gt=0)


class RemittanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_record_id: int | None
    unit_id: int
    module: str
    competency: str
    status: RemittanceStatus
    payload: dict
    protocol: str | None = None
    error_message: str | None = None
    sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class RemittanceLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    remittance_id: int
    direction: str
    url: str | None = None
    method: str | None = None
    headers: dict | None = None
    body: dict | list | None = None
    status_code: int | None = None
    duration_ms: int | None = None
    created_at: datetime


class RemittancePage(BaseModel):
    data: list[RemittanceResponse]
    total: int
    page: int
    limit: int


class RemittanceStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_module: dict[str, int]


class TransmissionResponse(BaseModel):
    """Outcome of POST /remittances/{id}/send."""
    remittance: RemittanceResponse
    response: dict
    duration_ms: int


class RemittanceCreatedResponse(BaseModel):
    """201 body: the READY remittance plus the non-blocking (ALERTA) findings."""
    remittance: RemittanceResponse
    validation: dict
