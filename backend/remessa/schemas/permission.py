"""Permission Schemas — grant CRUD and permission query responses.

Invariants:
    - unit_id None = all units; module None = all modules
    - Capability flags default to False (deny unless granted)
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from remessa.core.domain_types import Module, PermissionAction


class GrantFlags(BaseModel):
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_transmit: bool = False


class GrantCreate(GrantFlags):
    user_id: int = Field(gt=0)
    unit_id: int | None = Field(None, gt=0)
    module: Module | None = None


class GrantUpdate(BaseModel):
    """Scope is immutable; only the capability flags change."""
    can_view: bool | None = None
    can_create: bool | None = None
    can_edit: bool | None = None
    can_delete: bool | None = None
    can_transmit: bool | None = None


class GrantBulkCreate(BaseModel):
    grants: list[GrantCreate] = Field(min_length=1, max_length=500)


class GrantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    unit_id: int | None
    module: str | None
    can_view: bool
    can_create: bool
    can_edit: bool
    can_delete: bool
    can_transmit: bool
    created_at: datetime


class BulkCreateResponse(BaseModel):
    created: list[GrantResponse]
    skipped: int


class PermissionCheckResponse(BaseModel):
    user_id: int
    unit_id: int | None
    module: str | None
    action: PermissionAction
    allowed: bool


class PermittedScopeResponse(BaseModel):
    """all=True means unrestricted; items is then empty."""
    user_id: int
    action: PermissionAction
    all: bool
    items: list
