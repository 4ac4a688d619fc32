"""Administration Schemas — units, users, endpoint configs and the audit trail.

Invariants:
    - Tokens are write-only: responses expose only whether a token is configured
    - EndpointConfig.endpoint always starts with "/"
    - EndpointConfig.method is an HTTP verb the TCE accepts (POST or PUT)

Design Decisions:
    - One module for the plumbing entities: none carries pipeline semantics
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from remessa.core.domain_types import Module, UnitEnvironment, UserRole


# --- Units --------------------------------------------------------------------

class UnitCreate(BaseModel):
    code: str = Field(min_length=1, max_length=20)
    name: str = Field(min_length=1, max_length=200)
    environment: UnitEnvironment = UnitEnvironment.HOMOLOGACAO
    production_token: str | None = Field(None, max_length=500)
    homologation_token: str | None = Field(None, max_length=500)
    active: bool = True


class UnitUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    environment: UnitEnvironment | None = None
    production_token: str | None = Field(None, max_length=500)
    homologation_token: str | None = Field(None, max_length=500)
    active: bool | None = None


class UnitResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    environment: str
    active: bool
    created_at: datetime
    production_token: str | None = Field(None, exclude=True)
    homologation_token: str | None = Field(None, exclude=True)

    @computed_field
    @property
    def has_production_token(self) -> bool:
        return bool(self.production_token)

    @computed_field
    @property
    def has_homologation_token(self) -> bool:
        return bool(self.homologation_token)


# --- Users --------------------------------------------------------------------

class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=200)
    role: UserRole = UserRole.OPERATOR
    active: bool = True


class UserUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    role: UserRole | None = None
    active: bool | None = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: str
    active: bool
    created_at: datetime


# --- Endpoint configs ---------------------------------------------------------

class EndpointConfigCreate(BaseModel):
    module: Module
    endpoint: str = Field(min_length=1, max_length=200)
    method: Literal["POST", "PUT"] = "POST"
    description: str | None = Field(None, max_length=500)
    active: bool = True

    @field_validator("endpoint")
    @classmethod
    def leading_slash(cls, v: str) -> str:
        v = v.strip()
        return v if v.startswith("/") else "/" + v


class EndpointConfigUpdate(BaseModel):
    module: Module | None = None
    endpoint: str | None = Field(None, min_length=1, max_length=200)
    method: Literal["POST", "PUT"] | None = None
    description: str | None = Field(None, max_length=500)
    active: bool | None = None

    @field_validator("endpoint")
    @classmethod
    def leading_slash(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        return v if v.startswith("/") else "/" + v


class EndpointConfigResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    module: str
    endpoint: str
    method: str
    description: str | None
    active: bool
    created_at: datetime


# --- Audit --------------------------------------------------------------------

class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    entity: str
    entity_id: int | None
    user_id: int | None
    old_value: dict | None
    new_value: dict | None
    created_at: datetime
