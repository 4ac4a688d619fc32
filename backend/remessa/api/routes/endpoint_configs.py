"""Endpoint Configs — per-module TCE endpoint overrides used by the transmission adapter.

Invariants:
    - At most one config per module (409 on create and on module change)
    - Reads: any active principal; create/update: ADMIN or MANAGER; delete: ADMIN
    - Without an active config, the adapter falls back to the derived default endpoint
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.api.dependencies import get_current_principal, require_admin, require_manager
from remessa.core.domain_types import Principal
from remessa.core.errors import ConflictError, ResourceNotFoundError
from remessa.infrastructure.database import get_db
from remessa.models.endpoint_config import EndpointConfig
from remessa.schemas.administration import (
    EndpointConfigCreate, EndpointConfigResponse, EndpointConfigUpdate,
)
from remessa.services.audit_sink import AuditSink

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/endpoint-configs", tags=["endpoint-configs"])


async def get_config_or_404(config_id: int, db: AsyncSession) -> EndpointConfig:
    result = await db.execute(select(EndpointConfig).where(EndpointConfig.id == config_id))
    config = result.scalar_one_or_none()
    if config is None:
        raise ResourceNotFoundError("EndpointConfig", config_id)
    return config


async def _ensure_module_free(db: AsyncSession, module: str) -> None:
    existing = await db.execute(
        select(EndpointConfig.id).where(EndpointConfig.module == module),
    )
    if existing.first() is not None:
        raise ConflictError(f"An endpoint config for module {module} already exists")


@router.get("", response_model=list[EndpointConfigResponse])
async def list_configs(
    _: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(EndpointConfig).order_by(EndpointConfig.module))
    return list(result.scalars().all())


@router.get("/{config_id}", response_model=EndpointConfigResponse)
async def get_config(
    config_id: int,
    _: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await get_config_or_404(config_id, db)


@router.post(
    "", response_model=EndpointConfigResponse, status_code=status.HTTP_201_CREATED,
)
async def create_config(
    body: EndpointConfigCreate,
    principal: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    await _ensure_module_free(db, body.module.value)
    config = EndpointConfig(**body.model_dump(mode="json"))
    db.add(config)
    await db.flush()
    AuditSink(db).record(
        "ENDPOINT_CONFIG_CREATED", "EndpointConfig", config.id, principal.id,
        new_value=body.model_dump(mode="json"),
    )
    await db.commit()
    return config


@router.patch("/{config_id}", response_model=EndpointConfigResponse)
async def update_config(
    config_id: int,
    body: EndpointConfigUpdate,
    principal: Principal = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    config = await get_config_or_404(config_id, db)
    changes = body.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    if "module" in changes and changes["module"] != config.module:
        await _ensure_module_free(db, changes["module"])
    old = {key: getattr(config, key) for key in changes}
    for key, value in changes.items():
        setattr(config, key, value)
    await db.flush()
    AuditSink(db).record(
        "ENDPOINT_CONFIG_UPDATED", "EndpointConfig", config.id, principal.id,
        old_value=old, new_value=changes,
    )
    await db.commit()
    return config


@router.delete("/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_config(
    config_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    config = await get_config_or_404(config_id, db)
    await db.delete(config)
    AuditSink(db).record(
        "ENDPOINT_CONFIG_DELETED", "EndpointConfig", config_id, principal.id,
        old_value={"module": config.module, "endpoint": config.endpoint},
    )
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
