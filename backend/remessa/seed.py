"""Seed Data — idempotent bootstrap of a fresh database.

Invariants:
    - Running twice creates nothing new (lookup by natural key first)
    - Seeds: admin + operator users, unit UG001, CONTRATO endpoint, rules CD001/CT001

Usage:
    python -m remessa.seed
"""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.config import get_settings
from remessa.core.domain_types import (
    Module, UnitEnvironment, UserRole, ValidationLevel, ValidationOperator,
)
from remessa.db.session import standalone_session
from remessa.infrastructure.observability import setup_logging
from remessa.models.endpoint_config import EndpointConfig
from remessa.models.unit import Unit
from remessa.models.user import User
from remessa.models.validation_rule import ValidationRule

logger = logging.getLogger(__name__)

USERS = [
    {"email": "admin@econect.ms.gov.br", "name": "Administrador do Sistema",
     "role": UserRole.ADMIN.value},
    {"email": "operador@econect.ms.gov.br", "name": "Operador de Teste",
     "role": UserRole.OPERATOR.value},
]

UNITS = [
    {"code": "UG001", "name": "Secretaria de Estado de Fazenda",
     "environment": UnitEnvironment.HOMOLOGACAO.value,
     "homologation_token": "token-homolog-exemplo"},
]

ENDPOINTS = [
    {"module": Module.CONTRATO.value, "endpoint": "/contratos", "method": "POST",
     "description": "Envio de contratos"},
]

RULES = [
    {"module": Module.COMPRA_DIRETA.value, "field": "valor",
     "operator": ValidationOperator.GREATER_THAN.value, "value": "330000",
     "level": ValidationLevel.IMPEDITIVA.value, "code": "CD001",
     "message": "Valor de Compra Direta para Obra de Engenharia não pode exceder R$ 330.000,00"},
    {"module": Module.CONTRATO.value, "field": "vigencia",
     "operator": ValidationOperator.GREATER_THAN.value, "value": "365",
     "level": ValidationLevel.ALERTA.value, "code": "CT001",
     "message": "Contrato com vigência superior a 1 ano requer justificativa"},
]


async def _get_or_create(db: AsyncSession, model, key: str, values: dict) -> bool:
    existing = await db.execute(select(model).where(getattr(model, key) == values[key]))
    if existing.scalar_one_or_none() is not None:
        return False
    db.add(model(**values))
    return True


async def seed(db: AsyncSession) -> dict[str, int]:
    """Insert missing seed rows. Returns how many rows of each kind were created."""
    created = {"users": 0, "units": 0, "endpoint_configs": 0, "validation_rules": 0}
    for values in USERS:
        created["users"] += await _get_or_create(db, User, "email", values)
    for values in UNITS:
        created["units"] += await _get_or_create(db, Unit, "code", values)
    for values in ENDPOINTS:
        created["endpoint_configs"] += await _get_or_create(db, EndpointConfig, "module", values)
    for values in RULES:
        created["validation_rules"] += await _get_or_create(db, ValidationRule, "code", values)
    await db.commit()
    logger.info(f"Seed finished: {created}")
    return created


async def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    async with standalone_session(settings.database_url) as db:
        await seed(db)


if __name__ == "__main__":
    asyncio.run(main())
