"""Transmission Adapter — TCE client: endpoint/token resolution, audit trail, result mapping.

Invariants:
    - A REQUEST log is added and flushed BEFORE the transport is called
    - A RESPONSE log is added after the call, success or failure
    - Bearer tokens are logged truncated to TOKEN_LOG_PREFIX characters + "..."
    - Transport exceptions (httpx.HTTPError, timeouts included) never escape send();
      they become TransmissionResult(success=False, transport_error=True)
    - The adapter never changes remittance status — that is the state machine's job

Design Decisions:
    - Transport injected at construction (MockTransport | HttpTransport): the state
      machine's contract is identical for every transport
    - Logs flushed with the caller's unit of work: they are audit data, not part of
      the consistency boundary
"""

import logging
import time

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from remessa.core.domain_types import LogDirection, UnitEnvironment
from remessa.core.repository_protocols import (
    TransmissionResult, Transport, TransportResponse,
)
from remessa.models.endpoint_config import EndpointConfig
from remessa.models.remittance import Remittance
from remessa.models.remittance_log import RemittanceLog
from remessa.models.unit import Unit

logger = logging.getLogger(__name__)

TOKEN_LOG_PREFIX = 10
PLACEHOLDER_TOKEN = "mock-token"
TRANSPORT_ERROR_STATUS = 500


def default_endpoint(module: str) -> str:
    """CONTRATO -> /contrato, COMPRA_DIRETA -> /compra-direta."""
    return "/" + module.lower().replace("_", "-")


def select_token(unit: Unit) -> str:
    """Production token only for PRODUCAO units that have one; homologation otherwise."""
    if unit.environment == UnitEnvironment.PRODUCAO.value and unit.production_token:
        return unit.production_token
    return unit.homologation_token or PLACEHOLDER_TOKEN


def redact_token(token: str) -> str:
    return f"{token[:TOKEN_LOG_PREFIX]}..."


def join_url(base_url: str, endpoint: str) -> str:
    if not endpoint.startswith("/"):
        endpoint = "/" + endpoint
    return base_url.rstrip("/") + endpoint


class TransmissionAdapter:
    """Sends one remittance payload to the TCE and records the exchange."""

    def __init__(
        self,
        db: AsyncSession,
        transport: Transport,
        base_url: str,
        timeout_seconds: float = 30.0,
    ):
        self.db = db
        self.transport = transport
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds

    async def resolve_endpoint(self, module: str) -> tuple[str, str]:
        """(path, method) from the active EndpointConfig, else the derived default."""
        result = await self.db.execute(
            select(EndpointConfig).where(
                EndpointConfig.module == module,
                EndpointConfig.active.is_(True),
            ),
        )
        config = result.scalar_one_or_none()
        if config is not None:
            return config.endpoint, (config.method or "POST").upper()
        return default_endpoint(module), "POST"

    async def send(self, remittance: Remittance, unit: Unit) -> TransmissionResult:
        """Deliver remittance.payload. Never raises for transport failures."""
        endpoint, method = await self.resolve_endpoint(remittance.module)
        url = join_url(self.base_url, endpoint)
        token = select_token(unit)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        payload = remittance.payload or {}

        await self._log_request(remittance.id, url, method, token, payload)

        started = time.perf_counter()
        try:
            response = await self.transport.request(
                method, url, payload, headers, self.timeout_seconds,
            )
        except httpx.HTTPError as e:
            duration_ms = _elapsed_ms(started)
            message = str(e) or e.__class__.__name__
            logger.error(
                f"TCE transport failure: {message}",
                extra={
                    "remittance_id": remittance.id,
                    "duration_ms": duration_ms,
                    "error_code": "TRANSPORT_FAILURE",
                },
            )
            await self._log_response(
                remittance.id,
                TRANSPORT_ERROR_STATUS,
                {"success": False, "message": message},
                duration_ms,
            )
            return TransmissionResult(
                success=False,
                message=message,
                status_code=TRANSPORT_ERROR_STATUS,
                duration_ms=duration_ms,
                transport_error=True,
            )

        duration_ms = _elapsed_ms(started)
        await self._log_response(
            remittance.id, response.status_code, response.body, duration_ms,
        )
        result = interpret_response(response, duration_ms)
        logger.info(
            f"TCE answered {'success' if result.success else 'failure'}: {result.message}",
            extra={
                "remittance_id": remittance.id,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        return result

    async def _log_request(
        self, remittance_id: int, url: str, method: str, token: str, payload: dict,
    ) -> None:
        self.db.add(RemittanceLog(
            remittance_id=remittance_id,
            direction=LogDirection.REQUEST.value,
            url=url,
            method=method,
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {redact_token(token)}",
            },
            body=payload,
        ))
        await self.db.flush()

    async def _log_response(
        self, remittance_id: int, status_code: int, body: dict, duration_ms: int,
    ) -> None:
        self.db.add(RemittanceLog(
            remittance_id=remittance_id,
            direction=LogDirection.RESPONSE.value,
            status_code=status_code,
            body=body,
            duration_ms=duration_ms,
        ))
        await self.db.flush()


def interpret_response(
    response: TransportResponse, duration_ms: int = 0,
) -> TransmissionResult:
    """Map a TCE answer to a TransmissionResult. 2xx without success=false is success."""
    body = response.body or {}
    ok = 200 <= response.status_code < 300 and body.get("success") is not False
    if ok:
        return TransmissionResult(
            success=True,
            protocol=body.get("protocolo") or body.get("protocol"),
            message=body.get("message") or "Sucesso",
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
    errors = body.get("errors") or []
    if not isinstance(errors, list):
        errors = [errors]
    return TransmissionResult(
        success=False,
        message=body.get("message") or f"TCE returned HTTP {response.status_code}",
        errors=errors,
        status_code=response.status_code,
        duration_ms=duration_ms,
    )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
