"""TCE Transports — interchangeable strategies that deliver a payload to the authority.

Invariants:
    - Both transports satisfy core.repository_protocols.Transport
    - Unreachable authority -> httpx.HTTPError raised (the adapter converts it)
    - A reachable authority always yields a TransportResponse, even for 4xx/5xx
    - MockTransport is deterministic: same endpoint + payload -> same protocol

Design Decisions:
    - Strategy chosen once from Settings.tce_api_mock (build_transport), injected into
      the adapter: no global mock flag read at call time
    - MockTransport raises real httpx exceptions so the adapter exercises the same
      failure path as production
    - HttpTransport may receive a shared httpx.AsyncClient (tests pass one built on
      httpx.MockTransport); otherwise it opens a client per call
"""

import hashlib
import json
import logging

import httpx

from remessa.config import Settings
from remessa.core.repository_protocols import Transport, TransportResponse

logger = logging.getLogger(__name__)

MOCK_OUTCOMES = ("success", "rejected", "transport_error")


def _canonical_json(payload: dict) -> str:
    return json.dumps(payload, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


class MockTransport:
    """Synthetic TCE for environments without live connectivity."""

    def __init__(self, outcome: str = "success"):
        if outcome not in MOCK_OUTCOMES:
            raise ValueError(f"Unknown mock outcome '{outcome}'")
        self.outcome = outcome

    async def request(
        self, method: str, url: str, payload: dict,
        headers: dict[str, str], timeout: float,
    ) -> TransportResponse:
        if self.outcome == "transport_error":
            raise httpx.ConnectError(
                "Simulated connection failure to TCE",
                request=httpx.Request(method, url),
            )
        if self.outcome == "rejected":
            return TransportResponse(status_code=400, body={
                "success": False,
                "message": "Remessa rejeitada pelo TCE (simulado)",
                "errors": ["Layout inválido para o módulo"],
            })
        digest = hashlib.sha256(
            f"{url}|{_canonical_json(payload)}".encode("utf-8"),
        ).hexdigest()
        return TransportResponse(status_code=200, body={
            "success": True,
            "protocolo": f"TCE-{digest[:16].upper()}",
            "message": "Remessa recebida com sucesso (simulado)",
        })


class HttpTransport:
    """Real TCE endpoint over HTTPS with bearer-token auth."""

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client

    async def request(
        self, method: str, url: str, payload: dict,
        headers: dict[str, str], timeout: float,
    ) -> TransportResponse:
        if self._client is not None:
            response = await self._client.request(
                method, url, json=payload, headers=headers, timeout=timeout,
            )
        else:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.request(
                    method, url, json=payload, headers=headers,
                )
        return TransportResponse(
            status_code=response.status_code, body=_decode_body(response),
        )


def _decode_body(response: httpx.Response) -> dict:
    """TCE answers JSON; anything else is wrapped so logs stay JSON."""
    try:
        body = response.json()
    except ValueError:
        return {"raw": response.text}
    if isinstance(body, dict):
        return body
    return {"data": body}


def build_transport(settings: Settings) -> Transport:
    """Pick the transport strategy from configuration."""
    if settings.tce_api_mock:
        logger.info(f"TCE transport: mock ({settings.tce_mock_outcome})")
        return MockTransport(settings.tce_mock_outcome)
    logger.info(f"TCE transport: http ({settings.tce_api_base_url})")
    return HttpTransport()
