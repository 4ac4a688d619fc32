"""Boundary Protocols — contracts between core and shell.

Invariants:
    - Core NEVER imports from shell — dependency arrows point inward only
    - External collaborators (transform mapper, TCE transport) accessed through Protocol types
    - Implementations provided by shell via constructor injection

Design Decisions:
    - Protocol over ABC: structural subtyping, no inheritance hierarchy
    - TransmissionResult is the ONLY thing the state machine sees from a transmission,
      so mock/real/future transports never change its contract
"""

from dataclasses import dataclass, field
from typing import Any, Protocol


class SourceRecordLike(Protocol):
    """Structural contract for source records handed to the transform mapper."""
    id: int
    unit_id: int
    module: str
    competency: str
    payload: dict


class TransformMapper(Protocol):
    """Converts a validated source record into the TCE target-schema payload.

    Raises TransformError when the record cannot be mapped.
    """
    def transform(self, record: SourceRecordLike, unit_code: str) -> dict: ...


@dataclass
class TransportResponse:
    """Raw answer from a transport: HTTP status plus decoded JSON body."""
    status_code: int
    body: dict[str, Any]


class Transport(Protocol):
    """Sends one JSON document to the authority.

    Raises httpx.HTTPError (or a subclass) when the authority is unreachable.
    """
    async def request(
        self, method: str, url: str, payload: dict,
        headers: dict[str, str], timeout: float,
    ) -> TransportResponse: ...


@dataclass
class TransmissionResult:
    """Outcome of a transmission attempt as seen by the state machine."""
    success: bool
    message: str
    protocol: str | None = None
    errors: list[Any] = field(default_factory=list)
    status_code: int | None = None
    duration_ms: int = 0
    transport_error: bool = False

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "protocol": self.protocol,
            "message": self.message,
            "errors": self.errors,
            "status_code": self.status_code,
            "duration_ms": self.duration_ms,
        }
