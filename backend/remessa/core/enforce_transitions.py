"""Remittance Transition Enforcement — pure guards for the remittance state machine.

Invariants:
    - Guards are PURE: they return an error descriptor (dict) or None, never mutate
    - Shell raises InvalidTransitionError from the descriptor and applies the transition
    - SENT and CANCELLED are terminal; nothing leaves them
    - send: READY only; retry: ERROR only; cancel: anything not terminal

Design Decisions:
    - Descriptor dicts mirror the enforce_* style: status/error_code/message
      so routes and tests can assert on error_code without parsing text
    - ACTIVE_STATUSES (READY, SENDING) define "one live remittance per source record";
      ERROR/CANCELLED/SENT rows may coexist historically with a fresh READY one
"""

from remessa.core.domain_types import RemittanceStatus


TERMINAL_STATUSES: frozenset[str] = frozenset({
    RemittanceStatus.SENT.value, RemittanceStatus.CANCELLED.value,
})
ACTIVE_STATUSES: frozenset[str] = frozenset({
    RemittanceStatus.READY.value, RemittanceStatus.SENDING.value,
})


def check_can_send(status: str) -> dict | None:
    """send is legal only from READY."""
    if status != RemittanceStatus.READY.value:
        return {
            "status": "error",
            "error_code": "NOT_READY",
            "message": (
                "Remittance is not ready for transmission, "
                f"current status {status}"
            ),
        }
    return None


def check_can_cancel(status: str) -> dict | None:
    """cancel is legal from any non-terminal status."""
    if status in TERMINAL_STATUSES:
        return {
            "status": "error",
            "error_code": "TERMINAL_STATUS",
            "message": f"Cannot cancel a remittance with status {status}",
        }
    return None


def check_can_retry(status: str) -> dict | None:
    """retry is legal only from ERROR."""
    if status != RemittanceStatus.ERROR.value:
        return {
            "status": "error",
            "error_code": "NOT_IN_ERROR",
            "message": (
                "Only remittances in ERROR can be retried, "
                f"current status {status}"
            ),
        }
    return None


def check_no_active_remittance(existing_statuses: list[str]) -> dict | None:
    """A source record may hold at most one READY/SENDING remittance."""
    active = [s for s in existing_statuses if s in ACTIVE_STATUSES]
    if active:
        return {
            "status": "error",
            "error_code": "ACTIVE_REMITTANCE_EXISTS",
            "message": (
                "Source record already has an active remittance "
                f"(status {active[0]})"
            ),
        }
    return None
