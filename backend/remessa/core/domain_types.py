"""Domain Types — rich types that replace bare primitives across the codebase.

Invariants:
    - All valid states encoded as Enums — no raw string matching
    - ALL_UNITS / ALL_MODULES are singletons distinct from any concrete set

Design Decisions:
    - str Enums: serialize to JSON and compare equal to their DB column values
"""

from dataclasses import dataclass
from enum import Enum


# ─── Enums ───────────────────────────────────────────────────────

class Module(str, Enum):
    """Closed set of reporting modules referenced by rules, grants and remittances."""
    CONTRATO = "CONTRATO"
    COMPRA_DIRETA = "COMPRA_DIRETA"
    EMPENHO = "EMPENHO"
    LIQUIDACAO = "LIQUIDACAO"
    PAGAMENTO = "PAGAMENTO"
    EXECUCAO_ORCAMENTARIA = "EXECUCAO_ORCAMENTARIA"
    CONVENIO = "CONVENIO"
    LICITACAO = "LICITACAO"
    PPA = "PPA"
    LDO = "LDO"
    LOA = "LOA"
    ALTERACAO_ORCAMENTARIA = "ALTERACAO_ORCAMENTARIA"


class SourceRecordStatus(str, Enum):
    RECEIVED = "RECEIVED"
    PROCESSING = "PROCESSING"
    PROCESSED = "PROCESSED"
    ERROR = "ERROR"


class RemittanceStatus(str, Enum):
    """Remittance lifecycle — SENT and CANCELLED are terminal."""
    VALIDATING = "VALIDATING"
    READY = "READY"
    SENDING = "SENDING"
    SENT = "SENT"
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


class ValidationLevel(str, Enum):
    """IMPEDITIVA blocks remittance creation; ALERTA is advisory."""
    IMPEDITIVA = "IMPEDITIVA"
    ALERTA = "ALERTA"


class ValidationOperator(str, Enum):
    """Rule operators. Each encodes the VIOLATION condition, not validity."""
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN_OR_EQUALS = "GREATER_THAN_OR_EQUALS"
    LESS_THAN_OR_EQUALS = "LESS_THAN_OR_EQUALS"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"
    IN = "IN"
    NOT_IN = "NOT_IN"
    REGEX = "REGEX"
    REQUIRED = "REQUIRED"


class PermissionAction(str, Enum):
    """Capabilities carried by each grant."""
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"
    TRANSMIT = "transmit"


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    OPERATOR = "OPERATOR"
    VIEWER = "VIEWER"


class UnitEnvironment(str, Enum):
    """Which TCE environment a unit submits to."""
    PRODUCAO = "PRODUCAO"
    HOMOLOGACAO = "HOMOLOGACAO"


class LogDirection(str, Enum):
    REQUEST = "REQUEST"
    RESPONSE = "RESPONSE"


# ─── Value Types ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Principal:
    """Authenticated identity supplied by the identity provider."""
    id: int
    role: str
    active: bool

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


class _AllScope:
    """Sentinel meaning 'every unit' or 'every module'."""

    def __init__(self, name: str):
        self._name = name

    def __repr__(self) -> str:
        return self._name

    def __contains__(self, item: object) -> bool:
        return True


ALL_UNITS = _AllScope("ALL_UNITS")
ALL_MODULES = _AllScope("ALL_MODULES")
