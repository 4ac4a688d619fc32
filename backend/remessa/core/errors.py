"""Error Hierarchy — typed exceptions for every Remessa failure mode, each with its HTTP mapping.

Invariants:
    - Every error exposes code, category, severity and http_status
    - 4xx errors describe caller mistakes or business refusals; 5xx errors describe
      infrastructure (TCE transport, database)
    - to_response() produces the REST envelope rendered by api/error_handlers.py
    - Domain errors are raised by the component that detects them and are never swallowed

Design Decisions:
    - Classification lives on class attributes: subclasses only build their message
    - Single RemessaError base so one FastAPI handler covers the whole hierarchy
    - ErrorContext carries the ids an operator needs to trace a failure (remittance,
      source record, acting user) without depending on the logging setup
    - NotFound is checked before Forbidden everywhere: existence is not treated as secret
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    AUTHORIZATION = "authorization"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Identifiers attached to an error for tracing."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    remittance_id: int | None = None
    source_record_id: int | None = None
    user_id: int | None = None
    debug_info: dict[str, Any] | None = None


class RemessaError(Exception):
    """Base for all Remessa errors."""

    code: ClassVar[str] = "INTERNAL_ERROR"
    category: ClassVar[ErrorCategory] = ErrorCategory.INTERNAL
    severity: ClassVar[ErrorSeverity] = ErrorSeverity.ERROR
    http_status: ClassVar[int] = 500

    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def to_response(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "remittance_id": self.context.remittance_id,
                    "source_record_id": self.context.source_record_id,
                    "user_id": self.context.user_id,
                },
            }
        }


# ─── 4xx: caller mistakes and business refusals ─────────────────

class ResourceNotFoundError(RemessaError):
    code = "RESOURCE_NOT_FOUND"
    category = ErrorCategory.RESOURCE_NOT_FOUND
    http_status = 404

    def __init__(self, resource_type: str, resource_id: object, context: ErrorContext | None = None):
        super().__init__(f"{resource_type} '{resource_id}' not found", context)
        self.resource_type = resource_type
        self.resource_id = resource_id


class AuthenticationError(RemessaError):
    """No usable principal on the request."""
    code = "UNAUTHENTICATED"
    category = ErrorCategory.AUTHORIZATION
    http_status = 401


class ForbiddenError(RemessaError):
    """Permission cascade (or a role guard) denied the action."""
    code = "FORBIDDEN"
    category = ErrorCategory.AUTHORIZATION
    http_status = 403

    def __init__(self, action: str, resource: str, context: ErrorContext | None = None):
        super().__init__(f"You are not allowed to {action} {resource} for this unit/module", context)
        self.action = action


class ConflictError(RemessaError):
    """Duplicate unique key, or a competing active remittance."""
    code = "CONFLICT"
    category = ErrorCategory.CONFLICT
    http_status = 409


class InvalidTransitionError(RemessaError):
    code = "INVALID_TRANSITION"
    category = ErrorCategory.BUSINESS_RULE
    http_status = 400

    def __init__(self, message: str, current_status: str, context: ErrorContext | None = None):
        super().__init__(message, context)
        self.current_status = current_status


class ValidationBlockedError(RemessaError):
    """IMPEDITIVA violations prevent the remittance from being created."""
    code = "VALIDATION_BLOCKED"
    category = ErrorCategory.VALIDATION
    http_status = 422

    def __init__(self, violations: list[dict], context: ErrorContext | None = None):
        super().__init__(
            f"Source record failed validation with {len(violations)} blocking violation(s)", context,
        )
        self.violations = violations

    def to_response(self) -> dict:
        response = super().to_response()
        response["error"]["violations"] = self.violations
        return response


class TransformError(RemessaError):
    code = "TRANSFORM_FAILED"
    category = ErrorCategory.VALIDATION
    http_status = 422

    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(f"Transformation failed: {message}", context)


# ─── 5xx: infrastructure ────────────────────────────────────────

class TransportFailureError(RemessaError):
    """TCE could not be reached, timed out, or rejected the remittance."""
    code = "TRANSPORT_FAILURE"
    category = ErrorCategory.EXTERNAL_API
    severity = ErrorSeverity.CRITICAL
    http_status = 502

    def __init__(self, message: str, errors: list | None = None, context: ErrorContext | None = None):
        super().__init__(f"Transmission to TCE failed: {message}", context)
        self.errors = errors or []

    def to_response(self) -> dict:
        response = super().to_response()
        response["error"]["details"] = self.errors
        return response


class DatabaseError(RemessaError):
    code = "DATABASE_ERROR"
    category = ErrorCategory.DATABASE
    severity = ErrorSeverity.CRITICAL
    http_status = 503

    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(f"Database {operation} failed: {message}", context)
        self.operation = operation
