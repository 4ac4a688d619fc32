"""ORM Models — SQLAlchemy declarative models for all domain entities.

Invariants:
    - All models inherit from Base (db/base.py)
    - Integer autoincrement primary keys everywhere

Design Decisions:
    - One file per entity for locality
    - All models imported here so SQLAlchemy resolves string-based relationship()
      references before any query runs
"""

from remessa.models.unit import Unit  # noqa: F401
from remessa.models.user import User  # noqa: F401
from remessa.models.user_permission import UserPermission  # noqa: F401
from remessa.models.source_record import SourceRecord  # noqa: F401
from remessa.models.validation_rule import ValidationRule  # noqa: F401
from remessa.models.validation_result import ValidationResult  # noqa: F401
from remessa.models.remittance import Remittance  # noqa: F401
from remessa.models.remittance_log import RemittanceLog  # noqa: F401
from remessa.models.endpoint_config import EndpointConfig  # noqa: F401
from remessa.models.audit_log import AuditLog  # noqa: F401
