"""Transform Mapper — builds the TCE (e-Sfinge) target payload from a validated source record.

Invariants:
    - transform() is deterministic: same record + unit code -> same payload
    - Raises TransformError (never returns a partial payload)
    - The source payload is copied, never mutated

Design Decisions:
    - Satisfies core.repository_protocols.TransformMapper; RemittanceService accepts
      any other implementation through its constructor
    - Envelope keys follow the authority's Portuguese naming (cabecalho/dados)
"""

import copy
import re

from remessa.core.errors import ErrorContext, TransformError
from remessa.core.repository_protocols import SourceRecordLike

_COMPETENCY = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")

SCHEMA_VERSION = "1.0"


class EsfingePayloadMapper:
    """Default mapper: header with unit/module/period + the record document."""

    def transform(self, record: SourceRecordLike, unit_code: str) -> dict:
        context = ErrorContext(source_record_id=record.id)
        match = _COMPETENCY.match(record.competency or "")
        if not match:
            raise TransformError(
                f"competency '{record.competency}' is not in YYYY-MM format", context,
            )
        if not isinstance(record.payload, dict):
            raise TransformError("payload must be a JSON object", context)
        if not unit_code:
            raise TransformError("unit code is required", context)

        year, month = match.groups()
        return {
            "cabecalho": {
                "versao": SCHEMA_VERSION,
                "codigoUnidadeGestora": unit_code,
                "modulo": record.module,
                "competencia": record.competency,
                "ano": int(year),
                "mes": int(month),
                "idOrigem": record.id,
            },
            "dados": copy.deepcopy(record.payload),
        }
