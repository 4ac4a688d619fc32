"""Initial schema — units, users, grants, source records, rules, remittances, audit.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(updated: bool = True) -> list[sa.Column]:
    columns = [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]
    if updated:
        columns.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
    return columns


def upgrade() -> None:
    op.create_table(
        "units",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(20), nullable=False, unique=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("environment", sa.String(20), nullable=False, server_default="HOMOLOGACAO"),
        sa.Column("production_token", sa.String(500), nullable=True),
        sa.Column("homologation_token", sa.String(500), nullable=True),
        sa.Column("active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(200), nullable=False, unique=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="OPERATOR"),
        sa.Column("active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(updated=False),
    )

    op.create_table(
        "user_permissions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("unit_id", sa.Integer, sa.ForeignKey("units.id", ondelete="CASCADE"), nullable=True),
        sa.Column("module", sa.String(40), nullable=True),
        sa.Column("can_view", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("can_create", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("can_edit", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("can_delete", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("can_transmit", sa.Boolean, nullable=False, server_default="false"),
        *_timestamps(updated=False),
    )
    op.create_index("ix_user_permissions_user_id", "user_permissions", ["user_id"])

    op.create_table(
        "source_records",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("unit_id", sa.Integer, sa.ForeignKey("units.id"), nullable=False),
        sa.Column("module", sa.String(40), nullable=False),
        sa.Column("competency", sa.String(7), nullable=False),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="RECEIVED"),
        *_timestamps(),
    )
    op.create_index("ix_source_records_unit_id", "source_records", ["unit_id"])
    op.create_index("ix_source_records_module", "source_records", ["module"])

    op.create_table(
        "validation_rules",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("module", sa.String(40), nullable=False),
        sa.Column("field", sa.String(200), nullable=False),
        sa.Column("operator", sa.String(30), nullable=False),
        sa.Column("value", sa.Text, nullable=False, server_default=""),
        sa.Column("level", sa.String(20), nullable=False),
        sa.Column("code", sa.String(40), nullable=False, unique=True),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("ix_validation_rules_module", "validation_rules", ["module"])

    op.create_table(
        "validation_results",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "source_record_id", sa.Integer,
            sa.ForeignKey("source_records.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("rule_id", sa.Integer, nullable=True),
        sa.Column("code", sa.String(40), nullable=False),
        sa.Column("level", sa.String(20), nullable=False),
        sa.Column("field", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("value", sa.Text, nullable=False, server_default=""),
        *_timestamps(updated=False),
    )
    op.create_index("ix_validation_results_source_record_id", "validation_results", ["source_record_id"])

    op.create_table(
        "remittances",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "source_record_id", sa.Integer,
            sa.ForeignKey("source_records.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("unit_id", sa.Integer, sa.ForeignKey("units.id"), nullable=False),
        sa.Column("module", sa.String(40), nullable=False),
        sa.Column("competency", sa.String(7), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="READY"),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("protocol", sa.String(100), nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_remittances_source_record_id", "remittances", ["source_record_id"])
    op.create_index("ix_remittances_unit_id", "remittances", ["unit_id"])
    op.create_index("ix_remittances_module", "remittances", ["module"])
    op.create_index("ix_remittances_status", "remittances", ["status"])

    op.create_table(
        "remittance_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "remittance_id", sa.Integer,
            sa.ForeignKey("remittances.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("direction", sa.String(10), nullable=False),
        sa.Column("url", sa.Text, nullable=True),
        sa.Column("method", sa.String(10), nullable=True),
        sa.Column("headers", sa.JSON, nullable=True),
        sa.Column("body", sa.JSON, nullable=True),
        sa.Column("status_code", sa.Integer, nullable=True),
        sa.Column("duration_ms", sa.Integer, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_remittance_logs_remittance_id", "remittance_logs", ["remittance_id"])

    op.create_table(
        "endpoint_configs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("module", sa.String(40), nullable=False, unique=True),
        sa.Column("endpoint", sa.String(300), nullable=False),
        sa.Column("method", sa.String(10), nullable=False, server_default="POST"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(updated=False),
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.Integer, nullable=True),
        sa.Column("user_id", sa.Integer, nullable=True),
        sa.Column("old_value", sa.JSON, nullable=True),
        sa.Column("new_value", sa.JSON, nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("endpoint_configs")
    op.drop_table("remittance_logs")
    op.drop_table("remittances")
    op.drop_table("validation_results")
    op.drop_table("validation_rules")
    op.drop_table("source_records")
    op.drop_table("user_permissions")
    op.drop_table("users")
    op.drop_table("units")
