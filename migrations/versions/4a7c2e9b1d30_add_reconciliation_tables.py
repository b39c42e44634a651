"""add reconciliation run tracking and audit tables

Revision ID: 4a7c2e9b1d30
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "4a7c2e9b1d30"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)

    if not insp.has_table("audit_events"):
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("actor", sa.String(length=128), nullable=False),
            sa.Column("action", sa.String(length=128), nullable=False),
            sa.Column("entity_type", sa.String(length=128), nullable=True),
            sa.Column("entity_id", sa.String(length=128), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
        )

    if not insp.has_table("reconciliation_runs"):
        op.create_table(
            "reconciliation_runs",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("ran_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("job", sa.String(length=64), nullable=False),
            sa.Column("updated_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("failed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("skipped_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("rows_seen", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default=sa.text("0")),
            sa.Column("message", sa.Text(), nullable=True),
        )

    if not insp.has_table("reconciliation_failures"):
        op.create_table(
            "reconciliation_failures",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column(
                "run_id",
                sa.Integer(),
                sa.ForeignKey("reconciliation_runs.id", ondelete="CASCADE"),
                nullable=True,
            ),
            sa.Column("row_index", sa.Integer(), nullable=False),
            sa.Column("shipment_id", sa.Text(), nullable=True),
            sa.Column("sku", sa.Text(), nullable=True),
            sa.Column("account_name", sa.Text(), nullable=True),
            sa.Column("reason", sa.Text(), nullable=False),
            sa.Column("details_json", sa.Text(), nullable=True),
        )


def downgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)

    if insp.has_table("reconciliation_failures"):
        op.drop_table("reconciliation_failures")
    if insp.has_table("reconciliation_runs"):
        op.drop_table("reconciliation_runs")
    if insp.has_table("audit_events"):
        op.drop_table("audit_events")
