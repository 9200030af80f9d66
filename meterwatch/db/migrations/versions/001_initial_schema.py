"""
Initial schema: owners, devices, telemetry and alarm_logs.

Creates the configuration tables the device config provider reads, the
telemetry table with composite primary key (device_id, ts) for idempotent
ingestion, and the alarm log with a per-device time index.

Revision ID: 001
Revises: None
Create Date: 2026-10-18

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_READING_COLUMNS = (
    "voltage_r",
    "voltage_y",
    "voltage_b",
    "current_r",
    "current_y",
    "current_b",
    "current_n",
    "active_power",
    "apparent_power",
    "reactive_power",
    "power_factor",
    "frequency",
    "energy_kwh",
    "energy_kvah",
    "energy_kvarh",
    "meter_temperature",
    "v_thd_r",
    "v_thd_y",
    "v_thd_b",
    "i_thd_r",
    "i_thd_y",
    "i_thd_b",
)

_LIMIT_COLUMNS = (
    "v_ov",
    "v_uv",
    "v_imb",
    "i_oc",
    "i_imb",
    "i_neu",
    "t_int",
    "allotted_load",
    "pf_lag",
    "pf_lead",
)


def upgrade() -> None:
    op.create_table(
        "owners",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("alert_email", sa.Text(), nullable=True),
        sa.Column("alerts_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("plan", sa.Text(), nullable=False, server_default=sa.text("'essential'")),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "devices",
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("device_name", sa.Text(), nullable=True),
        sa.Column("owner_id", sa.Integer(), nullable=True),
        *(sa.Column(name, sa.Double(), nullable=True) for name in _LIMIT_COLUMNS),
        sa.Column("tariff_config", postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(["owner_id"], ["owners.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("device_id"),
    )

    # Every reading column defaults to 0 except the three mandatory ones.
    required = {"active_power", "apparent_power", "power_factor"}
    op.create_table(
        "telemetry",
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        *(
            sa.Column(
                name,
                sa.Double(),
                nullable=False,
                server_default=None if name in required else sa.text("0"),
            )
            for name in _READING_COLUMNS
        ),
        sa.PrimaryKeyConstraint("device_id", "ts"),
    )

    op.create_table(
        "alarm_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("device_id", sa.Text(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("alarm_type", sa.Text(), nullable=False),
        sa.Column("severity", sa.Text(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("value", sa.Double(), nullable=False),
        sa.Column("threshold", sa.Double(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_alarm_logs_device_id", "alarm_logs", ["device_id"])


def downgrade() -> None:
    op.drop_index("ix_alarm_logs_device_id", table_name="alarm_logs")
    op.drop_table("alarm_logs")
    op.drop_table("telemetry")
    op.drop_table("devices")
    op.drop_table("owners")
