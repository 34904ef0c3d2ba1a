"""tickets

Revision ID: 0001
Revises:
Create Date: 2026-10-18

Creates the tickets ledger: one row per accepted USSD payment.
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "tickets",
        sa.Column("ticket_id", sa.String(36), primary_key=True),
        sa.Column("phone_number", sa.String(32), nullable=False),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("event_name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="KES"),
        sa.Column("ticket_code", sa.String(16), nullable=False, unique=True),
        sa.Column(
            "status",
            sa.Enum("active", "redeemed", "cancelled", name="ticketstatus"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tickets_phone_number_created_at", "tickets", ["phone_number", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_tickets_phone_number_created_at", table_name="tickets")
    op.drop_table("tickets")
    sa.Enum(name="ticketstatus").drop(op.get_bind(), checkfirst=True)
