"""entity records and users

Revision ID: 202601100900
Revises:
Create Date: 2026-01-10 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202601100900"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "entity_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entity", sa.String(length=64), nullable=False),
        sa.Column("record_id", sa.String(length=128), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("created_date", sa.DateTime(), nullable=False),
        sa.Column("updated_date", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("entity", "record_id", name="uq_entity_record_id"),
    )
    op.create_index("ix_entity_records_entity", "entity_records", ["entity"])

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200)),
        sa.Column("password_hash", sa.String(length=200)),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="admin"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )


def downgrade():
    op.drop_table("users")
    op.drop_index("ix_entity_records_entity", table_name="entity_records")
    op.drop_table("entity_records")
