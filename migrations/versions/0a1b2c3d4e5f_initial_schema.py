"""initial_schema

Creates the full EduImprove schema from eduimprove/db/schema.sql.

Revision ID: 0a1b2c3d4e5f
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union
from pathlib import Path

from alembic import op
import sqlalchemy as sa


revision: str = "0a1b2c3d4e5f"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TABLES = [
    "report_dispatches",
    "rank_notifications",
    "achievements",
    "ranking_history",
    "quiz_attempts",
    "study_sessions",
    "students",
    "admins",
    "schools",
]


def upgrade() -> None:
    """Execute schema.sql statement by statement (CREATE ... IF NOT EXISTS throughout)."""
    schema_path = Path(__file__).resolve().parents[2] / "eduimprove" / "db" / "schema.sql"
    schema_sql = schema_path.read_text(encoding="utf-8")
    # op.execute runs one statement at a time
    for statement in schema_sql.split(";"):
        lines = [
            line for line in statement.splitlines()
            if line.strip() and not line.strip().startswith("--")
        ]
        cleaned = "\n".join(lines).strip()
        if cleaned:
            op.execute(sa.text(cleaned))


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    for table in TABLES:
        op.execute(sa.text(f"DROP TABLE IF EXISTS {table}"))
