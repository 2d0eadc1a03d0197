"""Create document tracking tables and the history trigger.

Revision ID: a3d1c9e7b2f4
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a3d1c9e7b2f4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SQLITE_TRIGGER_BODY = """
    FOR EACH ROW
    BEGIN
        INSERT INTO document_history (created_at, document_id, action, department, status, received_by, remarks)
        VALUES (strftime('%Y-%m-%d %H:%M:%f', 'now'), NEW.id, NULL, NEW.department, NEW.status, NULL, NEW.remarks);
    END
"""


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_table(
        "site_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("logo_url", sa.String(1024), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
    )
    op.create_table(
        "departments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(128), nullable=False, unique=True),
    )
    op.create_table(
        "statuses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(64), nullable=False, unique=True),
    )
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("department", sa.String(128), nullable=False),
        sa.Column("submitter", sa.String(255), nullable=False),
        sa.Column("status", sa.String(64), nullable=False),
        sa.Column("document_number", sa.String(32), nullable=False, unique=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("processing_days", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_table(
        "document_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=False), nullable=False),
        sa.Column("document_id", sa.Integer(), sa.ForeignKey("documents.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action", sa.String(32), nullable=True),
        sa.Column("department", sa.String(128), nullable=True),
        sa.Column("status", sa.String(64), nullable=True),
        sa.Column("received_by", sa.String(320), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
    )
    op.create_index("idx_document_history_doc_created", "document_history", ["document_id", "created_at"])

    dialect = op.get_bind().dialect.name
    if dialect == "postgresql":
        op.execute(
            """
            CREATE OR REPLACE FUNCTION log_document_history() RETURNS trigger AS $$
            BEGIN
                INSERT INTO document_history (created_at, document_id, action, department, status, received_by, remarks)
                VALUES (clock_timestamp() AT TIME ZONE 'utc', NEW.id, NULL, NEW.department, NEW.status, NULL, NEW.remarks);
                RETURN NEW;
            END;
            $$ LANGUAGE plpgsql
            """
        )
        op.execute(
            """
            CREATE TRIGGER trg_documents_history
            AFTER INSERT OR UPDATE ON documents
            FOR EACH ROW EXECUTE FUNCTION log_document_history()
            """
        )
    elif dialect == "sqlite":
        op.execute("CREATE TRIGGER trg_documents_history_insert AFTER INSERT ON documents" + SQLITE_TRIGGER_BODY)
        op.execute("CREATE TRIGGER trg_documents_history_update AFTER UPDATE ON documents" + SQLITE_TRIGGER_BODY)


def downgrade() -> None:
    dialect = op.get_bind().dialect.name
    if dialect == "postgresql":
        op.execute("DROP TRIGGER IF EXISTS trg_documents_history ON documents")
        op.execute("DROP FUNCTION IF EXISTS log_document_history()")
    elif dialect == "sqlite":
        op.execute("DROP TRIGGER IF EXISTS trg_documents_history_insert")
        op.execute("DROP TRIGGER IF EXISTS trg_documents_history_update")

    op.drop_index("idx_document_history_doc_created", table_name="document_history")
    op.drop_table("document_history")
    op.drop_table("documents")
    op.drop_table("statuses")
    op.drop_table("departments")
    op.drop_table("site_configs")
    op.drop_table("users")
