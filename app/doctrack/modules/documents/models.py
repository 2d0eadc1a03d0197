from __future__ import annotations

from datetime import datetime

from sqlalchemy import DDL, DateTime, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from app.doctrack.models import Base


class Document(Base):
    __tablename__ = "documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    # Department/status are stored by name, not id: renaming a reference row
    # must not rewrite what a document (or its history) said at the time.
    department: Mapped[str] = mapped_column(String(128), nullable=False)
    sender: Mapped[str] = mapped_column("submitter", String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(64), nullable=False)

    # LGU-YYMM-N, assigned once at creation
    document_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)
    processing_days: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class DocumentHistory(Base):
    """
    Append-only history of a document.

    Rows are normally written by the `documents` trigger with action NULL and
    then reconciled (action + received_by filled in) by the application.
    """

    __tablename__ = "document_history"
    __table_args__ = (
        Index("idx_document_history_doc_created", "document_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)

    # Created / Updated / Received / Released / Completed; NULL = not yet reconciled
    action: Mapped[str | None] = mapped_column(String(32), nullable=True)
    department: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str | None] = mapped_column(String(64), nullable=True)
    received_by: Mapped[str | None] = mapped_column(String(320), nullable=True)
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)


class Department(Base):
    __tablename__ = "departments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)


class Status(Base):
    __tablename__ = "statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)


# Store-side history trigger. Attached to document_history's creation so the
# target table exists before the trigger does. Literal % is escaped for DDL().
SQLITE_HISTORY_TRIGGERS = (
    """
    CREATE TRIGGER IF NOT EXISTS trg_documents_history_insert
    AFTER INSERT ON documents
    FOR EACH ROW
    BEGIN
        INSERT INTO document_history (created_at, document_id, action, department, status, received_by, remarks)
        VALUES (strftime('%%Y-%%m-%%d %%H:%%M:%%f', 'now'), NEW.id, NULL, NEW.department, NEW.status, NULL, NEW.remarks);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_documents_history_update
    AFTER UPDATE ON documents
    FOR EACH ROW
    BEGIN
        INSERT INTO document_history (created_at, document_id, action, department, status, received_by, remarks)
        VALUES (strftime('%%Y-%%m-%%d %%H:%%M:%%f', 'now'), NEW.id, NULL, NEW.department, NEW.status, NULL, NEW.remarks);
    END
    """,
)

POSTGRES_HISTORY_TRIGGERS = (
    """
    CREATE OR REPLACE FUNCTION log_document_history() RETURNS trigger AS $$
    BEGIN
        INSERT INTO document_history (created_at, document_id, action, department, status, received_by, remarks)
        VALUES (clock_timestamp() AT TIME ZONE 'utc', NEW.id, NULL, NEW.department, NEW.status, NULL, NEW.remarks);
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql
    """,
    """
    CREATE TRIGGER trg_documents_history
    AFTER INSERT OR UPDATE ON documents
    FOR EACH ROW EXECUTE FUNCTION log_document_history()
    """,
)

for _stmt in SQLITE_HISTORY_TRIGGERS:
    event.listen(DocumentHistory.__table__, "after_create", DDL(_stmt).execute_if(dialect="sqlite"))
for _stmt in POSTGRES_HISTORY_TRIGGERS:
    event.listen(DocumentHistory.__table__, "after_create", DDL(_stmt).execute_if(dialect="postgresql"))
