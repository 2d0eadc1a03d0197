"""Read-side projections: public tracking search and dashboard stats/filters."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import or_, select

from app.doctrack.errors import ValidationError
from app.doctrack.modules.documents.models import Document

if TYPE_CHECKING:
    from app.doctrack.store import Store

APPROVED_STATUSES = frozenset({"approved", "completed"})
PENDING_STATUSES = frozenset({"reviewing", "submitted", "in process", "forwarded"})
ALL_DEPARTMENTS = "All"


@dataclass(frozen=True)
class DashboardStats:
    total: int
    pending: int
    approved: int
    other: int


def dashboard_stats(documents: Sequence[Document]) -> DashboardStats:
    total = len(documents)
    approved = sum(1 for d in documents if d.status.lower() in APPROVED_STATUSES)
    pending = sum(1 for d in documents if d.status.lower() in PENDING_STATUSES)
    return DashboardStats(total=total, pending=pending, approved=approved, other=total - approved - pending)


def filter_documents(
    documents: Iterable[Document],
    *,
    department: str = ALL_DEPARTMENTS,
    sender: str = "",
    search: str = "",
) -> list[Document]:
    filtered = list(documents)
    if department and department != ALL_DEPARTMENTS:
        filtered = [d for d in filtered if d.department == department]

    sender = sender.strip().lower()
    if sender:
        filtered = [d for d in filtered if sender in d.sender.lower()]

    search = search.strip().lower()
    if search:
        filtered = [d for d in filtered if search in d.title.lower() or search in d.document_number.lower()]
    return filtered


def _contains(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def public_search(store: "Store", term: str, sender: str) -> list[Document]:
    """
    Anonymous tracking lookup: sender must match AND (number OR title) must match,
    both as case-insensitive substrings.
    """
    term = (term or "").strip()
    sender = (sender or "").strip()
    if not term or not sender:
        raise ValidationError("Please enter both a document identifier and a sender's name.")

    like_term = _contains(term)
    stmt = (
        select(Document)
        .where(
            Document.sender.ilike(_contains(sender), escape="\\"),
            or_(
                Document.document_number.ilike(like_term, escape="\\"),
                Document.title.ilike(like_term, escape="\\"),
            ),
        )
        .order_by(Document.created_at.desc(), Document.id.desc())
    )
    return store.all(stmt)
