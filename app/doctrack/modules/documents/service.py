from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import TYPE_CHECKING, Any

from app.doctrack.errors import AuthorizationError, StoreError, ValidationError
from app.doctrack.modules.documents.history import (
    ACTION_CREATED,
    ACTION_UPDATED,
    HistoryReconciler,
    ReconcileOutcome,
)
from app.doctrack.modules.documents.models import Document, DocumentHistory
from app.doctrack.rbac import ROLE_ADMIN

if TYPE_CHECKING:
    from app.doctrack.store import Store

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "LGU"

# verb -> (history label, target status)
LIFECYCLE_ACTIONS: dict[str, tuple[str, str]] = {
    "Receive": ("Received", "In Process"),
    "Release": ("Released", "Forwarded"),
    "Complete": ("Completed", "Completed"),
}


@dataclass(frozen=True)
class DocumentFields:
    title: str = ""
    department: str = ""
    sender: str = ""
    status: str = ""
    remarks: str | None = None

    @classmethod
    def from_form(cls, form: Mapping[str, Any]) -> "DocumentFields":
        return cls(
            title=(form.get("title") or "").strip(),
            department=(form.get("department") or "").strip(),
            sender=(form.get("sender") or "").strip(),
            status=(form.get("status") or "").strip(),
            remarks=(form.get("remarks") or "").strip() or None,
        )

    @classmethod
    def from_document(cls, doc: Document) -> "DocumentFields":
        return cls(
            title=doc.title,
            department=doc.department,
            sender=doc.sender,
            status=doc.status,
            remarks=doc.remarks or None,
        )

    def missing(self) -> list[str]:
        return [name for name in ("title", "department", "sender", "status") if not getattr(self, name)]

    def validate(self) -> None:
        if self.missing():
            raise ValidationError("Please fill out all required fields.")

    def as_values(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "department": self.department,
            "sender": self.sender,
            "status": self.status,
            "remarks": self.remarks,
        }


@dataclass
class LifecycleResult:
    document: Document | None
    history: ReconcileOutcome | None = None
    messages: list[str] = field(default_factory=list)

    def add_outcome(self, outcome: ReconcileOutcome | None) -> None:
        self.history = outcome
        if outcome is not None and outcome.warning is not None:
            self.messages.append(outcome.warning.message)


def next_document_number(documents_count: int, today: date | None = None, prefix: str = DEFAULT_PREFIX) -> str:
    """
    `{prefix}-{YY}{MM}-{count + 1}`. The count is whatever the caller currently
    holds in memory; there is no store-side reservation, so concurrent creates
    can collide on the unique constraint.
    """
    today = today or date.today()
    return f"{prefix}-{today:%y%m}-{documents_count + 1}"


def is_meaningful_change(prior: DocumentFields, new: DocumentFields) -> bool:
    return (
        new.department != prior.department
        or new.status != prior.status
        or (new.remarks or "") != (prior.remarks or "")
    )


def resolve_lifecycle_action(action: str) -> tuple[str, str]:
    """Accepts the verb ("Receive") or its history label ("Received")."""
    name = (action or "").strip()
    if name in LIFECYCLE_ACTIONS:
        return LIFECYCLE_ACTIONS[name]
    for label, target in LIFECYCLE_ACTIONS.values():
        if name == label:
            return label, target
    raise ValidationError(f"Unknown action: {action!r}")


def _load(store: "Store", document_id: int) -> Document:
    doc = store.get(Document, document_id)
    if doc is None:
        raise StoreError("load document", f"no document with id {document_id}")
    return doc


def _write(store: "Store", document_id: int, fields: DocumentFields) -> None:
    # Always issue the UPDATE (even for an unchanged form) so the trigger fires.
    store.update(Document, document_id, {**fields.as_values(), "updated_at": datetime.utcnow()})


def create_document(
    store: "Store",
    fields: DocumentFields,
    *,
    actor: str,
    documents_count: int,
    reconciler: HistoryReconciler,
    today: date | None = None,
    prefix: str = DEFAULT_PREFIX,
) -> LifecycleResult:
    fields.validate()
    now = datetime.utcnow()
    doc = store.insert(
        Document,
        {
            **fields.as_values(),
            "document_number": next_document_number(documents_count, today, prefix),
            "processing_days": 0,
            "created_at": now,
            "updated_at": now,
        },
    )
    logger.info("Document created (id=%s number=%s)", doc.id, doc.document_number)

    result = LifecycleResult(doc)
    result.add_outcome(reconciler.correct_recent_history_entry(store, doc.id, ACTION_CREATED, actor, fields=fields))
    return result


def update_document(
    store: "Store",
    document_id: int,
    fields: DocumentFields,
    *,
    actor: str,
    reconciler: HistoryReconciler,
) -> LifecycleResult:
    fields.validate()
    prior = DocumentFields.from_document(_load(store, document_id))
    _write(store, document_id, fields)

    result = LifecycleResult(None)
    if is_meaningful_change(prior, fields):
        result.add_outcome(
            reconciler.correct_recent_history_entry(store, document_id, ACTION_UPDATED, actor, fields=fields)
        )
    else:
        # The trigger row stays action-less; the history view shows it as "Updated".
        logger.info("Document %s updated without a tracked change; history left unreconciled", document_id)
    result.document = store.get(Document, document_id)
    return result


def delete_document(store: "Store", document_id: int, *, role: str | None) -> LifecycleResult:
    if role != ROLE_ADMIN:
        raise AuthorizationError("Only administrators can delete documents.")

    result = LifecycleResult(None)
    try:
        store.delete_where(DocumentHistory, DocumentHistory.document_id == document_id)
    except StoreError as e:
        result.messages.append(f"Could not clear history, but will attempt to delete document: {e.detail or e}")

    try:
        if store.delete_where(Document, Document.id == document_id) == 0:
            raise StoreError("delete document", f"no document with id {document_id}")
    except StoreError as e:
        e.notices.extend(result.messages)
        raise
    logger.info("Document deleted (id=%s)", document_id)
    return result


def apply_lifecycle_action(
    store: "Store",
    document_id: int,
    action: str,
    actor_name: str,
    *,
    reconciler: HistoryReconciler,
    fields: DocumentFields | None = None,
) -> LifecycleResult:
    label, target_status = resolve_lifecycle_action(action)
    actor_name = (actor_name or "").strip()
    if not actor_name:
        raise ValidationError("Please enter who performed the action.")

    base = fields if fields is not None else DocumentFields.from_document(_load(store, document_id))
    base.validate()
    target = replace(base, status=target_status)
    _write(store, document_id, target)

    result = LifecycleResult(None)
    result.add_outcome(
        reconciler.correct_recent_history_entry(
            store, document_id, label, actor_name, fields=target, status_override=target_status
        )
    )
    result.document = store.get(Document, document_id)
    logger.info("Document %s marked %s by %s", document_id, label, actor_name)
    return result
