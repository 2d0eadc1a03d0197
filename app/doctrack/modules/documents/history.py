"""
History reconciliation and the history view.

The `documents` trigger writes a history row with no action and no actor on
every insert/update. Only the application knows why the change happened, so
after each mutation it patches the newest action-less row for the document,
or inserts a replacement row when that row cannot be found.

Known limitation: "newest action-less row" is ambiguous when two mutations of
the same document are in flight; the second reconciliation may patch the row
written for the first. There is no correlation token.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.doctrack.errors import ReconciliationWarning, StoreError
from app.doctrack.modules.documents.models import DocumentHistory

if TYPE_CHECKING:
    from app.doctrack.modules.documents.service import DocumentFields
    from app.doctrack.store import Store

logger = logging.getLogger(__name__)

ACTION_CREATED = "Created"
ACTION_UPDATED = "Updated"

DEFAULT_DELAY_MS = 250
EMPTY = "—"


@dataclass(frozen=True)
class ReconcileOutcome:
    history_id: int | None
    fallback: bool
    warning: ReconciliationWarning | None = None

    @property
    def ok(self) -> bool:
        return self.warning is None


class HistoryReconciler:
    def __init__(self, delay_ms: int = DEFAULT_DELAY_MS, sleep: Callable[[float], None] = time.sleep) -> None:
        self.delay_ms = delay_ms
        self._sleep = sleep

    def find_unreconciled(self, store: "Store", document_id: int) -> DocumentHistory | None:
        stmt = (
            select(DocumentHistory)
            .where(DocumentHistory.document_id == document_id, DocumentHistory.action.is_(None))
            .order_by(DocumentHistory.created_at.desc(), DocumentHistory.id.desc())
        )
        return store.first(stmt)

    def correct_recent_history_entry(
        self,
        store: "Store",
        document_id: int,
        action: str,
        received_by: str | None,
        *,
        fields: "DocumentFields",
        status_override: str | None = None,
    ) -> ReconcileOutcome:
        # Give the trigger a moment to commit.
        if self.delay_ms > 0:
            self._sleep(self.delay_ms / 1000.0)

        try:
            entry = self.find_unreconciled(store, document_id)
        except StoreError as e:
            logger.warning("History lookup failed for doc %s: %s", document_id, e)
            entry = None

        if entry is None:
            logger.warning("Could not find trigger-generated history entry for doc %s. Creating fallback.", document_id)
            try:
                row = store.insert(
                    DocumentHistory,
                    {
                        "document_id": document_id,
                        "action": action,
                        "received_by": received_by,
                        "department": fields.department,
                        "status": status_override or fields.status,
                        "remarks": fields.remarks,
                    },
                )
            except StoreError as e:
                logger.warning("Fallback history insert failed for doc %s: %s", document_id, e)
                return ReconcileOutcome(None, True, ReconciliationWarning(f"Failed to log history: {e.detail or e}"))
            return ReconcileOutcome(row.id, True)

        try:
            store.update(DocumentHistory, entry.id, {"action": action, "received_by": received_by})
        except StoreError as e:
            logger.warning("History patch failed for doc %s (history_id=%s): %s", document_id, entry.id, e)
            return ReconcileOutcome(entry.id, False, ReconciliationWarning(f"Failed to update history: {e.detail or e}"))
        return ReconcileOutcome(entry.id, False)


def format_duration(milliseconds: float) -> str:
    if milliseconds < 0:
        return "N/A"
    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours % 24}h {minutes % 60}m"
    if minutes > 0:
        return f"{minutes % 60}m {seconds % 60}s"
    return f"{seconds % 60}s"


def duration_between(earlier: datetime, later: datetime) -> str:
    return format_duration((later - earlier).total_seconds() * 1000)


@dataclass(frozen=True)
class HistoryRow:
    created_at: datetime
    department: str
    action: str
    performed_by: str
    duration: str
    remarks: str


def history_rows(entries: Iterable[DocumentHistory]) -> list[HistoryRow]:
    """Display rows for entries already sorted oldest first."""
    rows: list[HistoryRow] = []
    previous: datetime | None = None
    for entry in entries:
        duration = duration_between(previous, entry.created_at) if previous is not None else "N/A"
        previous = entry.created_at
        rows.append(
            HistoryRow(
                created_at=entry.created_at,
                department=entry.department or EMPTY,
                # an unreconciled trigger row reads as a plain update
                action=f"{entry.action or ACTION_UPDATED} ({entry.status or 'N/A'})",
                performed_by=entry.received_by or EMPTY,
                duration=duration,
                remarks=entry.remarks or EMPTY,
            )
        )
    return rows


def document_history(store: "Store", document_id: int) -> list[DocumentHistory]:
    stmt = (
        select(DocumentHistory)
        .where(DocumentHistory.document_id == document_id)
        .order_by(DocumentHistory.created_at.asc(), DocumentHistory.id.asc())
    )
    return store.all(stmt)
