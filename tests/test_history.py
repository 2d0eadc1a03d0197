from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from app.doctrack import create_app
from app.doctrack.db import session_scope
from app.doctrack.errors import StoreError
from app.doctrack.models import Base
from app.doctrack.modules.documents.history import (
    HistoryReconciler,
    format_duration,
    history_rows,
)
from app.doctrack.modules.documents.models import Document, DocumentHistory
from app.doctrack.modules.documents.service import DocumentFields, create_document, update_document
from app.doctrack.store import Store


@pytest.fixture()
def store(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        yield Store(s, app.extensions["doctrack_feed"])


FIELDS = DocumentFields(
    title="Barangay Clearance Request",
    department="Mayor's Office",
    sender="Pedro Reyes",
    status="Submitted",
    remarks="Urgent",
)


def _entries(store, doc_id):
    return store.all(
        select(DocumentHistory)
        .where(DocumentHistory.document_id == doc_id)
        .order_by(DocumentHistory.created_at.asc(), DocumentHistory.id.asc())
    )


@pytest.mark.parametrize(
    "ms,expected",
    [
        (0, "0s"),
        (45_000, "45s"),
        (90_000, "1m 30s"),
        (90_999, "1m 30s"),
        ((2 * 3600 + 5 * 60) * 1000, "2h 5m"),
        ((26 * 3600 + 59 * 60) * 1000, "1d 2h"),
        (-1, "N/A"),
    ],
)
def test_format_duration(ms, expected):
    assert format_duration(ms) == expected


def test_history_rows_durations_and_placeholders():
    t0 = datetime(2024, 5, 3, 8, 0, 0)
    entries = [
        SimpleNamespace(created_at=t0, action="Created", status="Submitted", department="Accounting Office",
                        received_by="encoder@example.com", remarks=None),
        SimpleNamespace(created_at=t0 + timedelta(seconds=90), action=None, status=None, department=None,
                        received_by=None, remarks="moved"),
        # clock skew between entries
        SimpleNamespace(created_at=t0 + timedelta(seconds=89), action="Received", status="In Process",
                        department="Budget Office", received_by="Maria Santos", remarks=""),
    ]

    rows = history_rows(entries)

    assert [r.duration for r in rows] == ["N/A", "1m 30s", "N/A"]
    assert rows[0].action == "Created (Submitted)"
    assert rows[1].action == "Updated (N/A)"
    assert (rows[1].department, rows[1].performed_by) == ("—", "—")
    assert rows[0].remarks == "—"
    assert rows[2].remarks == "—"
    assert rows[2].action == "Received (In Process)"


def test_history_rows_empty():
    assert history_rows([]) == []


def test_reconciler_sleeps_configured_delay(store):
    slept = []
    reconciler = HistoryReconciler(delay_ms=250, sleep=slept.append)
    create_document(store, FIELDS, actor="encoder@example.com", documents_count=0, reconciler=reconciler)
    assert slept == [0.25]


def test_fallback_insert_when_trigger_row_missing(store, monkeypatch):
    reconciler = HistoryReconciler(delay_ms=0)
    monkeypatch.setattr(reconciler, "find_unreconciled", lambda store, document_id: None)

    result = create_document(store, FIELDS, actor="encoder@example.com", documents_count=0, reconciler=reconciler)

    assert result.history.fallback
    assert result.messages == []
    entries = _entries(store, result.document.id)
    fallback = [e for e in entries if e.action == "Created"]
    assert len(fallback) == 1
    assert fallback[0].id == result.history.history_id
    assert (fallback[0].received_by, fallback[0].department, fallback[0].status, fallback[0].remarks) == (
        "encoder@example.com",
        "Mayor's Office",
        "Submitted",
        "Urgent",
    )


def test_fallback_uses_status_override(store, monkeypatch):
    reconciler = HistoryReconciler(delay_ms=0)
    doc = create_document(store, FIELDS, actor="a", documents_count=0, reconciler=reconciler).document
    monkeypatch.setattr(reconciler, "find_unreconciled", lambda store, document_id: None)

    outcome = reconciler.correct_recent_history_entry(
        store, doc.id, "Completed", "Maria Santos", fields=FIELDS, status_override="Completed"
    )

    assert outcome.fallback and outcome.ok
    assert store.get(DocumentHistory, outcome.history_id).status == "Completed"


def test_lookup_failure_falls_back(store, monkeypatch):
    reconciler = HistoryReconciler(delay_ms=0)

    def broken_lookup(store, document_id):
        raise StoreError("select", "connection reset")

    monkeypatch.setattr(reconciler, "find_unreconciled", broken_lookup)
    result = create_document(store, FIELDS, actor="a", documents_count=0, reconciler=reconciler)
    assert result.history.fallback
    assert result.messages == []


def test_patch_failure_becomes_warning_and_document_stands(store, monkeypatch):
    reconciler = HistoryReconciler(delay_ms=0)
    doc = create_document(store, FIELDS, actor="a", documents_count=0, reconciler=reconciler).document
    original = store.update

    def failing_update(model, row_id, values):
        if model is DocumentHistory:
            raise StoreError("update document_history", "permission denied")
        return original(model, row_id, values)

    monkeypatch.setattr(store, "update", failing_update)
    changed = DocumentFields(**{**FIELDS.as_values(), "status": "Reviewing"})
    result = update_document(store, doc.id, changed, actor="b", reconciler=reconciler)

    assert result.messages == ["Failed to update history: permission denied"]
    assert not result.history.ok
    assert store.get(Document, doc.id).status == "Reviewing"
    assert _entries(store, doc.id)[-1].action is None


def test_fallback_insert_failure_becomes_warning(store, monkeypatch):
    reconciler = HistoryReconciler(delay_ms=0)
    monkeypatch.setattr(reconciler, "find_unreconciled", lambda store, document_id: None)
    original = store.insert

    def failing_insert(model, values):
        if model is DocumentHistory:
            raise StoreError("insert document_history", "disk full")
        return original(model, values)

    monkeypatch.setattr(store, "insert", failing_insert)
    result = create_document(store, FIELDS, actor="a", documents_count=0, reconciler=reconciler)

    assert result.messages == ["Failed to log history: disk full"]
    assert store.get(Document, result.document.id) is not None


def test_patches_newest_unreconciled_row(store):
    reconciler = HistoryReconciler(delay_ms=0)
    doc = create_document(store, FIELDS, actor="a", documents_count=0, reconciler=reconciler).document
    # two untracked saves leave two action-less rows
    update_document(store, doc.id, FIELDS, actor="a", reconciler=reconciler)
    update_document(store, doc.id, FIELDS, actor="a", reconciler=reconciler)
    newest = _entries(store, doc.id)[-1]

    outcome = reconciler.correct_recent_history_entry(store, doc.id, "Received", "Maria Santos", fields=FIELDS)

    assert outcome.history_id == newest.id
    assert [e.action for e in _entries(store, doc.id)] == ["Created", None, "Received"]


def test_queries_reflect_history_patched_after_load(store):
    reconciler = HistoryReconciler(delay_ms=0)
    doc = create_document(store, FIELDS, actor="a", documents_count=0, reconciler=reconciler).document
    update_document(store, doc.id, FIELDS, actor="a", reconciler=reconciler)
    loaded = _entries(store, doc.id)
    assert [e.action for e in loaded] == ["Created", None]

    reconciler.correct_recent_history_entry(store, doc.id, "Received", "Maria Santos", fields=FIELDS)

    assert [e.action for e in _entries(store, doc.id)] == ["Created", "Received"]
    assert store.first(select(DocumentHistory).where(DocumentHistory.id == loaded[-1].id)).received_by == "Maria Santos"
    assert reconciler.find_unreconciled(store, doc.id) is None
