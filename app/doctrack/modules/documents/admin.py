"""
Staff-facing document routes: create, edit, delete, lifecycle actions, history.

Every outcome is reported through flash() + redirect; store and validation
failures never escape as a 500.
"""

from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, g, redirect, render_template, request, url_for

from app.doctrack.errors import DocTrackError, ValidationError
from app.doctrack.models import User
from app.doctrack.modules.documents.history import HistoryReconciler, document_history, history_rows
from app.doctrack.modules.documents.models import Document
from app.doctrack.modules.documents.service import (
    LIFECYCLE_ACTIONS,
    DocumentFields,
    LifecycleResult,
    apply_lifecycle_action,
    create_document,
    delete_document,
    resolve_lifecycle_action,
    update_document,
)
from app.doctrack.rbac import current_role, require_login
from app.doctrack.realtime import current_cache
from app.doctrack.store import Store, request_store

bp = Blueprint("documents", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _reconciler() -> HistoryReconciler:
    return HistoryReconciler(delay_ms=int(current_app.config.get("HISTORY_RECONCILE_DELAY_MS", 250)))


def _get_doc_or_404(store: Store, doc_id: int) -> Document:
    try:
        d = store.get(Document, doc_id)
    except DocTrackError as e:
        flash(f"Error loading document: {e.message}", "danger")
        d = None
    if not d:
        abort(404)
    return d


def _flash_result(result: LifecycleResult) -> None:
    for msg in result.messages:
        flash(msg, "warning")


def _render_form(store: Store, document: Document | None, form: dict | None = None):
    snap = current_cache().snapshot(store)
    return render_template(
        "admin/documents/form.html",
        document=document,
        form=form or {},
        departments=snap.departments,
        statuses=snap.statuses,
        actions=list(LIFECYCLE_ACTIONS),
        role=current_role(),
        performed_by=_current_user().email,
    )


@bp.get("/new")
@require_login
def new_document_get():
    return _render_form(request_store(), None)


@bp.post("/new")
@require_login
def new_document_post():
    store = request_store()
    u = _current_user()
    fields = DocumentFields.from_form(request.form)
    try:
        snap = current_cache().snapshot(store)
        result = create_document(
            store,
            fields,
            actor=u.email,
            documents_count=snap.documents_count,
            reconciler=_reconciler(),
            prefix=current_app.config.get("DOC_NUMBER_PREFIX") or "LGU",
        )
    except ValidationError as e:
        flash(e.message, "danger")
        return _render_form(store, None, form=request.form.to_dict())
    except DocTrackError as e:
        flash(f"Error saving document: {e.message}", "danger")
        return _render_form(store, None, form=request.form.to_dict())

    _flash_result(result)
    flash("Document created successfully!", "success")
    return redirect(url_for("admin.index"))


@bp.get("/<int:doc_id>")
@require_login
def edit_document_get(doc_id: int):
    store = request_store()
    return _render_form(store, _get_doc_or_404(store, doc_id))


@bp.post("/<int:doc_id>")
@require_login
def edit_document_post(doc_id: int):
    store = request_store()
    u = _current_user()
    fields = DocumentFields.from_form(request.form)
    try:
        result = update_document(store, doc_id, fields, actor=u.email, reconciler=_reconciler())
    except ValidationError as e:
        flash(e.message, "danger")
        return redirect(url_for("documents.edit_document_get", doc_id=doc_id))
    except DocTrackError as e:
        flash(f"Error saving document: {e.message}", "danger")
        return redirect(url_for("documents.edit_document_get", doc_id=doc_id))

    _flash_result(result)
    flash("Document updated successfully!", "success")
    return redirect(url_for("admin.index"))


@bp.post("/<int:doc_id>/delete")
@require_login
def delete_document_post(doc_id: int):
    store = request_store()
    try:
        result = delete_document(store, doc_id, role=current_role())
    except DocTrackError as e:
        for notice in getattr(e, "notices", ()):
            flash(notice, "warning")
        flash(f"Error deleting document: {e.message}", "danger")
        return redirect(url_for("admin.index"))

    _flash_result(result)
    current_app.logger.info("Document %s deleted by user_id=%s", doc_id, _current_user().id)
    flash("Document deleted successfully.", "success")
    return redirect(url_for("admin.index"))


@bp.post("/<int:doc_id>/action")
@require_login
def lifecycle_action_post(doc_id: int):
    store = request_store()
    action = (request.form.get("action") or "").strip()
    performed_by = request.form.get("received_by") or ""
    # The edit form posts its current field values along with the action.
    fields = DocumentFields.from_form(request.form) if "title" in request.form else None
    try:
        result = apply_lifecycle_action(
            store, doc_id, action, performed_by, reconciler=_reconciler(), fields=fields
        )
    except DocTrackError as e:
        flash(f"Failed to update document: {e.message}", "danger")
        return redirect(url_for("documents.edit_document_get", doc_id=doc_id))

    _flash_result(result)
    label, _ = resolve_lifecycle_action(action)
    flash(f"Document successfully marked as {label}!", "success")
    return redirect(url_for("admin.index"))


@bp.get("/<int:doc_id>/history")
@require_login
def document_history_get(doc_id: int):
    store = request_store()
    d = _get_doc_or_404(store, doc_id)
    try:
        rows = history_rows(document_history(store, d.id))
    except DocTrackError as e:
        flash(f"Error fetching history: {e.message}", "danger")
        rows = []
    return render_template("admin/documents/history.html", document=d, rows=rows)
