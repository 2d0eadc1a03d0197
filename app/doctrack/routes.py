import mimetypes

from flask import Blueprint, abort, current_app, flash, render_template, request, send_file

from app.doctrack.errors import StoreError, ValidationError
from app.doctrack.modules.documents.history import document_history, history_rows
from app.doctrack.modules.documents.models import Document
from app.doctrack.modules.documents.views import public_search
from app.doctrack.storage import LocalStorage, StorageError, storage_from_config
from app.doctrack.store import request_store

bp = Blueprint("routes", __name__)


@bp.get("/")
@bp.get("/track")
def index():
    """Public tracking page. Searching needs both a number/title term and the sender's name."""
    term = request.args.get("q")
    sender = request.args.get("sender")
    results = None
    if term is not None or sender is not None:
        try:
            results = public_search(request_store(), term or "", sender or "")
        except ValidationError as e:
            flash(e.message, "warning")
        except StoreError as e:
            current_app.logger.error("Error searching documents: %s", e)
            flash(f"Error searching: {e.message}", "danger")
    return render_template("public/index.html", q=term or "", sender=sender or "", results=results)


@bp.get("/track/<int:doc_id>/history")
def track_history(doc_id: int):
    store = request_store()
    try:
        d = store.get(Document, doc_id)
        rows = history_rows(document_history(store, doc_id)) if d else []
    except StoreError as e:
        flash(f"Error fetching history: {e.message}", "danger")
        d, rows = None, []
    if not d:
        abort(404)
    return render_template("public/history.html", document=d, rows=rows)


@bp.get("/assets/<path:key>")
def asset(key: str):
    """Serves uploaded assets when the local storage backend is in use."""
    storage = storage_from_config(current_app.config)
    if not isinstance(storage, LocalStorage):
        abort(404)
    try:
        if not storage.exists(key):
            abort(404)
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    mimetype = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return send_file(fobj, mimetype=mimetype, max_age=3600)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """Fast health check for container probes. No DB access."""
    return "ok", 200
