from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for

from app.doctrack.errors import DocTrackError
from app.doctrack.modules.documents.reference import add_department, add_status, rename_status
from app.doctrack.modules.documents.views import ALL_DEPARTMENTS, dashboard_stats, filter_documents
from app.doctrack.rbac import ROLE_ADMIN, current_role, require_login, require_role
from app.doctrack.realtime import current_cache
from app.doctrack.site import upload_logo
from app.doctrack.storage import storage_from_config
from app.doctrack.store import request_store

bp = Blueprint("admin", __name__)


@bp.get("/")
@require_login
def index():
    store = request_store()
    snap = current_cache().snapshot(store)

    department = (request.args.get("department") or ALL_DEPARTMENTS).strip()
    sender = request.args.get("sender") or ""
    search = request.args.get("q") or ""

    documents = filter_documents(snap.documents, department=department, sender=sender, search=search)
    return render_template(
        "admin/dashboard.html",
        role=current_role(),
        stats=dashboard_stats(snap.documents),
        documents=documents,
        departments=snap.departments,
        statuses=snap.statuses,
        filters={"department": department, "sender": sender, "q": search},
    )


@bp.post("/departments")
@require_role(ROLE_ADMIN)
def departments_add():
    try:
        add_department(request_store(), request.form.get("name"))
    except DocTrackError as e:
        flash(f"Error adding department: {e.message}", "danger")
    else:
        flash("Department added successfully.", "success")
    return redirect(url_for("admin.index"))


@bp.post("/statuses")
@require_role(ROLE_ADMIN)
def statuses_add():
    try:
        add_status(request_store(), request.form.get("name"))
    except DocTrackError as e:
        flash(f"Error adding status: {e.message}", "danger")
    else:
        flash("Status added successfully.", "success")
    return redirect(url_for("admin.index"))


@bp.post("/statuses/<int:status_id>")
@require_role(ROLE_ADMIN)
def statuses_rename(status_id: int):
    try:
        rename_status(request_store(), status_id, request.form.get("name"))
    except DocTrackError as e:
        flash(f"Error updating status: {e.message}", "danger")
    else:
        flash("Status updated successfully.", "success")
    return redirect(url_for("admin.index"))


@bp.post("/logo")
@require_role(ROLE_ADMIN)
def logo_upload():
    f = request.files.get("logo")
    if not f or not f.filename:
        flash("Choose an image to upload.", "danger")
        return redirect(url_for("admin.index"))
    try:
        url = upload_logo(
            request_store(),
            storage_from_config(current_app.config),
            f.read(),
            content_type=f.mimetype,
        )
    except DocTrackError as e:
        flash(f"Failed to upload logo: {e.message}", "danger")
        return redirect(url_for("admin.index"))
    current_app.logger.info("Logo uploaded: %s", url)
    flash("Logo uploaded successfully!", "success")
    return redirect(url_for("admin.index"))
