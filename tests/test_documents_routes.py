from datetime import date

import pytest
from werkzeug.security import generate_password_hash

from app.doctrack import create_app
from app.doctrack.db import session_scope
from app.doctrack.errors import StoreError
from app.doctrack.models import Base, User
from app.doctrack.modules.documents.models import Department, Document, DocumentHistory, Status
from app.doctrack.store import Store


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("ADMIN_EMAILS", "admin@example.com")
    monkeypatch.setenv("HISTORY_RECONCILE_DELAY_MS", "0")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add_all(
            [
                User(email="admin@example.com", password_hash=generate_password_hash("pw"), is_active=True),
                User(email="encoder@example.com", password_hash=generate_password_hash("pw"), is_active=True),
                Department(name="Accounting Office"),
                Department(name="Budget Office"),
                Status(name="Submitted"),
                Status(name="Reviewing"),
                Status(name="In Process"),
            ]
        )
    return app.test_client()


def _login(client, email: str) -> None:
    r = client.post("/auth/login", data={"email": email, "password": "pw"}, follow_redirects=False)
    assert r.status_code == 302


def _csrf(client) -> str:
    with client.session_transaction() as sess:
        return sess["csrf_token"]


def _new_document(client, **overrides):
    data = {
        "title": "Purchase Request - Office Supplies",
        "department": "Accounting Office",
        "sender": "Juan Dela Cruz",
        "status": "Submitted",
        "remarks": "",
        "csrf_token": _csrf(client),
    }
    data.update(overrides)
    return client.post("/admin/documents/new", data=data, follow_redirects=True)


def _history(client, doc_id: int) -> list[DocumentHistory]:
    with session_scope(client.application) as s:
        return (
            s.query(DocumentHistory)
            .filter(DocumentHistory.document_id == doc_id)
            .order_by(DocumentHistory.created_at.asc(), DocumentHistory.id.asc())
            .all()
        )


def _only_document(client, number: str) -> Document:
    with session_scope(client.application) as s:
        return s.query(Document).filter(Document.document_number == number).one()


def test_encoder_creates_document_with_number_and_created_entry(client):
    _login(client, "encoder@example.com")

    r = _new_document(client)
    assert r.status_code == 200
    assert b"Document created successfully!" in r.data

    today = date.today()
    d = _only_document(client, f"LGU-{today:%y%m}-1")
    assert d.sender == "Juan Dela Cruz"
    assert d.remarks is None

    entries = _history(client, d.id)
    assert [(e.action, e.received_by) for e in entries] == [("Created", "encoder@example.com")]

    # count-based numbering picks up the first document
    _new_document(client, title="Travel Order")
    assert _only_document(client, f"LGU-{today:%y%m}-2").title == "Travel Order"


def test_create_with_missing_fields_rerenders_form(client):
    _login(client, "encoder@example.com")
    r = _new_document(client, title="")
    assert r.status_code == 200
    assert b"Please fill out all required fields." in r.data
    assert b"Add New Document" in r.data
    with session_scope(client.application) as s:
        assert s.query(Document).count() == 0


def test_save_with_status_change_logs_updated(client):
    _login(client, "encoder@example.com")
    _new_document(client)
    d = _only_document(client, f"LGU-{date.today():%y%m}-1")

    r = client.post(
        f"/admin/documents/{d.id}",
        data={
            "title": d.title,
            "department": d.department,
            "sender": d.sender,
            "status": "Reviewing",
            "received_by": "encoder@example.com",
            "csrf_token": _csrf(client),
        },
        follow_redirects=True,
    )
    assert b"Document updated successfully!" in r.data
    assert [(e.action, e.status) for e in _history(client, d.id)] == [("Created", "Submitted"), ("Updated", "Reviewing")]


def test_lifecycle_action_route(client):
    _login(client, "encoder@example.com")
    _new_document(client)
    d = _only_document(client, f"LGU-{date.today():%y%m}-1")

    r = client.post(
        f"/admin/documents/{d.id}/action",
        data={"action": "Receive", "received_by": "Maria Santos", "csrf_token": _csrf(client)},
        follow_redirects=True,
    )
    assert b"Document successfully marked as Received!" in r.data
    assert _only_document(client, d.document_number).status == "In Process"
    last = _history(client, d.id)[-1]
    assert (last.action, last.received_by, last.status) == ("Received", "Maria Santos", "In Process")

    r = client.get(f"/admin/documents/{d.id}/history")
    assert r.status_code == 200
    assert b"Created (Submitted)" in r.data
    assert b"Received (In Process)" in r.data
    assert b"N/A" in r.data


def test_lifecycle_action_requires_performer(client):
    _login(client, "encoder@example.com")
    _new_document(client)
    d = _only_document(client, f"LGU-{date.today():%y%m}-1")

    r = client.post(
        f"/admin/documents/{d.id}/action",
        data={"action": "Release", "received_by": "", "csrf_token": _csrf(client)},
        follow_redirects=True,
    )
    assert b"Please enter who performed the action." in r.data
    assert _only_document(client, d.document_number).status == "Submitted"
    assert len(_history(client, d.id)) == 1


def test_encoder_cannot_delete(client):
    _login(client, "encoder@example.com")
    _new_document(client)
    d = _only_document(client, f"LGU-{date.today():%y%m}-1")

    r = client.get(f"/admin/documents/{d.id}")
    assert b"Delete Document" not in r.data

    r = client.post(f"/admin/documents/{d.id}/delete", data={"csrf_token": _csrf(client)}, follow_redirects=True)
    assert b"Only administrators can delete documents." in r.data
    assert _only_document(client, d.document_number).id == d.id
    assert len(_history(client, d.id)) == 1


def test_admin_deletes_document_and_history(client):
    _login(client, "admin@example.com")
    _new_document(client)
    d = _only_document(client, f"LGU-{date.today():%y%m}-1")

    r = client.get(f"/admin/documents/{d.id}")
    assert b"Delete Document" in r.data

    r = client.post(f"/admin/documents/{d.id}/delete", data={"csrf_token": _csrf(client)}, follow_redirects=True)
    assert b"Document deleted successfully." in r.data
    assert b"Admin Dashboard" in r.data
    with session_scope(client.application) as s:
        assert s.query(Document).count() == 0
    assert _history(client, d.id) == []


def test_dashboard_filters(client):
    _login(client, "encoder@example.com")
    _new_document(client)
    _new_document(client, title="Travel Order", department="Budget Office", sender="Maria Santos")

    r = client.get("/admin/?department=Budget+Office")
    assert b"Travel Order" in r.data
    assert b"Purchase Request - Office Supplies" not in r.data

    r = client.get("/admin/?sender=%20juan%20")
    assert b"Purchase Request - Office Supplies" in r.data
    assert b"<td>Travel Order</td>" not in r.data

    r = client.get("/admin/?q=TRAVEL&department=All")
    assert b"<td>Travel Order</td>" in r.data
    assert b"Total Documents: <strong>2</strong>" in r.data


def test_failed_delete_reports_history_notice_and_error(client, monkeypatch):
    _login(client, "admin@example.com")
    _new_document(client)
    d = _only_document(client, f"LGU-{date.today():%y%m}-1")

    def denied(self, model, *criteria):
        raise StoreError(f"delete {model.__tablename__}", "denied")

    monkeypatch.setattr(Store, "delete_where", denied)
    r = client.post(f"/admin/documents/{d.id}/delete", data={"csrf_token": _csrf(client)}, follow_redirects=True)

    assert b"Could not clear history, but will attempt to delete document: denied" in r.data
    assert b"Error deleting document: delete documents: denied" in r.data
    assert _only_document(client, d.document_number).id == d.id
