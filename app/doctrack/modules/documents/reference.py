"""Departments and statuses: name-only reference rows managed by admins."""

from __future__ import annotations

from typing import TYPE_CHECKING

from app.doctrack.errors import ValidationError
from app.doctrack.modules.documents.models import Department, Status

if TYPE_CHECKING:
    from app.doctrack.store import Store

DEFAULT_STATUSES = ("Submitted", "Reviewing", "Approved", "Rejected", "In Process", "Forwarded", "Completed")


def _name(raw: str | None, what: str) -> str:
    name = (raw or "").strip()
    if not name:
        raise ValidationError(f"{what} name is required.")
    return name


def add_department(store: "Store", name: str | None) -> Department:
    return store.insert(Department, {"name": _name(name, "Department")})


def add_status(store: "Store", name: str | None) -> Status:
    return store.insert(Status, {"name": _name(name, "Status")})


def rename_status(store: "Store", status_id: int, name: str | None) -> None:
    # Documents and history keep the old name; they store labels, not ids.
    store.update(Status, status_id, {"name": _name(name, "Status")})
