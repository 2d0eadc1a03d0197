"""
Error taxonomy for document tracking.

- ValidationError: a required field is missing; nothing was sent to the store.
- AuthorizationError: the caller's role may not run the operation; nothing was sent to the store.
- StoreError: a store call failed; the session was rolled back and the operation aborted.
- ReconciliationWarning: the history patch/fallback failed after the document change committed.
  Carried as a message on the operation result, never raised out of an operation.
"""

from __future__ import annotations


class DocTrackError(Exception):
    """Base class for errors surfaced to the user as a status message."""

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(DocTrackError):
    pass


class AuthorizationError(DocTrackError):
    pass


class StoreError(DocTrackError):
    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        # earlier partial-failure notices of the same operation
        self.notices: list[str] = []
        super().__init__(f"{operation}: {detail}" if detail else operation)


class ReconciliationWarning(DocTrackError):
    pass
