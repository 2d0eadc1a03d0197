"""
Store facade over a SQLAlchemy session.

Every call is its own unit of work: it commits on success, or rolls back and
raises StoreError. Successful writes publish the written table on the change
feed. Callers never see SQLAlchemy exceptions.
"""

from __future__ import annotations

import logging
from collections.abc import Generator, Iterable, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import Select, delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.doctrack.errors import StoreError
from app.doctrack.realtime import ChangeFeed

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _detail(e: SQLAlchemyError) -> str:
    orig = getattr(e, "orig", None)
    return str(orig) if orig is not None else str(e)


class Store:
    def __init__(self, session: Session, feed: ChangeFeed | None = None) -> None:
        self.session = session
        self.feed = feed

    @contextmanager
    def _call(self, operation: str, *, commit: bool) -> Generator[None, None, None]:
        try:
            yield
            if commit:
                self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Store call failed: %s", operation)
            raise StoreError(operation, _detail(e)) from e
        except StoreError:
            self.session.rollback()
            raise

    def _published(self, table: str) -> None:
        if self.feed is not None:
            self.feed.publish(table)

    # ---------- reads ----------
    def get(self, model: type[T], row_id: Any) -> T | None:
        with self._call(f"get {model.__tablename__}", commit=False):  # type: ignore[attr-defined]
            return self.session.get(model, row_id, populate_existing=True)

    def all(self, stmt: Select) -> list[Any]:
        with self._call("select", commit=False):
            # bulk update/delete skip session sync; refresh rows already in the identity map
            return list(self.session.scalars(stmt.execution_options(populate_existing=True)))

    def first(self, stmt: Select) -> Any | None:
        with self._call("select", commit=False):
            return self.session.scalars(stmt.limit(1).execution_options(populate_existing=True)).first()

    # ---------- writes ----------
    def insert(self, model: type[T], values: Mapping[str, Any]) -> T:
        return self.insert_many(model, [values])[0]

    def insert_many(self, model: type[T], rows: Iterable[Mapping[str, Any]]) -> list[T]:
        table = model.__tablename__  # type: ignore[attr-defined]
        with self._call(f"insert {table}", commit=True):
            objs = [model(**dict(values)) for values in rows]
            self.session.add_all(objs)
            self.session.flush()
        self._published(table)
        return objs

    def update(self, model: type, row_id: Any, values: Mapping[str, Any]) -> None:
        table = model.__tablename__
        # Attribute keys, so mapped names that differ from column names resolve.
        resolved = {getattr(model, k): v for k, v in values.items()}
        with self._call(f"update {table}", commit=True):
            res = self.session.execute(
                update(model)
                .where(model.id == row_id)
                .values(resolved)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 0:
                raise StoreError(f"update {table}", f"no row with id {row_id}")
        self._published(table)

    def delete_where(self, model: type, *criteria: Any) -> int:
        table = model.__tablename__
        with self._call(f"delete {table}", commit=True):
            res = self.session.execute(
                delete(model).where(*criteria).execution_options(synchronize_session=False)
            )
        self._published(table)
        return res.rowcount

    def detach(self, rows: Iterable[Any]) -> None:
        """Expunge cached rows so a later rollback in this session cannot expire them."""
        for row in rows:
            if row in self.session:
                self.session.expunge(row)

    def upsert_site_config(self, values: Mapping[str, Any]) -> None:
        from app.doctrack.models import SiteConfig

        values = {**values, "updated_at": datetime.utcnow()}
        if self.get(SiteConfig, 1) is None:
            self.insert(SiteConfig, {"id": 1, **values})
        else:
            self.update(SiteConfig, 1, values)


def request_store() -> Store:
    """Store bound to the request-scoped session and the app's change feed."""
    from app.doctrack.db import db_session
    from app.doctrack.realtime import current_feed

    return Store(db_session(), current_feed())
