"""
In-process change notifications and the transient data cache they drive.

A write to a table publishes the table name only (no diff). Subscribers are
expected to refetch. The cache never merges changes: any change to documents,
departments or statuses throws the whole snapshot away.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from flask import current_app
from sqlalchemy import select

from app.doctrack.errors import StoreError

if TYPE_CHECKING:
    from app.doctrack.models import SiteConfig
    from app.doctrack.modules.documents.models import Department, Document, Status
    from app.doctrack.store import Store

logger = logging.getLogger(__name__)

SESSION_TOPIC = "session"

Callback = Callable[[str, Any], None]


class ChangeFeed:
    """Per-topic subscription list. Topics are table names plus SESSION_TOPIC."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Callback]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, callback: Callback) -> Callable[[], None]:
        with self._lock:
            self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[topic]:
                    self._subscribers[topic].remove(callback)

        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(topic, ()))
        for cb in callbacks:
            try:
                cb(topic, payload)
            except Exception:
                logger.exception("Change subscriber failed (topic=%s)", topic)


@dataclass
class Snapshot:
    documents: list["Document"] = field(default_factory=list)
    departments: list["Department"] = field(default_factory=list)
    statuses: list["Status"] = field(default_factory=list)

    @property
    def documents_count(self) -> int:
        return len(self.documents)


class DataCache:
    """
    Documents/departments/statuses plus the site config, refetched in full
    whenever a change notification arrives or the snapshot is older than max_age.
    """

    REFRESH_TABLES = ("documents", "departments", "statuses")

    def __init__(
        self,
        feed: ChangeFeed,
        *,
        max_age: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_age = max_age
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot = Snapshot()
        self._fetched_at: float | None = None
        self._site_config: "SiteConfig | None" = None
        self._site_config_stale = True
        self._site_config_fetched_at: float | None = None
        self.refetch_count = 0

        for table in self.REFRESH_TABLES:
            feed.subscribe(table, self._on_data_change)
        feed.subscribe("site_configs", self._on_site_config_change)
        feed.subscribe(SESSION_TOPIC, self._on_data_change)

    def _on_data_change(self, topic: str, payload: Any) -> None:
        self.invalidate()

    def _on_site_config_change(self, topic: str, payload: Any) -> None:
        with self._lock:
            self._site_config_stale = True

    def invalidate(self) -> None:
        with self._lock:
            self._fetched_at = None

    def _expired(self, fetched_at: float | None) -> bool:
        return fetched_at is None or (self._clock() - fetched_at) > self.max_age

    def is_stale(self) -> bool:
        return self._expired(self._fetched_at)

    def snapshot(self, store: "Store") -> Snapshot:
        with self._lock:
            if self.is_stale():
                self._refetch(store)
            return self._snapshot

    def site_config(self, store: "Store") -> "SiteConfig | None":
        from app.doctrack.models import SiteConfig

        with self._lock:
            if self._site_config_stale or self._expired(self._site_config_fetched_at):
                try:
                    self._site_config = store.get(SiteConfig, 1)
                    if self._site_config is not None:
                        store.detach([self._site_config])
                    self._site_config_stale = False
                    self._site_config_fetched_at = self._clock()
                except StoreError as e:
                    logger.error("Error fetching site configs: %s", e)
            return self._site_config

    def _refetch(self, store: "Store") -> None:
        from app.doctrack.modules.documents.models import Department, Document, Status

        self.refetch_count += 1
        # Each list is fetched independently; a failed fetch keeps the previous list.
        try:
            self._snapshot.documents = store.all(select(Document).order_by(Document.created_at.desc(), Document.id.desc()))
            store.detach(self._snapshot.documents)
        except StoreError as e:
            logger.error("Error fetching documents: %s", e)
        try:
            self._snapshot.departments = store.all(select(Department).order_by(Department.name.asc()))
            store.detach(self._snapshot.departments)
        except StoreError as e:
            logger.error("Error fetching departments: %s", e)
        try:
            self._snapshot.statuses = store.all(select(Status).order_by(Status.name.asc()))
            store.detach(self._snapshot.statuses)
        except StoreError as e:
            logger.error("Error fetching statuses: %s", e)
        self._fetched_at = self._clock()


def current_feed() -> ChangeFeed:
    return current_app.extensions["doctrack_feed"]


def current_cache() -> DataCache:
    return current_app.extensions["doctrack_cache"]
