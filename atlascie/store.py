"""
Document store contract and in-memory implementation.

The portal reads and writes a tenant-scoped hierarchy of documents::

    artifacts/{app_id}/users/{uid}/profile/main
    artifacts/{app_id}/public/data/enrollees/{enrollee_id}
    artifacts/{app_id}/public/data/enrollees/{enrollee_id}/carePlan/{entry_id}
    artifacts/{app_id}/public/data/resources/{resource_id}
    artifacts/{app_id}/public/data/referrals/{referral_id}
    artifacts/{app_id}/public/data/referrals/{referral_id}/messages/{message_id}

``InMemoryDocumentStore`` implements the operations the core depends on:
live subscriptions, get-once, list, create, set (with merge), update,
delete and a server-assigned timestamp.  It is single-threaded.
Subscribers are called synchronously after every write to the collection
they watch.  There is no conflict detection: concurrent writers to the
same document are last-writer-wins.
"""

from __future__ import annotations

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Sentinel replaced with the store's clock when a document is written."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()

Snapshot = list[dict[str, Any]]
Listener = Callable[[Snapshot], None]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class StoreError(Exception):
    """Raised when a read or write against the store fails."""
    pass


class DocumentNotFoundError(StoreError):
    """Raised when updating a document that does not exist."""
    pass


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

class TenantPaths:
    """Builds document and collection paths for one tenant (``app_id``)."""

    def __init__(self, app_id: str) -> None:
        if not app_id:
            raise ValueError("app_id must be a non-empty string")
        self.app_id = app_id
        self._root = f"artifacts/{app_id}"
        self._public = f"{self._root}/public/data"

    def profile(self, uid: str) -> str:
        return f"{self._root}/users/{uid}/profile/main"

    def enrollees(self) -> str:
        return f"{self._public}/enrollees"

    def enrollee(self, enrollee_id: str) -> str:
        return f"{self.enrollees()}/{enrollee_id}"

    def care_plan(self, enrollee_id: str) -> str:
        return f"{self.enrollee(enrollee_id)}/carePlan"

    def care_plan_entry(self, enrollee_id: str, entry_id: str) -> str:
        return f"{self.care_plan(enrollee_id)}/{entry_id}"

    def resources(self) -> str:
        return f"{self._public}/resources"

    def resource(self, resource_id: str) -> str:
        return f"{self.resources()}/{resource_id}"

    def referrals(self) -> str:
        return f"{self._public}/referrals"

    def referral(self, referral_id: str) -> str:
        return f"{self.referrals()}/{referral_id}"

    def messages(self, referral_id: str) -> str:
        return f"{self.referral(referral_id)}/messages"

    def message(self, referral_id: str, message_id: str) -> str:
        return f"{self.messages(referral_id)}/{message_id}"


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into ``(collection_path, doc_id)``."""
    segments = [s for s in path.split("/") if s]
    if len(segments) < 2 or len(segments) % 2 != 0:
        raise ValueError(f"'{path}' is not a document path")
    return "/".join(segments[:-1]), segments[-1]


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

class Subscription:
    """Handle returned by ``subscribe()``; call ``unsubscribe()`` on teardown."""

    def __init__(
        self,
        store: "InMemoryDocumentStore",
        collection_path: str,
        listener: Listener,
        where: Optional[dict[str, Any]],
    ) -> None:
        self._store = store
        self.collection_path = collection_path
        self.listener = listener
        self.where = where or {}
        self.active = True

    def matches(self, data: dict[str, Any]) -> bool:
        return all(data.get(field) == value for field, value in self.where.items())

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._store._remove_subscription(self)


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

class InMemoryDocumentStore:
    """Process-local document store with live-query subscriptions.

    Documents are deep-copied on the way in and out so callers never hold
    references into the store's state.  Each document returned carries its
    identifier under the ``"id"`` key.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscriptions: list[Subscription] = []
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # -- helpers --

    def server_timestamp(self) -> datetime:
        return self._clock()

    def _resolve(self, data: dict[str, Any]) -> dict[str, Any]:
        resolved = {}
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                resolved[key] = self.server_timestamp()
            elif isinstance(value, dict):
                resolved[key] = self._resolve(value)
            else:
                resolved[key] = copy.deepcopy(value)
        return resolved

    @staticmethod
    def _with_id(doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        doc = copy.deepcopy(data)
        doc["id"] = doc_id
        return doc

    def _snapshot(self, subscription: Subscription) -> Snapshot:
        docs = self._collections.get(subscription.collection_path, {})
        return [
            self._with_id(doc_id, data)
            for doc_id, data in docs.items()
            if subscription.matches(data)
        ]

    def _notify(self, collection_path: str) -> None:
        for subscription in list(self._subscriptions):
            if subscription.active and subscription.collection_path == collection_path:
                subscription.listener(self._snapshot(subscription))

    def _remove_subscription(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    # -- reads --

    def get(self, path: str) -> Optional[dict[str, Any]]:
        """Return the document at ``path`` or None if it does not exist."""
        collection_path, doc_id = split_path(path)
        data = self._collections.get(collection_path, {}).get(doc_id)
        if data is None:
            return None
        return self._with_id(doc_id, data)

    def list(
        self, collection_path: str, where: Optional[dict[str, Any]] = None
    ) -> Snapshot:
        """Return every document in a collection, optionally equality-filtered."""
        where = where or {}
        docs = self._collections.get(collection_path, {})
        return [
            self._with_id(doc_id, data)
            for doc_id, data in docs.items()
            if all(data.get(field) == value for field, value in where.items())
        ]

    def subscribe(
        self,
        collection_path: str,
        listener: Listener,
        where: Optional[dict[str, Any]] = None,
    ) -> Subscription:
        """Register a live query.

        The listener receives the current result set immediately and again
        after every write to the collection.
        """
        subscription = Subscription(self, collection_path, listener, where)
        self._subscriptions.append(subscription)
        listener(self._snapshot(subscription))
        return subscription

    # -- writes --

    def create(
        self, collection_path: str, data: dict[str, Any], doc_id: str | None = None
    ) -> str:
        """Add a document to a collection and return its identifier."""
        doc_id = doc_id or uuid.uuid4().hex[:20]
        docs = self._collections.setdefault(collection_path, {})
        docs[doc_id] = self._resolve(data)
        logger.debug("Created %s/%s", collection_path, doc_id)
        self._notify(collection_path)
        return doc_id

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Write a whole document, or merge top-level fields into it."""
        collection_path, doc_id = split_path(path)
        docs = self._collections.setdefault(collection_path, {})
        if merge and doc_id in docs:
            docs[doc_id].update(self._resolve(data))
        else:
            docs[doc_id] = self._resolve(data)
        self._notify(collection_path)

    def update(self, path: str, fields: dict[str, Any]) -> None:
        """Update top-level fields of an existing document.

        Raises:
            DocumentNotFoundError: If the document does not exist.
        """
        collection_path, doc_id = split_path(path)
        docs = self._collections.get(collection_path, {})
        if doc_id not in docs:
            raise DocumentNotFoundError(f"No document at '{path}'")
        docs[doc_id].update(self._resolve(fields))
        self._notify(collection_path)

    def delete(self, path: str) -> None:
        """Delete a document.  Deleting a missing document is a no-op."""
        collection_path, doc_id = split_path(path)
        docs = self._collections.get(collection_path, {})
        if docs.pop(doc_id, None) is not None:
            self._notify(collection_path)
