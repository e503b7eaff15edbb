"""Module for in memory object store."""

from collections import defaultdict
from collections.abc import Callable, Iterable
import logging
from typing import Any, DefaultDict

from helm_crd.manifest import ReleaseRequest, meta_namespace_key

from .store import DeletedFinalStateUnknown, Store, StoreEvent

_LOGGER = logging.getLogger(__name__)


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Objects are keyed by `namespace/name`. Objects are immutable snapshots so
    they are handed to callers and listeners without copying.
    """

    def __init__(self) -> None:
        """Initialize the InMemoryStore."""
        self._objects: dict[str, ReleaseRequest] = {}
        self._listeners: DefaultDict[StoreEvent, list[Callable[..., None]]] = (
            defaultdict(list)
        )

    def add(self, obj: ReleaseRequest) -> None:
        """Add an object to the store, replacing any existing version."""
        key = meta_namespace_key(obj)
        if (existing := self._objects.get(key)) is not None:
            if existing == obj:
                _LOGGER.debug("Object %s already exists in store, skipping", key)
                return
            _LOGGER.debug("Updating existing object %s in store", key)
            self._objects[key] = obj
            self._fire_event(StoreEvent.OBJECT_UPDATED, existing, obj)
            return
        _LOGGER.debug("Adding object %s to store", key)
        self._objects[key] = obj
        self._fire_event(StoreEvent.OBJECT_ADDED, obj)

    def update(self, obj: ReleaseRequest) -> None:
        """Update an object in the store."""
        self.add(obj)

    def delete(self, obj: ReleaseRequest) -> None:
        """Remove an object from the store."""
        key = meta_namespace_key(obj)
        if self._objects.pop(key, None) is None:
            _LOGGER.debug("Object %s not in store, ignoring delete", key)
            return
        _LOGGER.debug("Deleted object %s from store", key)
        self._fire_event(StoreEvent.OBJECT_DELETED, obj)

    def replace(self, objects: Iterable[ReleaseRequest]) -> None:
        """Replace the contents of the store with a complete listing.

        Objects no longer present are removed and delivered to deletion
        listeners as a `DeletedFinalStateUnknown` since the final state was
        not observed.
        """
        listed = {meta_namespace_key(obj): obj for obj in objects}
        for key in list(self._objects):
            if key in listed:
                continue
            last_known = self._objects.pop(key)
            _LOGGER.debug("Object %s vanished from listing", key)
            self._fire_event(
                StoreEvent.OBJECT_DELETED, DeletedFinalStateUnknown(key, last_known)
            )
        for obj in listed.values():
            self.add(obj)

    def get_by_key(self, key: str) -> ReleaseRequest | None:
        """Return the object with the `namespace/name` key."""
        return self._objects.get(key)

    def list_keys(self) -> list[str]:
        """Return the keys of all objects in the store."""
        return list(self._objects)

    def list_objects(self) -> list[ReleaseRequest]:
        """Return all objects in the store."""
        return list(self._objects.values())

    def add_listener(
        self, event: StoreEvent, callback: Callable[..., None]
    ) -> Callable[[], None]:
        """Register a callback for an event, returning a function to remove it."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)
        return remove

    def _fire_event(self, event: StoreEvent, *args: Any) -> None:
        for cb in list(self._listeners[event]):
            try:
                cb(*args)
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)
