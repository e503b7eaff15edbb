"""Store module for the local cache of HelmRelease objects."""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from helm_crd.manifest import ReleaseRequest, meta_namespace_key


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_ADDED = "object_added"
    """Callback is invoked with the new object."""

    OBJECT_UPDATED = "object_updated"
    """Callback is invoked with the old and the new object."""

    OBJECT_DELETED = "object_deleted"
    """Callback is invoked with the object or a `DeletedFinalStateUnknown`."""


@dataclass(frozen=True)
class DeletedFinalStateUnknown:
    """Marker for an object that vanished while the store was not watching.

    The object is the last state known to the store, which may be stale.
    """

    key: str
    obj: ReleaseRequest


def deletion_handling_key(obj: ReleaseRequest | DeletedFinalStateUnknown) -> str:
    """Return the key of an object delivered to a deletion listener."""
    if isinstance(obj, DeletedFinalStateUnknown):
        return obj.key
    return meta_namespace_key(obj)


class Store(ABC):
    """Abstract base class for the local mirror of cluster objects."""

    @abstractmethod
    def add(self, obj: ReleaseRequest) -> None:
        """Add an object to the store, replacing any existing version."""

    @abstractmethod
    def update(self, obj: ReleaseRequest) -> None:
        """Update an object in the store."""

    @abstractmethod
    def delete(self, obj: ReleaseRequest) -> None:
        """Remove an object from the store."""

    @abstractmethod
    def replace(self, objects: Iterable[ReleaseRequest]) -> None:
        """Replace the contents of the store with a complete listing."""

    @abstractmethod
    def get_by_key(self, key: str) -> ReleaseRequest | None:
        """Return the object with the `namespace/name` key."""

    @abstractmethod
    def list_keys(self) -> list[str]:
        """Return the keys of all objects in the store."""

    @abstractmethod
    def list_objects(self) -> list[ReleaseRequest]:
        """Return all objects in the store."""

    @abstractmethod
    def add_listener(
        self, event: StoreEvent, callback: Callable[..., None]
    ) -> Callable[[], None]:
        """Register a callback for an event, returning a function to remove it."""
