"""Keeps a Store in sync with the cluster using list and watch.

The informer lists every object, replaces the contents of the store with the
listing and then watches for changes starting at the resource version of the
listing. When the watch can no longer be resumed the informer lists again.
"""

from abc import ABC, abstractmethod
import asyncio
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
import logging
from typing import Any

from helm_crd.exceptions import (
    InputException,
    ResourceExpiredError,
    ResourceStoreException,
)
from helm_crd.manifest import ReleaseRequest

from .store import Store

__all__ = [
    "Informer",
    "ListWatch",
    "WatchEvent",
]

_LOGGER = logging.getLogger(__name__)

INITIAL_BACKOFF = 1.0
MAX_BACKOFF = 30.0
HTTP_GONE = 410

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"
BOOKMARK = "BOOKMARK"
ERROR = "ERROR"


@dataclass(frozen=True)
class WatchEvent:
    """A single change notification from a watch."""

    type: str
    """One of ADDED, MODIFIED, DELETED, BOOKMARK or ERROR."""

    object: dict[str, Any] = field(default_factory=dict)
    """The raw object, or a Status object for ERROR events."""


class ListWatch(ABC):
    """Source of objects for an Informer."""

    @abstractmethod
    async def list(self) -> tuple[list[dict[str, Any]], str | None]:
        """Return all objects and the resource version of the listing."""

    @abstractmethod
    def watch(self, resource_version: str | None) -> AsyncIterator[WatchEvent]:
        """Return the changes made after the resource version.

        The iterator ends when the server closes the watch. A resource version
        that is too old raises `ResourceExpiredError`.
        """


def _resource_version(doc: dict[str, Any]) -> str | None:
    return (doc.get("metadata") or {}).get("resourceVersion")


class Informer:
    """Mirrors the objects of a ListWatch into a Store."""

    def __init__(
        self,
        list_watch: ListWatch,
        store: Store,
        parse_doc: Callable[[dict[str, Any]], ReleaseRequest] = (
            ReleaseRequest.parse_doc
        ),
    ) -> None:
        """Initialize Informer."""
        self._list_watch = list_watch
        self._store = store
        self._parse_doc = parse_doc
        self._synced = asyncio.Event()
        self._last_sync_resource_version: str | None = None

    @property
    def store(self) -> Store:
        """Return the store kept in sync by the informer."""
        return self._store

    @property
    def last_sync_resource_version(self) -> str | None:
        """Return the resource version observed when last synced."""
        return self._last_sync_resource_version

    def has_synced(self) -> bool:
        """Return True once the initial listing has been added to the store."""
        return self._synced.is_set()

    async def wait_for_sync(self) -> None:
        """Wait for the initial listing to be added to the store."""
        await self._synced.wait()

    def _parse_all(self, docs: list[dict[str, Any]]) -> list[ReleaseRequest]:
        objects = []
        for doc in docs:
            try:
                objects.append(self._parse_doc(doc))
            except InputException as err:
                _LOGGER.warning("Ignoring invalid object: %s", err)
        return objects

    async def _list(self) -> str | None:
        """List all objects and replace the contents of the store."""
        docs, resource_version = await self._list_watch.list()
        self._store.replace(self._parse_all(docs))
        self._last_sync_resource_version = resource_version
        if not self._synced.is_set():
            _LOGGER.info("Initial listing complete (%d objects)", len(docs))
            self._synced.set()
        return resource_version

    def _handle_event(self, event: WatchEvent) -> None:
        if event.type == ERROR:
            code = event.object.get("code")
            message = event.object.get("message", "")
            if code == HTTP_GONE:
                raise ResourceExpiredError(f"Watch expired: {message}")
            raise ResourceStoreException(f"Watch failed ({code}): {message}")
        if event.type == BOOKMARK:
            return
        try:
            obj = self._parse_doc(event.object)
        except InputException as err:
            _LOGGER.warning("Ignoring invalid object in %s event: %s", event.type, err)
            return
        if event.type in (ADDED, MODIFIED):
            self._store.update(obj)
        elif event.type == DELETED:
            self._store.delete(obj)
        else:
            _LOGGER.warning("Ignoring unknown watch event type %s", event.type)

    async def _watch(self, resource_version: str | None) -> str | None:
        """Apply watch events to the store until the watch is closed."""
        async for event in self._list_watch.watch(resource_version):
            self._handle_event(event)
            if (latest := _resource_version(event.object)) is not None:
                resource_version = latest
                self._last_sync_resource_version = latest
        return resource_version

    async def run(self) -> None:
        """Keep the store in sync until cancelled."""
        backoff = INITIAL_BACKOFF
        resource_version: str | None = None
        relist = True
        while True:
            try:
                if relist:
                    resource_version = await self._list()
                    relist = False
                resource_version = await self._watch(resource_version)
                backoff = INITIAL_BACKOFF
            except ResourceExpiredError as err:
                _LOGGER.info("Relisting after watch expired: %s", err)
                relist = True
            except Exception as err:
                _LOGGER.warning(
                    "List/watch failed, retrying in %.0fs: %s", backoff, err
                )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_BACKOFF)
