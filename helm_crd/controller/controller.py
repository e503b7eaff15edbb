"""HelmRelease controller implementation.

The controller connects the informer to the reconciler: changes observed in
the store are turned into keys on a rate limited work queue, and workers
reconcile one key at a time, retrying failures a bounded number of times.
"""

import asyncio
import logging

from helm_crd import runtime
from helm_crd.config import ControllerConfig
from helm_crd.exceptions import ResourceStoreException
from helm_crd.manifest import ReleaseRequest, meta_namespace_key
from helm_crd.store import (
    DeletedFinalStateUnknown,
    Informer,
    StoreEvent,
    deletion_handling_key,
)
from helm_crd.task import get_task_service
from helm_crd.workqueue import RateLimitingQueue

from .reconciler import Reconciler

__all__ = [
    "ReleaseRequestController",
]

_LOGGER = logging.getLogger(__name__)


class ReleaseRequestController:
    """Controller for reconciling HelmRelease resources."""

    def __init__(
        self,
        informer: Informer,
        reconciler: Reconciler,
        config: ControllerConfig,
        queue: RateLimitingQueue | None = None,
    ) -> None:
        """Initialize the controller and register listeners on the store.

        Args:
            informer: Keeps the store in sync with the cluster
            reconciler: Reconciles a single key
            config: The configuration for the controller
            queue: The work queue, a default rate limited queue when unset
        """
        self._informer = informer
        self._reconciler = reconciler
        self._config = config
        self._queue = queue or RateLimitingQueue()
        store = informer.store
        self._remove_listeners = [
            store.add_listener(StoreEvent.OBJECT_ADDED, self._on_add),
            store.add_listener(StoreEvent.OBJECT_UPDATED, self._on_update),
            store.add_listener(StoreEvent.OBJECT_DELETED, self._on_delete),
        ]

    @property
    def queue(self) -> RateLimitingQueue:
        """Return the work queue of the controller."""
        return self._queue

    def _on_add(self, obj: ReleaseRequest) -> None:
        self._queue.add(meta_namespace_key(obj))

    def _on_update(self, old: ReleaseRequest, new: ReleaseRequest) -> None:
        self._queue.add(meta_namespace_key(new))

    def _on_delete(self, obj: ReleaseRequest | DeletedFinalStateUnknown) -> None:
        self._queue.add(deletion_handling_key(obj))

    def has_synced(self) -> bool:
        """Return True once the initial listing has been added to the store."""
        return self._informer.has_synced()

    def close(self) -> None:
        """Remove the listeners registered on the store."""
        for remove in self._remove_listeners:
            remove()
        self._remove_listeners.clear()

    async def _wait_for_sync(self, stop_event: asyncio.Event) -> bool:
        """Wait for the initial listing, returning False if stopped first."""
        synced = asyncio.ensure_future(self._informer.wait_for_sync())
        stopped = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait({synced, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            synced.cancel()
            stopped.cancel()
        return self.has_synced()

    async def run(self, stop_event: asyncio.Event) -> None:
        """Run the informer and the workers until the stop event is set."""
        _LOGGER.info("Starting HelmReleases controller")
        task_service = get_task_service()
        try:
            task_service.create_background_task(self._informer.run(), name="informer")
            await self._reconciler.bootstrap()

            if not await self._wait_for_sync(stop_event):
                runtime.handle_error(
                    ResourceStoreException("Timed out waiting for caches to sync")
                )
                return
            _LOGGER.info("Cache synchronised, starting main loop")

            for i in range(self._config.workers):
                task_service.create_task(self.run_worker(), name=f"worker-{i}")
            await stop_event.wait()
        finally:
            _LOGGER.info("Shutting down controller")
            self._queue.shut_down()
            await task_service.block_till_done()
            await task_service.shutdown()

    async def run_worker(self) -> None:
        """Process items until the queue is shut down."""
        while await self.process_next_item():
            pass

    async def process_next_item(self) -> bool:
        """Reconcile the next key, returning False once the queue is shut down."""
        if (key := await self._queue.get()) is None:
            return False
        try:
            await self._reconciler.reconcile(key)
        except Exception as err:
            if self._queue.num_requeues(key) < self._config.max_retries:
                _LOGGER.warning("Error updating %s, will retry: %s", key, err)
                self._queue.add_rate_limited(key)
            else:
                _LOGGER.error("Error updating %s, giving up: %s", key, err)
                self._queue.forget(key)
                runtime.handle_error(err)
        else:
            self._queue.forget(key)
        finally:
            self._queue.done(key)
        return True
