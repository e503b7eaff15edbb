"""Reconciliation of a single HelmRelease.

A reconcile pass reads the object from the local cache and either purges the
release of an object being deleted, or resolves the requested chart and
installs or upgrades the release. Any error is returned to the caller so the
key can be retried.

Key Concepts:
    - Finalizer: Keeps a deleted HelmRelease around until its release is purged
    - Release name: `spec.releaseName`, or `{namespace}-{name}` when unset
"""

import logging

from helm_crd.chart_repo import (
    ChartArtifact,
    ChartRepositoryClient,
    find_entry,
    repo_index_url,
    resolve_location,
)
from helm_crd.config import ControllerConfig
from helm_crd.exceptions import HelmCrdException
from helm_crd.finalizer import add_finalizer, has_finalizer, remove_finalizer
from helm_crd.helm import ReleaseManager, is_not_found
from helm_crd.kube import ResourceClient
from helm_crd.manifest import ReleaseRequest
from helm_crd.store import Store

__all__ = [
    "Reconciler",
]

_LOGGER = logging.getLogger(__name__)


class Reconciler:
    """Converges the release of a HelmRelease to its desired state."""

    def __init__(
        self,
        store: Store,
        resource_client: ResourceClient,
        repo_client: ChartRepositoryClient,
        release_manager: ReleaseManager,
        config: ControllerConfig,
    ) -> None:
        """Initialize Reconciler.

        Args:
            store: The local cache of HelmRelease objects
            resource_client: Writes HelmRelease objects and reads Secrets
            repo_client: Fetches repository indexes and charts
            release_manager: Installs, upgrades and deletes releases
            config: The configuration for the controller
        """
        self._store = store
        self._resource_client = resource_client
        self._repo_client = repo_client
        self._release_manager = release_manager
        self._config = config

    async def bootstrap(self) -> None:
        """Prepare the release manager before the first reconcile."""
        await self._release_manager.bootstrap()

    async def reconcile(self, key: str) -> None:
        """Reconcile the HelmRelease with the `namespace/name` key."""
        if (obj := self._store.get_by_key(key)) is None:
            _LOGGER.info(
                "HelmRelease %s not found in the cache, ignoring the deletion update",
                key,
            )
            return
        if obj.being_deleted:
            await self._finalize(key, obj)
            return
        await self._sync(key, obj)

    async def _finalize(self, key: str, obj: ReleaseRequest) -> None:
        """Purge the release of a HelmRelease marked for deletion."""
        _LOGGER.info("HelmRelease %s marked to be deleted, uninstalling chart", key)
        if not has_finalizer(obj):
            return
        await self._release_manager.delete(obj.release_name, purge=True)
        try:
            await self._resource_client.update_release_request(remove_finalizer(obj))
        except HelmCrdException as err:
            _LOGGER.warning("Failed to remove finalizer for %s: %s", key, err)
            raise
        _LOGGER.info(
            "Release %s has been successfully processed and marked for deletion", key
        )

    async def _auth_header(self, obj: ReleaseRequest) -> str:
        """Return the Authorization header used for the chart repository."""
        if (ref := obj.spec.auth_header) is None:
            return ""
        return await self._resource_client.get_secret_value(
            self._config.secret_namespace, ref.name, ref.key
        )

    async def _fetch_chart(self, obj: ReleaseRequest) -> ChartArtifact:
        """Resolve the requested chart in its repository and download it."""
        index_url = repo_index_url(obj.spec.repo_url, self._config.default_repo_url)
        auth_header = await self._auth_header(obj)
        index = await self._repo_client.fetch_index(index_url, auth_header)
        chart_url = find_entry(index, obj.spec.chart_name, obj.spec.version)
        chart_url = resolve_location(index_url, chart_url)
        return await self._repo_client.fetch_artifact(chart_url, auth_header)

    async def _sync(self, key: str, obj: ReleaseRequest) -> None:
        """Install or upgrade the release of a HelmRelease."""
        if not has_finalizer(obj):
            try:
                await self._resource_client.update_release_request(add_finalizer(obj))
            except HelmCrdException as err:
                _LOGGER.warning("Error adding finalizer to %s: %s", key, err)
                raise

        artifact = await self._fetch_chart(obj)

        name = obj.release_name
        try:
            await self._release_manager.history(name, max_revisions=1)
        except Exception as err:
            if not is_not_found(err):
                raise
            _LOGGER.info("Installing release %s into namespace %s", name, obj.namespace)
            await self._release_manager.install(
                artifact, obj.namespace, obj.spec.values, name
            )
        else:
            _LOGGER.info("Updating release %s", name)
            await self._release_manager.update(name, artifact, obj.spec.values)

        try:
            state = await self._release_manager.get_release_state(name)
        except Exception as err:
            _LOGGER.info("Unable to fetch release status for %s: %s", name, err)
            return
        status = state.status.name if state.status is not None else "UNKNOWN"
        _LOGGER.info("Installed/updated release %s (status %s)", name, status)
