"""Access to the Kubernetes API.

The controller reads HelmRelease objects through a `KubeListWatch`, writes
them back through a `ResourceClient` and reads repository credentials from
Secrets. All calls are bounded by the controller timeout.
"""

from abc import ABC, abstractmethod
import asyncio
import base64
import binascii
from collections.abc import AsyncIterator
import logging
from typing import Any

from kubernetes_asyncio import client, watch
from kubernetes_asyncio.client import ApiException

from .config import DEFAULT_TIMEOUT_SECONDS
from .exceptions import (
    InputException,
    ResourceExpiredError,
    ResourceStoreException,
    StoreConflictError,
)
from .manifest import (
    HELM_RELEASE_DOMAIN,
    HELM_RELEASE_PLURAL,
    HELM_RELEASE_VERSION,
    ReleaseRequest,
)
from .store import ListWatch, WatchEvent

__all__ = [
    "KubeListWatch",
    "KubeResourceClient",
    "ResourceClient",
]

_LOGGER = logging.getLogger(__name__)

HTTP_CONFLICT = 409
HTTP_GONE = 410
WATCH_TIMEOUT_SECONDS = 300


class ResourceClient(ABC):
    """Writes HelmRelease objects and reads Secrets."""

    @abstractmethod
    async def update_release_request(self, obj: ReleaseRequest) -> ReleaseRequest:
        """Replace the object in the cluster, returning the stored version.

        Raises `StoreConflictError` when the resource version is stale.
        """

    @abstractmethod
    async def get_secret_value(self, namespace: str, name: str, key: str) -> str:
        """Return the decoded value of a key of a Secret."""


class KubeResourceClient(ResourceClient):
    """ResourceClient backed by the Kubernetes API."""

    def __init__(
        self, api_client: client.ApiClient, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> None:
        """Initialize KubeResourceClient."""
        self._custom_objects_api = client.CustomObjectsApi(api_client)
        self._core_api = client.CoreV1Api(api_client)
        self._timeout = timeout

    async def update_release_request(self, obj: ReleaseRequest) -> ReleaseRequest:
        """Replace the object in the cluster, returning the stored version."""
        _LOGGER.debug("Updating HelmRelease %s", obj.namespaced_name)
        try:
            doc = await self._custom_objects_api.replace_namespaced_custom_object(
                group=HELM_RELEASE_DOMAIN,
                version=HELM_RELEASE_VERSION,
                namespace=obj.namespace,
                plural=HELM_RELEASE_PLURAL,
                name=obj.name,
                body=obj.to_doc(),
                _request_timeout=self._timeout,
            )
        except ApiException as err:
            if err.status == HTTP_CONFLICT:
                raise StoreConflictError(
                    f"Conflict updating HelmRelease {obj.namespaced_name}: {err.reason}"
                ) from err
            raise ResourceStoreException(
                f"Failed to update HelmRelease {obj.namespaced_name}: "
                f"{err.status} {err.reason}"
            ) from err
        except asyncio.TimeoutError as err:
            raise ResourceStoreException(
                f"Timed out updating HelmRelease {obj.namespaced_name}"
            ) from err
        return ReleaseRequest.parse_doc(doc)

    async def get_secret_value(self, namespace: str, name: str, key: str) -> str:
        """Return the decoded value of a key of a Secret."""
        try:
            secret = await self._core_api.read_namespaced_secret(
                name, namespace, _request_timeout=self._timeout
            )
        except ApiException as err:
            raise ResourceStoreException(
                f"Failed to read Secret {namespace}/{name}: {err.status} {err.reason}"
            ) from err
        except asyncio.TimeoutError as err:
            raise ResourceStoreException(
                f"Timed out reading Secret {namespace}/{name}"
            ) from err
        data = secret.data or {}
        if key not in data:
            raise InputException(f"Secret {namespace}/{name} has no key {key!r}")
        try:
            return base64.b64decode(data[key]).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as err:
            raise InputException(
                f"Secret {namespace}/{name} key {key!r} is not valid: {err}"
            ) from err


class KubeListWatch(ListWatch):
    """Lists and watches HelmRelease objects in all namespaces."""

    def __init__(
        self, api_client: client.ApiClient, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> None:
        """Initialize KubeListWatch."""
        self._custom_objects_api = client.CustomObjectsApi(api_client)
        self._timeout = timeout

    async def list(self) -> tuple[list[dict[str, Any]], str | None]:
        """Return all HelmRelease objects and the resource version of the list."""
        try:
            result = await self._custom_objects_api.list_cluster_custom_object(
                group=HELM_RELEASE_DOMAIN,
                version=HELM_RELEASE_VERSION,
                plural=HELM_RELEASE_PLURAL,
                _request_timeout=self._timeout,
            )
        except ApiException as err:
            raise ResourceStoreException(
                f"Failed to list HelmReleases: {err.status} {err.reason}"
            ) from err
        items = result.get("items") or []
        resource_version = (result.get("metadata") or {}).get("resourceVersion")
        return items, resource_version

    async def watch(self, resource_version: str | None) -> AsyncIterator[WatchEvent]:
        """Yield changes to HelmRelease objects after the resource version."""
        watcher = watch.Watch()
        kwargs: dict[str, Any] = {
            "group": HELM_RELEASE_DOMAIN,
            "version": HELM_RELEASE_VERSION,
            "plural": HELM_RELEASE_PLURAL,
            "timeout_seconds": WATCH_TIMEOUT_SECONDS,
        }
        if resource_version:
            kwargs["resource_version"] = resource_version
        try:
            async with watcher.stream(
                self._custom_objects_api.list_cluster_custom_object, **kwargs
            ) as stream:
                async for event in stream:
                    obj = event.get("raw_object") or event.get("object") or {}
                    yield WatchEvent(type=event.get("type", ""), object=obj)
        except ApiException as err:
            if err.status == HTTP_GONE:
                raise ResourceExpiredError(
                    f"Resource version {resource_version} expired"
                ) from err
            raise ResourceStoreException(
                f"Failed to watch HelmReleases: {err.status} {err.reason}"
            ) from err
        finally:
            watcher.stop()
