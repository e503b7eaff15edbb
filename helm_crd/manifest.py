"""Representation of the HelmRelease custom resource.

A `ReleaseRequest` is an immutable snapshot of a `HelmRelease` object as seen
by the controller. Snapshots are never modified in place: a change is made on
a copy (see `dataclasses.replace`) which is then written back to the cluster.

This is an example of parsing an object returned by the Kubernetes API:
```python
from helm_crd.manifest import ReleaseRequest

obj = ReleaseRequest.parse_doc(doc)
print(f"Release {obj.release_name} for chart {obj.spec.chart_name}")
```
"""

import copy
from dataclasses import dataclass, field
import logging
from typing import Any

from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig

from .exceptions import InputException

__all__ = [
    "NamedResource",
    "SecretKeyRef",
    "ReleaseRequestSpec",
    "ReleaseRequest",
    "meta_namespace_key",
]

_LOGGER = logging.getLogger(__name__)


HELM_RELEASE_DOMAIN = "helm.bitnami.com"
HELM_RELEASE_VERSION = "v1"
HELM_RELEASE_KIND = "HelmRelease"
HELM_RELEASE_PLURAL = "helmreleases"
DEFAULT_NAMESPACE = "default"

# Spec keys owned by ReleaseRequestSpec
_SPEC_KEYS = ("repoUrl", "chartName", "version", "values", "releaseName", "auth")


def _set_or_pop(doc: dict[str, Any], key: str, value: Any) -> None:
    if value:
        doc[key] = value
    else:
        doc.pop(key, None)


def _check_version(doc: dict[str, Any], version: str) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise InputException(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(version):
        raise InputException(f"Invalid object expected '{version}': {doc}")


@dataclass(frozen=True)
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a namespaced kubernetes resource."""

    namespace: str
    name: str

    @property
    def namespaced_name(self) -> str:
        """Return the queue key for the resource."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    @classmethod
    def parse_key(cls, key: str) -> "NamedResource":
        """Parse a `namespace/name` key."""
        parts = key.split("/")
        if len(parts) == 1:
            return cls(namespace="", name=parts[0])
        if len(parts) == 2:
            return cls(namespace=parts[0], name=parts[1])
        raise InputException(f"Unexpected key format: {key!r}")

    def __str__(self) -> str:
        return self.namespaced_name


@dataclass(frozen=True)
class SecretKeyRef(BaseManifest):
    """Reference to a single key of a Secret."""

    name: str
    """Name of the secret."""

    key: str
    """Key within the secret data."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "SecretKeyRef":
        """Parse a secretKeyRef object."""
        if not (name := doc.get("name")):
            raise InputException(f"Invalid secretKeyRef missing name: {doc}")
        if not (key := doc.get("key")):
            raise InputException(f"Invalid secretKeyRef missing key: {doc}")
        return cls(name=name, key=key)


@dataclass(frozen=True)
class ReleaseRequestSpec(BaseManifest):
    """The desired state of a HelmRelease."""

    chart_name: str = ""
    """Name of the chart within the repository."""

    version: str = ""
    """Version constraint for the chart, empty for the latest version."""

    repo_url: str = ""
    """Base URL of the chart repository, empty for the default repository."""

    values: str = ""
    """Literal YAML value overrides passed to the release manager."""

    release_name: str = ""
    """Explicit release name, empty to derive one from the object."""

    auth_header: SecretKeyRef | None = None
    """Secret key holding the value of the repository Authorization header."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ReleaseRequestSpec":
        """Parse the spec of a HelmRelease."""
        auth_header = None
        if (header := (doc.get("auth") or {}).get("header")) is not None:
            if not (secret_key_ref := header.get("secretKeyRef")):
                raise InputException(
                    f"Invalid spec.auth.header missing secretKeyRef: {doc}"
                )
            auth_header = SecretKeyRef.parse_doc(secret_key_ref)
        values = doc.get("values") or ""
        if not isinstance(values, str):
            raise InputException(f"Invalid spec.values expected a string: {doc}")
        return cls(
            chart_name=doc.get("chartName", ""),
            version=str(doc.get("version") or ""),
            repo_url=doc.get("repoUrl", ""),
            values=values,
            release_name=doc.get("releaseName", ""),
            auth_header=auth_header,
        )

    def to_doc(self) -> dict[str, Any]:
        """Serialize the spec in the format of the custom resource."""
        doc: dict[str, Any] = {}
        if self.repo_url:
            doc["repoUrl"] = self.repo_url
        if self.chart_name:
            doc["chartName"] = self.chart_name
        if self.version:
            doc["version"] = self.version
        if self.values:
            doc["values"] = self.values
        if self.release_name:
            doc["releaseName"] = self.release_name
        if self.auth_header:
            doc["auth"] = {"header": {"secretKeyRef": self.auth_header.to_dict()}}
        return doc


@dataclass(frozen=True)
class ReleaseRequest(BaseManifest):
    """A snapshot of a HelmRelease object."""

    namespace: str
    """The namespace of the object."""

    name: str
    """The name of the object."""

    spec: ReleaseRequestSpec
    """The desired state of the release."""

    finalizers: tuple[str, ...] | None = None
    """Finalizers blocking removal of the object, None when there are none."""

    deletion_timestamp: str | None = None
    """Set by the API server once the object has been marked for deletion."""

    resource_version: str | None = None
    """Optimistic concurrency token of the snapshot."""

    uid: str | None = None
    """Unique id of the object."""

    labels: dict[str, str] | None = None
    """Labels, carried through on updates."""

    annotations: dict[str, str] | None = None
    """Annotations, carried through on updates."""

    raw: dict[str, Any] | None = field(default=None, compare=False, repr=False)
    """The object as returned by the API server.

    Fields not modelled above, such as `ownerReferences` or unknown spec
    keys, are written back unchanged from this document by `to_doc`.
    """

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ReleaseRequest":
        """Parse a ReleaseRequest from a raw kubernetes object."""
        _check_version(doc, HELM_RELEASE_DOMAIN)
        if (kind := doc.get("kind")) != HELM_RELEASE_KIND:
            raise InputException(
                f"Invalid object expected '{HELM_RELEASE_KIND}' but was '{kind}'"
            )
        if not (metadata := doc.get("metadata")):
            raise InputException(f"Invalid object missing metadata: {doc}")
        if not (name := metadata.get("name")):
            raise InputException(f"Invalid object missing metadata.name: {doc}")
        return cls(
            namespace=metadata.get("namespace") or DEFAULT_NAMESPACE,
            name=name,
            spec=ReleaseRequestSpec.parse_doc(doc.get("spec") or {}),
            finalizers=tuple(metadata.get("finalizers") or ()) or None,
            deletion_timestamp=metadata.get("deletionTimestamp"),
            resource_version=metadata.get("resourceVersion"),
            uid=metadata.get("uid"),
            labels=metadata.get("labels"),
            annotations=metadata.get("annotations"),
            raw=copy.deepcopy(doc),
        )

    def to_doc(self) -> dict[str, Any]:
        """Serialize the object in the format accepted by the Kubernetes API.

        The result is a copy of the parsed document with the modelled fields
        replaced, so that an update does not drop anything the controller
        does not know about.
        """
        doc = copy.deepcopy(self.raw) if self.raw else {}
        doc.setdefault("apiVersion", f"{HELM_RELEASE_DOMAIN}/{HELM_RELEASE_VERSION}")
        doc["kind"] = HELM_RELEASE_KIND
        metadata = doc.get("metadata") or {}
        metadata["name"] = self.name
        metadata["namespace"] = self.namespace
        _set_or_pop(metadata, "uid", self.uid)
        _set_or_pop(metadata, "resourceVersion", self.resource_version)
        _set_or_pop(metadata, "labels", self.labels and dict(self.labels))
        _set_or_pop(
            metadata, "annotations", self.annotations and dict(self.annotations)
        )
        _set_or_pop(metadata, "finalizers", self.finalizers and list(self.finalizers))
        _set_or_pop(metadata, "deletionTimestamp", self.deletion_timestamp)
        doc["metadata"] = metadata
        spec = doc.get("spec") or {}
        for key in _SPEC_KEYS:
            spec.pop(key, None)
        spec.update(self.spec.to_doc())
        doc["spec"] = spec
        return doc

    @property
    def resource_id(self) -> NamedResource:
        """Return the identifier of the object."""
        return NamedResource(namespace=self.namespace, name=self.name)

    @property
    def namespaced_name(self) -> str:
        """Return the namespace and name concatenated as an id."""
        return self.resource_id.namespaced_name

    @property
    def release_name(self) -> str:
        """Return the name of the release managed for this object."""
        if self.spec.release_name:
            return self.spec.release_name
        return f"{self.namespace}-{self.name}"

    @property
    def being_deleted(self) -> bool:
        """Return True if the object has been marked for deletion."""
        return self.deletion_timestamp is not None


def meta_namespace_key(obj: ReleaseRequest) -> str:
    """Return the work queue key for the object."""
    return obj.namespaced_name
