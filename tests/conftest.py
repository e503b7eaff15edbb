"""Shared fixtures for helm-crd tests."""

from collections.abc import Callable
import io
import tarfile
from typing import Any

import pytest
import yaml

from helm_crd.manifest import ReleaseRequest

ChartArchiveFactory = Callable[..., bytes]


def _make_chart_archive(
    name: str, version: str, files: dict[str, str] | None = None
) -> bytes:
    buf = io.BytesIO()
    chart_yaml = yaml.dump(
        {"apiVersion": "v1", "name": name, "version": version}, sort_keys=False
    )
    contents = {"Chart.yaml": chart_yaml, **(files or {})}
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        for path, content in contents.items():
            data = content.encode()
            info = tarfile.TarInfo(f"{name}/{path}")
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buf.getvalue()


@pytest.fixture(name="chart_archive")
def chart_archive_fixture() -> ChartArchiveFactory:
    """Fixture returning a function that builds a gzipped chart archive."""
    return _make_chart_archive


def _make_release_doc(
    name: str = "my-app",
    namespace: str = "default",
    spec: dict[str, Any] | None = None,
    finalizers: list[str] | None = None,
    deletion_timestamp: str | None = None,
    resource_version: str = "1",
) -> dict[str, Any]:
    metadata: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "resourceVersion": resource_version,
    }
    if finalizers:
        metadata["finalizers"] = finalizers
    if deletion_timestamp:
        metadata["deletionTimestamp"] = deletion_timestamp
    return {
        "apiVersion": "helm.bitnami.com/v1",
        "kind": "HelmRelease",
        "metadata": metadata,
        "spec": spec if spec is not None else {"chartName": "wordpress"},
    }


@pytest.fixture(name="release_doc")
def release_doc_fixture() -> Callable[..., dict[str, Any]]:
    """Fixture returning a function that builds a raw HelmRelease object."""
    return _make_release_doc


@pytest.fixture(name="release_request")
def release_request_fixture() -> Callable[..., ReleaseRequest]:
    """Fixture returning a function that builds a ReleaseRequest."""

    def _make(**kwargs: Any) -> ReleaseRequest:
        return ReleaseRequest.parse_doc(_make_release_doc(**kwargs))

    return _make
