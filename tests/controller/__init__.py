"""Fakes for controller tests."""

from collections.abc import Callable
import dataclasses
from typing import Any

import httpx
import yaml

from helm_crd.chart_repo import ChartArtifact
from helm_crd.exceptions import HelmException
from helm_crd.helm import ReleaseManager, ReleaseRevision, ReleaseStatusCode
from helm_crd.kube import ResourceClient
from helm_crd.manifest import ReleaseRequest

REPO_URL = "https://charts.example.com/stable"
DEFAULT_REPO_URL = "https://charts.default.example.com"


class FakeResourceClient(ResourceClient):
    """ResourceClient recording updates and serving secrets from a dict."""

    def __init__(self) -> None:
        self.updates: list[ReleaseRequest] = []
        self.secrets: dict[tuple[str, str, str], str] = {}
        self.update_error: Exception | None = None

    async def update_release_request(self, obj: ReleaseRequest) -> ReleaseRequest:
        if self.update_error is not None:
            raise self.update_error
        self.updates.append(obj)
        version = int(obj.resource_version or "0") + 1
        return dataclasses.replace(obj, resource_version=str(version))

    async def get_secret_value(self, namespace: str, name: str, key: str) -> str:
        return self.secrets[(namespace, name, key)]


class FakeReleaseManager(ReleaseManager):
    """ReleaseManager keeping releases in memory and recording calls."""

    def __init__(self) -> None:
        self.releases: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[Any, ...]] = []
        self.bootstrapped = False
        self.install_error: Exception | None = None
        self.history_error: Exception | None = None

    def _not_found(self, name: str) -> HelmException:
        return HelmException(f"Error: release: {name!r} not found")

    async def bootstrap(self) -> None:
        self.bootstrapped = True

    async def install(
        self, artifact: ChartArtifact, namespace: str, values: str, name: str
    ) -> None:
        self.calls.append(("install", name, namespace, artifact.chart_name, values))
        if self.install_error is not None:
            raise self.install_error
        self.releases[name] = {
            "namespace": namespace,
            "chart": artifact.chart_name,
            "values": values,
            "revision": 1,
        }

    async def update(self, name: str, artifact: ChartArtifact, values: str) -> None:
        self.calls.append(("update", name, artifact.chart_name, values))
        release = self.releases[name]
        release["chart"] = artifact.chart_name
        release["values"] = values
        release["revision"] += 1

    async def history(
        self, name: str, max_revisions: int = 1
    ) -> list[ReleaseRevision]:
        if self.history_error is not None:
            raise self.history_error
        if (release := self.releases.get(name)) is None:
            raise self._not_found(name)
        return [
            ReleaseRevision(
                revision=release["revision"],
                status="DEPLOYED",
                chart=release["chart"],
            )
        ]

    async def status(self, name: str) -> ReleaseStatusCode:
        if name not in self.releases:
            raise self._not_found(name)
        return ReleaseStatusCode.DEPLOYED

    async def delete(self, name: str, purge: bool = True) -> None:
        self.calls.append(("delete", name, purge))
        if self.releases.pop(name, None) is None:
            raise self._not_found(name)


class FakeChartRepository:
    """HTTP handler serving a chart repository from memory."""

    def __init__(self, chart_archive: Callable[..., bytes]) -> None:
        self._chart_archive = chart_archive
        self.files: dict[str, bytes] = {}
        self.requests: list[httpx.Request] = []

    def add_repo(self, repo_url: str, charts: dict[str, list[str]]) -> None:
        """Publish an index and archives for the chart versions."""
        entries: dict[str, list[dict[str, Any]]] = {}
        for name, versions in charts.items():
            for version in versions:
                filename = f"{name}-{version}.tgz"
                entries.setdefault(name, []).append(
                    {"name": name, "version": version, "urls": [filename]}
                )
                self.files[f"{repo_url}/{filename}"] = self._chart_archive(
                    name, version
                )
        self.files[f"{repo_url}/index.yaml"] = yaml.dump(
            {"apiVersion": "v1", "entries": entries}
        ).encode()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if (content := self.files.get(str(request.url))) is None:
            return httpx.Response(404, content=b"not found")
        return httpx.Response(200, content=content)
