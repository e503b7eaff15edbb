"""Library for managing releases through the Helm v2 release manager (Tiller).

The controller talks to Tiller through the `helm` command line client. Every
command is issued with the global `--home` and `--host` flags so the client
uses a private helm home directory and the configured Tiller address.

This is an example that installs a chart fetched from a repository:
```python
from helm_crd.config import HelmConfig
from helm_crd.helm import Helm

helm = Helm(HelmConfig(home=Path("/tmp/helm")))
await helm.bootstrap()
await helm.install(artifact, "default", values="", name="default-my-app")
state = await helm.get_release_state("default-my-app")
```
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import enum
import json
import logging
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os
from mashumaro import DataClassDictMixin
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField
from slugify import slugify

from . import command
from .chart_repo import ChartArtifact
from .config import DEFAULT_TIMEOUT_SECONDS, HelmConfig
from .exceptions import HelmException

__all__ = [
    "Helm",
    "ReleaseManager",
    "ReleaseRevision",
    "ReleaseState",
    "ReleaseStatusCode",
    "bootstrap_helm_home",
    "is_not_found",
]

_LOGGER = logging.getLogger(__name__)


HELM_BIN = "helm"
NOT_FOUND = "not found"
REPOSITORY_FILE_CONTENT = "apiVersion: v1\nrepositories: []"


class ReleaseStatusCode(enum.IntEnum):
    """Status of a release as reported by Tiller."""

    UNKNOWN = 0
    DEPLOYED = 1
    DELETED = 2
    SUPERSEDED = 3
    FAILED = 4
    DELETING = 5
    PENDING_INSTALL = 6
    PENDING_UPGRADE = 7
    PENDING_ROLLBACK = 8

    @classmethod
    def parse(cls, value: Any) -> "ReleaseStatusCode":
        """Parse a status code reported either by number or by name."""
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                return cls.UNKNOWN
        if isinstance(value, str):
            return cls.__members__.get(value.upper(), cls.UNKNOWN)
        return cls.UNKNOWN


@dataclass(frozen=True)
class ReleaseState:
    """Observed state of a release, used for logging after a reconcile."""

    found: bool
    """True if the release manager knows about the release."""

    name: str
    """Name of the release."""

    status: ReleaseStatusCode | None = None
    """Status of the release when it was found."""


@dataclass
class ReleaseRevision(DataClassDictMixin):
    """A single entry of the revision history of a release."""

    revision: int
    """The revision number."""

    status: str | None = None
    """Status of the revision, e.g. DEPLOYED or SUPERSEDED."""

    chart: str | None = None
    """Name and version of the chart used by the revision."""

    description: str | None = None
    """Human readable description of the revision."""

    updated: str | None = None
    """Time the revision was last updated."""

    class Config(BaseConfig):
        omit_none = True


def is_not_found(err: BaseException) -> bool:
    """Return True if the error reports that a release does not exist."""
    return NOT_FOUND in str(err)


async def bootstrap_helm_home(home: Path) -> None:
    """Create a helm home directory sufficient for the helm client."""
    _LOGGER.debug("Preparing helm home %s", home)
    for path in (
        home / "cache" / "archive",
        home / "repository",
        home / "repository" / "cache",
    ):
        await aiofiles.os.makedirs(path, exist_ok=True)
    async with aiofiles.open(
        home / "repository" / "repositories.yaml", mode="w"
    ) as repo_file:
        await repo_file.write(REPOSITORY_FILE_CONTENT)


class ReleaseManager(ABC):
    """Interface to the system that installs and tracks releases."""

    @abstractmethod
    async def install(
        self, artifact: ChartArtifact, namespace: str, values: str, name: str
    ) -> None:
        """Install a new release of the chart into the namespace."""

    @abstractmethod
    async def update(self, name: str, artifact: ChartArtifact, values: str) -> None:
        """Upgrade an existing release to the chart."""

    @abstractmethod
    async def history(
        self, name: str, max_revisions: int = 1
    ) -> list[ReleaseRevision]:
        """Return the most recent revisions of a release.

        Raises an error satisfying `is_not_found` when the release does not
        exist.
        """

    @abstractmethod
    async def status(self, name: str) -> ReleaseStatusCode:
        """Return the status of a release."""

    @abstractmethod
    async def delete(self, name: str, purge: bool = True) -> None:
        """Delete a release, removing its history when purging."""

    async def bootstrap(self) -> None:
        """Prepare any local state needed before issuing commands."""

    async def get_release_state(self, name: str) -> ReleaseState:
        """Return the observed state of a release."""
        try:
            status = await self.status(name)
        except HelmException as err:
            if not is_not_found(err):
                raise
            return ReleaseState(found=False, name=name)
        return ReleaseState(found=True, name=name, status=status)


class Helm(ReleaseManager):
    """Release manager driving the helm command line client."""

    def __init__(
        self, config: HelmConfig, timeout: float = DEFAULT_TIMEOUT_SECONDS
    ) -> None:
        """Initialize Helm."""
        self._home = config.home
        self._archive_dir = config.home / "cache" / "archive"
        self._timeout = timeout
        self._flags = ["--home", str(config.home)]
        if config.host:
            self._flags.extend(["--host", config.host])

    async def bootstrap(self) -> None:
        """Prepare the helm home directory."""
        await bootstrap_helm_home(self._home)

    async def _run(self, args: list[str]) -> str:
        cmd = command.Command(
            [HELM_BIN, *args, *self._flags],
            exc=HelmException,
            timeout=self._timeout,
        )
        return await command.run(cmd)

    async def _write_chart(self, name: str, artifact: ChartArtifact) -> Path:
        """Write the chart archive where the helm client can read it."""
        await aiofiles.os.makedirs(self._archive_dir, exist_ok=True)
        filename = f"{slugify(name)}-{slugify(artifact.chart_name)}.tgz"
        chart_path = self._archive_dir / filename
        async with aiofiles.open(chart_path, mode="wb") as chart_file:
            await chart_file.write(artifact.archive)
        return chart_path

    async def _values_args(self, name: str, values: str) -> list[str]:
        """Write the value overrides to a file and return the flags to use it."""
        if not values:
            return []
        values_path = self._archive_dir / f"{slugify(name)}-values.yaml"
        async with aiofiles.open(values_path, mode="w") as values_file:
            await values_file.write(values)
        return ["--values", str(values_path)]

    async def install(
        self, artifact: ChartArtifact, namespace: str, values: str, name: str
    ) -> None:
        """Install a new release of the chart into the namespace."""
        chart_path = await self._write_chart(name, artifact)
        args = [
            "install",
            str(chart_path),
            "--name",
            name,
            "--namespace",
            namespace,
        ]
        args.extend(await self._values_args(name, values))
        await self._run(args)

    async def update(self, name: str, artifact: ChartArtifact, values: str) -> None:
        """Upgrade an existing release to the chart."""
        chart_path = await self._write_chart(name, artifact)
        args = ["upgrade", name, str(chart_path)]
        args.extend(await self._values_args(name, values))
        await self._run(args)

    async def history(
        self, name: str, max_revisions: int = 1
    ) -> list[ReleaseRevision]:
        """Return the most recent revisions of a release."""
        out = await self._run(
            ["history", name, "--max", str(max_revisions), "--output", "json"]
        )
        try:
            doc = json.loads(out) if out.strip() else []
            return [ReleaseRevision.from_dict(entry) for entry in doc]
        except (ValueError, TypeError, MissingField, InvalidFieldValue) as err:
            raise HelmException(
                f"Unable to parse history of release {name}: {err}"
            ) from err

    async def status(self, name: str) -> ReleaseStatusCode:
        """Return the status of a release."""
        out = await self._run(["status", name, "--output", "json"])
        try:
            doc = json.loads(out)
        except ValueError as err:
            raise HelmException(
                f"Unable to parse status of release {name}: {err}"
            ) from err
        if not isinstance(doc, dict):
            raise HelmException(f"Unable to parse status of release {name}: {doc}")
        code = ((doc.get("info") or {}).get("status") or {}).get("code")
        return ReleaseStatusCode.parse(code)

    async def delete(self, name: str, purge: bool = True) -> None:
        """Delete a release, removing its history when purging."""
        args = ["delete", name]
        if purge:
            args.append("--purge")
        await self._run(args)
