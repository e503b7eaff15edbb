"""Tests for helm library."""

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from helm_crd import command
from helm_crd.chart_repo import ChartArtifact, load_archive
from helm_crd.config import HelmConfig
from helm_crd.exceptions import HelmException
from helm_crd.helm import (
    Helm,
    ReleaseState,
    ReleaseStatusCode,
    bootstrap_helm_home,
    is_not_found,
)


class FakeCommands:
    """Records helm commands and replies with canned output."""

    def __init__(self) -> None:
        self.commands: list[command.Command] = []
        self.responses: list[str | Exception] = []

    async def run(self, cmd: command.Command) -> str:
        self.commands.append(cmd)
        if not self.responses:
            return ""
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(name="commands")
def commands_fixture(monkeypatch: pytest.MonkeyPatch) -> FakeCommands:
    """Fixture replacing command execution with a fake."""
    fake = FakeCommands()
    monkeypatch.setattr(command, "run", fake.run)
    return fake


@pytest.fixture(name="helm_home")
def helm_home_fixture(tmp_path: Path) -> Path:
    return tmp_path / "helm"


@pytest.fixture(name="helm")
def helm_fixture(helm_home: Path) -> Helm:
    """Fixture for creating the Helm object."""
    return Helm(HelmConfig(home=helm_home, host="tiller.kube-system:44134"))


@pytest.fixture(name="artifact")
def artifact_fixture(chart_archive: Callable[..., bytes]) -> ChartArtifact:
    return load_archive(chart_archive("wordpress", "5.1.0"))


async def test_bootstrap(helm_home: Path) -> None:
    """Test preparing the helm home directory."""
    await bootstrap_helm_home(helm_home)
    assert (helm_home / "cache" / "archive").is_dir()
    assert (helm_home / "repository" / "cache").is_dir()
    repo_file = helm_home / "repository" / "repositories.yaml"
    assert repo_file.read_text() == "apiVersion: v1\nrepositories: []"

    # Safe to call again
    await bootstrap_helm_home(helm_home)


async def test_install(
    helm: Helm, helm_home: Path, commands: FakeCommands, artifact: ChartArtifact
) -> None:
    """Test installing a release writes the chart and values."""
    await helm.install(artifact, "default", "replicas: 2\n", "default-my-app")

    assert len(commands.commands) == 1
    cmd = commands.commands[0]
    assert cmd.exc is HelmException
    args = cmd.cmd
    assert args[:2] == ["helm", "install"]
    chart_path = Path(args[2])
    assert chart_path.parent == helm_home / "cache" / "archive"
    assert chart_path.read_bytes() == artifact.archive
    assert args[3:7] == ["--name", "default-my-app", "--namespace", "default"]
    assert args[7] == "--values"
    assert Path(args[8]).read_text() == "replicas: 2\n"
    assert args[9:] == ["--home", str(helm_home), "--host", "tiller.kube-system:44134"]


async def test_update_without_values(
    helm: Helm, helm_home: Path, commands: FakeCommands, artifact: ChartArtifact
) -> None:
    """Test upgrading a release without value overrides."""
    await helm.update("default-my-app", artifact, "")

    args = commands.commands[0].cmd
    assert args[:3] == ["helm", "upgrade", "default-my-app"]
    assert args[3].endswith(".tgz")
    assert "--values" not in args
    assert args[4:6] == ["--home", str(helm_home)]


async def test_history(helm: Helm, commands: FakeCommands) -> None:
    """Test parsing the history of a release."""
    commands.responses.append(
        json.dumps(
            [
                {
                    "revision": 3,
                    "updated": "Mon Jan  1 00:00:00 2018",
                    "status": "DEPLOYED",
                    "chart": "wordpress-5.1.0",
                    "description": "Upgrade complete",
                }
            ]
        )
    )
    history = await helm.history("default-my-app")
    assert len(history) == 1
    assert history[0].revision == 3
    assert history[0].chart == "wordpress-5.1.0"
    assert commands.commands[0].cmd[1:6] == [
        "history",
        "default-my-app",
        "--max",
        "1",
        "--output",
    ]


async def test_history_not_found(helm: Helm, commands: FakeCommands) -> None:
    """Test a missing release is reported as not found."""
    commands.responses.append(HelmException('Error: release: "x" not found'))
    with pytest.raises(HelmException) as exc_info:
        await helm.history("x")
    assert is_not_found(exc_info.value)


@pytest.mark.parametrize(
    ("code", "expected"),
    [
        (1, ReleaseStatusCode.DEPLOYED),
        ("FAILED", ReleaseStatusCode.FAILED),
        ("pending_install", ReleaseStatusCode.PENDING_INSTALL),
        (42, ReleaseStatusCode.UNKNOWN),
        (None, ReleaseStatusCode.UNKNOWN),
    ],
)
async def test_status(
    helm: Helm, commands: FakeCommands, code: Any, expected: ReleaseStatusCode
) -> None:
    """Test parsing the status of a release."""
    commands.responses.append(
        json.dumps({"name": "a", "info": {"status": {"code": code}}})
    )
    assert await helm.status("a") == expected


async def test_get_release_state(helm: Helm, commands: FakeCommands) -> None:
    """Test the observed state of found and missing releases."""
    commands.responses.append(json.dumps({"info": {"status": {"code": 1}}}))
    commands.responses.append(HelmException('Error: release: "b" not found'))
    assert await helm.get_release_state("a") == ReleaseState(
        found=True, name="a", status=ReleaseStatusCode.DEPLOYED
    )
    assert await helm.get_release_state("b") == ReleaseState(found=False, name="b")


async def test_get_release_state_error(helm: Helm, commands: FakeCommands) -> None:
    """Test errors other than a missing release are raised."""
    commands.responses.append(HelmException("transport is closing"))
    with pytest.raises(HelmException, match="transport is closing"):
        await helm.get_release_state("a")


async def test_delete(helm: Helm, commands: FakeCommands) -> None:
    """Test deleting and purging a release."""
    await helm.delete("default-my-app")
    await helm.delete("other", purge=False)
    assert commands.commands[0].cmd[1:4] == ["delete", "default-my-app", "--purge"]
    assert commands.commands[1].cmd[1:3] == ["delete", "other"]
    assert "--purge" not in commands.commands[1].cmd


def test_is_not_found() -> None:
    """Test classifying release manager errors."""
    assert is_not_found(HelmException('release: "a" not found'))
    assert not is_not_found(HelmException("connection refused"))
