"""Configuration objects for helm-crd."""

from collections.abc import Mapping
from dataclasses import dataclass, field
import os
from pathlib import Path

__all__ = [
    "ControllerConfig",
    "HelmConfig",
]

DEFAULT_REPO_URL = "https://kubernetes-charts.storage.googleapis.com"
DEFAULT_NAMESPACE = "kube-system"
DEFAULT_TIMEOUT_SECONDS = 180.0
MAX_RETRIES = 5
INDEX_FILE = "index.yaml"
DEFAULT_HELM_HOME = "~/.helm"


@dataclass
class HelmConfig:
    """Configuration for the helm client used to talk to Tiller."""

    home: Path = field(default_factory=lambda: Path(DEFAULT_HELM_HOME).expanduser())
    """Local helm home directory, passed as `--home`."""

    host: str | None = None
    """Address of Tiller, passed as `--host`. Uses helm defaults when unset."""


@dataclass
class ControllerConfig:
    """Configuration for the HelmRelease controller."""

    default_repo_url: str = DEFAULT_REPO_URL
    """Chart repository used when a HelmRelease does not specify one."""

    secret_namespace: str = DEFAULT_NAMESPACE
    """Namespace holding the secrets referenced for repository auth."""

    timeout: float = DEFAULT_TIMEOUT_SECONDS
    """Timeout in seconds for every outbound network call."""

    max_retries: int = MAX_RETRIES
    """Number of rate limited retries before a key is abandoned."""

    workers: int = 1
    """Number of concurrent workers draining the queue."""

    helm: HelmConfig = field(default_factory=HelmConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ControllerConfig":
        """Build a configuration from environment variables."""
        if environ is None:
            environ = os.environ
        helm = HelmConfig(
            home=Path(environ.get("HELM_HOME") or DEFAULT_HELM_HOME).expanduser(),
            host=environ.get("HELM_HOST") or environ.get("TILLER_HOST") or None,
        )
        return cls(
            secret_namespace=environ.get("POD_NAMESPACE") or DEFAULT_NAMESPACE,
            helm=helm,
        )
