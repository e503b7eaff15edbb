"""Command line tool running the HelmRelease controller."""

import argparse
import asyncio
import logging
import os
from pathlib import Path
import signal
import sys
import traceback

from kubernetes_asyncio import client, config as kube_config
from kubernetes_asyncio.config import ConfigException

from helm_crd.chart_repo import ChartRepositoryClient
from helm_crd.config import ControllerConfig
from helm_crd.controller import Reconciler, ReleaseRequestController
from helm_crd.exceptions import HelmCrdException
from helm_crd.helm import Helm
from helm_crd.kube import KubeListWatch, KubeResourceClient
from helm_crd.store import InMemoryStore, Informer
from helm_crd.task import task_service_context

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Controller installing charts requested by HelmRelease objects.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
    )
    parser.add_argument(
        "--kubeconfig",
        default=os.environ.get("KUBECONFIG"),
        help="Path to a kubeconfig file, used when not running in a cluster.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of HelmRelease objects reconciled concurrently.",
    )
    parser.add_argument(
        "--helm-home",
        default=None,
        help="Local helm home directory. Defaults to $HELM_HOME or ~/.helm.",
    )
    parser.add_argument(
        "--tiller-host",
        default=None,
        help="Address of Tiller. Defaults to $HELM_HOST or $TILLER_HOST.",
    )
    parser.add_argument(
        "--default-repo-url",
        default=None,
        help="Chart repository used when a HelmRelease does not set repoUrl.",
    )
    return parser


def _build_config(args: argparse.Namespace) -> ControllerConfig:
    """Build the controller configuration from the environment and flags."""
    config = ControllerConfig.from_env()
    if args.workers is not None:
        if args.workers < 1:
            raise HelmCrdException("--workers must be at least 1")
        config.workers = args.workers
    if args.helm_home:
        config.helm.home = Path(args.helm_home).expanduser()
    if args.tiller_host:
        config.helm.host = args.tiller_host
    if args.default_repo_url:
        config.default_repo_url = args.default_repo_url
    return config


async def _load_kube_config(kubeconfig: str | None) -> None:
    """Load in-cluster credentials, falling back to a kubeconfig file."""
    try:
        kube_config.load_incluster_config()
        _LOGGER.debug("Using in-cluster configuration")
    except ConfigException:
        _LOGGER.debug("Not running in a cluster, loading kubeconfig")
        await kube_config.load_kube_config(config_file=kubeconfig)


async def run(config: ControllerConfig, kubeconfig: str | None) -> None:
    """Run the controller until interrupted."""
    await _load_kube_config(kubeconfig)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with client.ApiClient() as api_client, ChartRepositoryClient(
        timeout=config.timeout
    ) as repo_client:
        store = InMemoryStore()
        informer = Informer(KubeListWatch(api_client, timeout=config.timeout), store)
        reconciler = Reconciler(
            store,
            KubeResourceClient(api_client, timeout=config.timeout),
            repo_client,
            Helm(config.helm, timeout=config.timeout),
            config,
        )
        controller = ReleaseRequestController(informer, reconciler, config)
        with task_service_context():
            await controller.run(stop_event)


def main() -> None:
    """HelmRelease controller main entry point."""
    parser = _make_parser()
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level)

    try:
        config = _build_config(args)
        asyncio.run(run(config, args.kubeconfig))
    except (HelmCrdException, ConfigException) as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("helm-crd-controller error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
