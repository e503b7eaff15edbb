"""Fixtures for controller tests."""

from collections.abc import AsyncGenerator, Callable

import httpx
import pytest

from helm_crd.chart_repo import ChartRepositoryClient
from helm_crd.config import ControllerConfig
from helm_crd.controller import Reconciler
from helm_crd.store import InMemoryStore

from . import (
    DEFAULT_REPO_URL,
    REPO_URL,
    FakeChartRepository,
    FakeReleaseManager,
    FakeResourceClient,
)


@pytest.fixture(name="config")
def config_fixture() -> ControllerConfig:
    return ControllerConfig(default_repo_url=DEFAULT_REPO_URL, max_retries=5)


@pytest.fixture(name="store")
def store_fixture() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture(name="resource_client")
def resource_client_fixture() -> FakeResourceClient:
    return FakeResourceClient()


@pytest.fixture(name="release_manager")
def release_manager_fixture() -> FakeReleaseManager:
    return FakeReleaseManager()


@pytest.fixture(name="chart_repo")
def chart_repo_fixture(chart_archive: Callable[..., bytes]) -> FakeChartRepository:
    repo = FakeChartRepository(chart_archive)
    repo.add_repo(DEFAULT_REPO_URL, {"wordpress": ["5.0.0", "5.1.0"]})
    repo.add_repo(
        REPO_URL, {"wordpress": ["4.0.0", "4.1.0-rc.1"], "mariadb": ["2.0.0"]}
    )
    return repo


@pytest.fixture(name="repo_client")
async def repo_client_fixture(
    chart_repo: FakeChartRepository,
) -> AsyncGenerator[ChartRepositoryClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(chart_repo)) as client:
        yield ChartRepositoryClient(client)


@pytest.fixture(name="reconciler")
def reconciler_fixture(
    store: InMemoryStore,
    resource_client: FakeResourceClient,
    repo_client: ChartRepositoryClient,
    release_manager: FakeReleaseManager,
    config: ControllerConfig,
) -> Reconciler:
    return Reconciler(store, resource_client, repo_client, release_manager, config)
