"""Client for fetching indexes and charts from a chart repository."""

import logging
from types import TracebackType

import httpx
from mashumaro.exceptions import InvalidFieldValue, MissingField
import yaml

from helm_crd.config import DEFAULT_TIMEOUT_SECONDS
from helm_crd.exceptions import (
    DecodeError,
    HTTPStatusError,
    InvalidURIError,
    TransportError,
)

from .artifact import ChartArtifact, load_archive
from .index import ChartIndex, check_absolute_uri

__all__ = [
    "ChartRepositoryClient",
]

_LOGGER = logging.getLogger(__name__)


class ChartRepositoryClient:
    """Fetches repository indexes and chart archives over HTTP."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize ChartRepositoryClient.

        Args:
            client: An existing client to use, e.g. with a custom transport.
              A client created here is closed by `aclose`.
            timeout: Timeout in seconds for each request.
        """
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout, follow_redirects=True
        )
        self._timeout = timeout

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ChartRepositoryClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def _fetch(self, url: str, auth_header: str) -> bytes:
        """Issue a GET request and return the response body."""
        url = check_absolute_uri(url)
        headers = {}
        if auth_header:
            headers["Authorization"] = auth_header
        try:
            response = await self._client.get(
                url, headers=headers, timeout=self._timeout
            )
        except httpx.InvalidURL as err:
            raise InvalidURIError(f"Invalid URI {url!r}: {err}") from err
        except httpx.HTTPError as err:
            raise TransportError(f"Request for {url} failed: {err}") from err
        if response.status_code != httpx.codes.OK:
            raise HTTPStatusError(url, response.status_code)
        return response.content

    async def fetch_index(self, index_url: str, auth_header: str = "") -> ChartIndex:
        """Fetch and parse a repository index, sorted for lookup."""
        _LOGGER.info("Downloading repo %s index...", index_url)
        body = await self._fetch(index_url, auth_header)
        try:
            doc = yaml.safe_load(body)
        except yaml.YAMLError as err:
            raise DecodeError(f"Invalid repository index {index_url}: {err}") from err
        if not isinstance(doc, dict):
            raise DecodeError(
                f"Invalid repository index {index_url}: expected a mapping"
            )
        try:
            index = ChartIndex.from_dict(doc)
        except (MissingField, InvalidFieldValue, AttributeError, TypeError) as err:
            raise DecodeError(f"Invalid repository index {index_url}: {err}") from err
        index.sort_entries()
        return index

    async def fetch_artifact(self, url: str, auth_header: str = "") -> ChartArtifact:
        """Download and load a chart archive."""
        _LOGGER.info("Downloading %s ...", url)
        body = await self._fetch(url, auth_header)
        return load_archive(body)
