"""Exceptions related to helm-crd."""

__all__ = [
    "HelmCrdException",
    "InputException",
    "TransientIOError",
    "TransportError",
    "HTTPStatusError",
    "ResourceStoreException",
    "StoreConflictError",
    "ResourceExpiredError",
    "ResolutionError",
    "ChartNotFoundError",
    "NoDownloadLocationError",
    "InvalidURIError",
    "DecodeError",
    "CommandException",
    "HelmException",
]


class HelmCrdException(Exception):
    """Generic base exception used for this library."""


class InputException(HelmCrdException):
    """Raised when a resource or secret is not formatted as expected."""


class TransientIOError(HelmCrdException):
    """Raised when a network call fails in a way that may succeed later."""


class TransportError(TransientIOError):
    """Raised when a request could not be sent or the response not received."""


class HTTPStatusError(TransientIOError):
    """Raised when a repository responds with a non-200 status code."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"Request for {url} failed with status {status_code}")
        self.url = url
        self.status_code = status_code


class ResourceStoreException(HelmCrdException):
    """Raised when a call to the Kubernetes API fails."""


class StoreConflictError(ResourceStoreException):
    """Raised when an update is rejected due to a stale resource version."""


class ResourceExpiredError(ResourceStoreException):
    """Raised when a watch resource version is too old and a relist is needed."""


class ResolutionError(HelmCrdException):
    """Raised when a chart cannot be located in a repository."""


class ChartNotFoundError(ResolutionError):
    """Raised when a chart name or version is not present in the index."""


class NoDownloadLocationError(ResolutionError):
    """Raised when a chart version in the index has no download URLs."""


class InvalidURIError(ResolutionError):
    """Raised when a repository or chart location is not a valid URI."""


class DecodeError(HelmCrdException):
    """Raised when a repository index or chart archive is malformed."""


class CommandException(HelmCrdException):
    """Raised when there is a failure running a subcommand."""


class HelmException(CommandException):
    """Raised when there is a failure running a helm command."""
