"""Chart repository package.

This package resolves a chart name and version constraint to a chart archive
by reading the index of a chart repository and downloading the archive it
points to.
"""

from .artifact import ChartArtifact, ChartMetadata, load_archive
from .client import ChartRepositoryClient
from .index import (
    ChartIndex,
    ChartVersion,
    find_entry,
    repo_index_url,
    resolve_location,
)

__all__ = [
    "ChartArtifact",
    "ChartIndex",
    "ChartMetadata",
    "ChartRepositoryClient",
    "ChartVersion",
    "find_entry",
    "load_archive",
    "repo_index_url",
    "resolve_location",
]
