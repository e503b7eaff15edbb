"""Chart artifact types.

A chart is distributed as a gzipped tar archive containing a single top level
directory named after the chart with a `Chart.yaml` describing it.
"""

from dataclasses import dataclass, field
import io
import logging
import tarfile
from typing import Any
import zlib

from mashumaro import DataClassDictMixin, field_options
from mashumaro.exceptions import InvalidFieldValue, MissingField
import yaml

from helm_crd.exceptions import DecodeError

__all__ = [
    "ChartMetadata",
    "ChartArtifact",
    "load_archive",
]

_LOGGER = logging.getLogger(__name__)

CHART_FILE = "Chart.yaml"


@dataclass(frozen=True)
class ChartMetadata(DataClassDictMixin):
    """Contents of the Chart.yaml file of a chart."""

    name: str
    """The name of the chart."""

    version: str
    """The version of the chart."""

    api_version: str | None = field(
        default=None, metadata=field_options(alias="apiVersion")
    )
    app_version: str | None = field(
        default=None, metadata=field_options(alias="appVersion")
    )
    description: str | None = None

    @classmethod
    def __pre_deserialize__(cls, d: dict[Any, Any]) -> dict[Any, Any]:
        d = dict(d)
        for key in ("version", "appVersion"):
            if d.get(key) is not None:
                d[key] = str(d[key])
        return d


@dataclass(frozen=True, kw_only=True)
class ChartArtifact:
    """A chart archive loaded in memory, ready to hand to the release manager."""

    metadata: ChartMetadata
    """Chart metadata read from the archive."""

    files: list[str]
    """Paths of the files in the archive, relative to the chart directory."""

    archive: bytes = field(repr=False)
    """The raw chart archive."""

    @property
    def chart_name(self) -> str:
        """Name and version of the chart for informational purposes."""
        return f"{self.metadata.name}-{self.metadata.version}"


def load_archive(data: bytes) -> ChartArtifact:
    """Decode a chart archive."""
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as archive:
            members = [member for member in archive.getmembers() if member.isfile()]
            chart_file = next(
                (
                    member
                    for member in members
                    if member.name.count("/") == 1
                    and member.name.endswith(f"/{CHART_FILE}")
                ),
                None,
            )
            if chart_file is None:
                raise DecodeError(f"Chart archive does not contain {CHART_FILE}")
            chart_dir = chart_file.name.split("/")[0]
            if (content := archive.extractfile(chart_file)) is None:
                raise DecodeError(f"Unable to read {chart_file.name} from archive")
            chart_yaml = content.read()
    except (tarfile.TarError, EOFError, zlib.error) as err:
        raise DecodeError(f"Invalid chart archive: {err}") from err

    try:
        doc = yaml.safe_load(chart_yaml)
    except yaml.YAMLError as err:
        raise DecodeError(f"Invalid {CHART_FILE}: {err}") from err
    if not isinstance(doc, dict):
        raise DecodeError(f"Invalid {CHART_FILE}: expected a mapping")
    try:
        metadata = ChartMetadata.from_dict(doc)
    except (MissingField, InvalidFieldValue) as err:
        raise DecodeError(f"Invalid {CHART_FILE}: {err}") from err

    files = [
        member.name[len(chart_dir) + 1 :]
        for member in members
        if member.name.startswith(f"{chart_dir}/")
    ]
    _LOGGER.debug(
        "Loaded chart %s-%s (%d files)", metadata.name, metadata.version, len(files)
    )
    return ChartArtifact(metadata=metadata, files=files, archive=data)
