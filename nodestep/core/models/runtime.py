"""
Runtime models — what to provision, for which platform, and the result.

A ``RuntimeSpec`` comes from configuration. The platform resolver turns
it (plus the host's ``PlatformKey``) into a ``DistributionDescriptor``
that the downloader and extractor consume. Provisioning ends with a
``RuntimeHandle`` that everything downstream reads paths from.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_NODE_VERSION = "18.16.0"
DEFAULT_DIST_BASE_URL = "https://nodejs.org/dist"

ChecksumPolicy = Literal["best_effort", "strict", "off"]


class ArchiveFormat(str, Enum):
    """Container formats Node.js distributions ship in."""

    ZIP = "zip"
    TARGZ = "targz"

    @property
    def extension(self) -> str:
        return "zip" if self is ArchiveFormat.ZIP else "tar.gz"


class RuntimeSpec(BaseModel):
    """Which Node.js to use and where to cache it.

    Loaded from the ``node:`` block of nodestep.yml. Immutable once built.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    version: str = DEFAULT_NODE_VERSION
    download: bool = False
    working_dir: Path = Path(".nodestep/nodejs")
    dist_base_url: str = DEFAULT_DIST_BASE_URL
    checksum: ChecksumPolicy = "best_effort"

    @field_validator("version")
    @classmethod
    def _strip_v_prefix(cls, value: str) -> str:
        value = value.strip()
        if value.startswith("v"):
            value = value[1:]
        if not value:
            raise ValueError("version must not be empty")
        return value

    @field_validator("dist_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def major_minor(self) -> tuple[str, ...]:
        """First two version components, used to match a system runtime."""
        return tuple(self.version.split(".")[:2])


class PlatformKey(BaseModel):
    """Canonical OS / CPU pair of the running host."""

    model_config = ConfigDict(frozen=True)

    os: Literal["linux", "darwin", "windows"]
    arch: Literal["x64", "arm64", "x86", "armv7l", "ppc64le", "s390x"]

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    @property
    def dist_os(self) -> str:
        """OS token used in nodejs.org archive names."""
        return "win" if self.is_windows else self.os

    @property
    def slug(self) -> str:
        """Directory name of the cache entry, e.g. ``linux-x64``."""
        return f"{self.os}-{self.arch}"

    def executable(self, name: str) -> str:
        """Native executable file name (``node`` → ``node.exe`` on Windows)."""
        return f"{name}.exe" if self.is_windows else name

    def command(self, name: str) -> str:
        """Native script shim name (``pnpm`` → ``pnpm.cmd`` on Windows)."""
        return f"{name}.cmd" if self.is_windows else name


class DistributionDescriptor(BaseModel):
    """Everything needed to fetch and unpack one Node.js distribution."""

    model_config = ConfigDict(frozen=True)

    key: PlatformKey
    version: str
    archive_name: str
    archive_url: str
    archive_format: ArchiveFormat
    install_root: Path
    checksum_url: str = ""
    checksum_policy: ChecksumPolicy = "best_effort"
    expected_sha256: str | None = None

    @property
    def cache_key(self) -> str:
        """Mutual-exclusion key: one per (version, platform)."""
        return f"{self.version}/{self.key.slug}"

    @property
    def archive_path(self) -> Path:
        """Where the downloaded archive lives, next to the install root."""
        return self.install_root.parent / self.archive_name


class RuntimeHandle(BaseModel):
    """A ready-to-use Node.js runtime.

    For downloaded runtimes the bundled npm/npx are run as
    ``node <script>``; for system runtimes the ``npm``/``npx`` commands
    found on PATH are used directly.
    """

    model_config = ConfigDict(frozen=True)

    version: str | None = None
    source: Literal["download", "system"]
    node_path: str
    home: Path | None = None
    bin_dir: Path | None = None
    npm_script: Path | None = None
    npx_script: Path | None = None
    npm_command: str | None = None
    npx_command: str | None = None

    @property
    def downloaded(self) -> bool:
        return self.source == "download"

    def path_entries(self) -> list[str]:
        """Directories to put on PATH so child processes find this node."""
        if self.bin_dir is None:
            return []
        return [str(self.bin_dir)]
