"""
Platform resolution — map the host to a Node.js distribution.

Pure functions: no I/O beyond reading ``platform.system()`` and
``platform.machine()``. Cheap enough to call on every provisioning
request.
"""

from __future__ import annotations

import platform as _platform
from pathlib import Path

from nodestep.core.errors import UnsupportedPlatformError
from nodestep.core.models.runtime import (
    ArchiveFormat,
    DistributionDescriptor,
    PlatformKey,
    RuntimeSpec,
)

# platform.machine() → Node.js arch token
_ARCH_MAP = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv8l": "arm64",
    "armv8": "arm64",
    "armv7l": "armv7l",
    "armv7": "armv7l",
    "i386": "x86",
    "i686": "x86",
    "x86": "x86",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
}


def _os_token(system: str) -> str | None:
    name = system.lower()
    if "windows" in name or name.startswith(("cygwin", "msys", "mingw")):
        return "windows"
    if "darwin" in name or "mac" in name:
        return "darwin"
    if "linux" in name or "freebsd" in name:
        # FreeBSD runs the linux build through its compat layer
        return "linux"
    return None


def resolve_platform(system: str | None = None, machine: str | None = None) -> PlatformKey:
    """Resolve the running OS / CPU into a ``PlatformKey``.

    Args:
        system: Override for ``platform.system()`` (tests).
        machine: Override for ``platform.machine()`` (tests).

    Raises:
        UnsupportedPlatformError: No Node.js build exists for this pair.
    """
    system = system if system is not None else _platform.system()
    machine = machine if machine is not None else _platform.machine()

    os_name = _os_token(system)
    arch = _ARCH_MAP.get(machine.lower())
    if os_name is None or arch is None:
        raise UnsupportedPlatformError(system, machine)

    return PlatformKey(os=os_name, arch=arch)


def archive_format_for(key: PlatformKey) -> ArchiveFormat:
    """Windows builds are zip files, everything else gzip-tar."""
    return ArchiveFormat.ZIP if key.is_windows else ArchiveFormat.TARGZ


def build_descriptor(
    spec: RuntimeSpec,
    key: PlatformKey,
    expected_sha256: str | None = None,
) -> DistributionDescriptor:
    """Describe the archive for ``spec`` on ``key``.

    Layout mirrors nodejs.org::

        <base>/v18.16.0/node-v18.16.0-linux-x64.tar.gz
        <base>/v18.16.0/SHASUMS256.txt

    The install root is ``<working_dir>/<version>/<os>-<arch>``.
    """
    fmt = archive_format_for(key)
    archive_name = f"node-v{spec.version}-{key.dist_os}-{key.arch}.{fmt.extension}"
    release_url = f"{spec.dist_base_url}/v{spec.version}"

    return DistributionDescriptor(
        key=key,
        version=spec.version,
        archive_name=archive_name,
        archive_url=f"{release_url}/{archive_name}",
        archive_format=fmt,
        install_root=Path(spec.working_dir) / spec.version / key.slug,
        checksum_url=f"{release_url}/SHASUMS256.txt",
        checksum_policy=spec.checksum,
        expected_sha256=expected_sha256,
    )
