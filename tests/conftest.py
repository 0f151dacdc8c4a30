"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from fakes import LINUX_X64, DistMirror, build_targz, build_zip
from nodestep.core.models.runtime import PlatformKey
from nodestep.core.services.runtime.platform import resolve_platform


def _host_key() -> PlatformKey | None:
    try:
        return resolve_platform()
    except Exception:
        return None


@pytest.fixture
def host_key() -> PlatformKey:
    """The platform of the machine running the tests."""
    if sys.platform == "win32":
        pytest.skip("fake runtime is a POSIX shell script")
    key = _host_key()
    if key is None:
        pytest.skip("host platform has no Node.js build")
    return key


@pytest.fixture
def dist_mirror(tmp_path: Path) -> DistMirror:
    """Mirror with linux-x64, the host platform and win-x64 archives plus SHASUMS256.txt."""
    mirror = DistMirror(root=tmp_path / "mirror")
    mirror.release_dir.mkdir(parents=True)

    keys = {LINUX_X64}
    host = _host_key()
    if host is not None and not host.is_windows:
        keys.add(host)
    for key in keys:
        mirror.archive(key).write_bytes(build_targz(key))
    mirror.archive(PlatformKey(os="windows", arch="x64")).write_bytes(build_zip())

    mirror.write_shasums()
    return mirror


@pytest.fixture
def posix_only() -> None:
    if sys.platform == "win32":
        pytest.skip("fake runtime is a POSIX shell script")
