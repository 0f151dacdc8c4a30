"""
Runtime extraction — unpack an archive into a versioned cache entry.

Extraction happens in a sibling staging directory. Only a complete,
validated tree is renamed to its final place, so a half-extracted
runtime is never visible under the cache entry's name.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
import tarfile
import tempfile
import zipfile
from pathlib import Path

from nodestep.core.errors import MalformedDistributionError, UnsupportedArchiveError
from nodestep.core.models.runtime import ArchiveFormat, PlatformKey, RuntimeHandle

logger = logging.getLogger(__name__)


def _coerce_format(archive_format: ArchiveFormat | str) -> ArchiveFormat:
    if isinstance(archive_format, ArchiveFormat):
        return archive_format
    value = str(archive_format).lower().lstrip(".")
    if value in ("tar.gz", "tgz", "targz"):
        return ArchiveFormat.TARGZ
    if value == "zip":
        return ArchiveFormat.ZIP
    raise UnsupportedArchiveError(f"Unsupported archive format: {archive_format!r}")


def _unpack_targz(archive: Path, into: Path) -> None:
    try:
        with tarfile.open(archive, "r:gz") as tar:
            tar.extractall(into, filter="data")
    except (tarfile.TarError, EOFError, OSError) as e:
        raise MalformedDistributionError(f"Cannot unpack {archive.name}: {e}") from e


def _unpack_zip(archive: Path, into: Path) -> None:
    root = into.resolve()
    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                target = (into / info.filename).resolve()
                if root != target and root not in target.parents:
                    raise MalformedDistributionError(
                        f"Archive entry escapes extraction dir: {info.filename}"
                    )
                zf.extract(info, into)
                # zipfile drops Unix permissions; restore them from external_attr
                mode = (info.external_attr >> 16) & 0o777
                if mode and not info.is_dir():
                    os.chmod(target, mode)
    except zipfile.BadZipFile as e:
        raise MalformedDistributionError(f"Cannot unpack {archive.name}: {e}") from e


def _content_root(unpacked: Path) -> Path:
    """Strip the single ``node-vX-os-arch/`` folder distributions wrap everything in."""
    children = [p for p in unpacked.iterdir()]
    if len(children) == 1 and children[0].is_dir():
        return children[0]
    return unpacked


def locate_runtime(home: Path, key: PlatformKey, version: str | None = None) -> RuntimeHandle:
    """Find ``node`` and the bundled npm scripts inside an extracted tree.

    Unix layout::

        bin/node
        lib/node_modules/npm/bin/npm-cli.js

    Windows layout::

        node.exe
        node_modules/npm/bin/npm-cli.js

    Raises:
        MalformedDistributionError: node or npm-cli.js is missing.
    """
    if key.is_windows:
        bin_dir = home
        npm_bin = home / "node_modules" / "npm" / "bin"
    else:
        bin_dir = home / "bin"
        npm_bin = home / "lib" / "node_modules" / "npm" / "bin"

    node = bin_dir / key.executable("node")
    npm_script = npm_bin / "npm-cli.js"
    npx_script = npm_bin / "npx-cli.js"

    missing = [str(p.relative_to(home)) for p in (node, npm_script) if not p.is_file()]
    if missing:
        raise MalformedDistributionError(
            f"Node.js distribution at {home} is missing: {', '.join(missing)}"
        )

    if not key.is_windows and not os.access(node, os.X_OK):
        node.chmod(node.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    return RuntimeHandle(
        version=version,
        source="download",
        node_path=str(node.resolve()),
        home=home.resolve(),
        bin_dir=bin_dir.resolve(),
        npm_script=npm_script.resolve(),
        npx_script=npx_script.resolve() if npx_script.is_file() else None,
    )


class Extractor:
    """Unpacks zip / gzip-tar archives with stage-then-rename promotion."""

    def __init__(self, key: PlatformKey):
        self._key = key

    def extract(
        self,
        archive_path: Path,
        archive_format: ArchiveFormat | str,
        target_dir: Path,
    ) -> Path:
        """Unpack ``archive_path`` and promote it to ``target_dir``.

        Returns the runtime home (``target_dir``). If another caller
        promoted the same entry first, its copy is kept and ours is
        discarded.

        Raises:
            UnsupportedArchiveError: Unknown container format.
            MalformedDistributionError: Corrupt archive or missing executables.
        """
        fmt = _coerce_format(archive_format)
        target_dir = Path(target_dir)
        target_dir.parent.mkdir(parents=True, exist_ok=True)

        staging = Path(tempfile.mkdtemp(dir=target_dir.parent, prefix=f".staging-{target_dir.name}-"))
        logger.debug("Extracting %s into %s", archive_path.name, staging)

        try:
            if fmt is ArchiveFormat.TARGZ:
                _unpack_targz(archive_path, staging)
            else:
                _unpack_zip(archive_path, staging)

            root = _content_root(staging)
            locate_runtime(root, self._key)

            try:
                os.rename(root, target_dir)
            except OSError:
                if not target_dir.is_dir():
                    raise
                logger.info("Runtime %s was promoted concurrently, keeping existing copy", target_dir)
            else:
                logger.info("Installed Node.js runtime into %s", target_dir)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        return target_dir
