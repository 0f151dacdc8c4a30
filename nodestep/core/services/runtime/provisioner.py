"""
Runtime provisioning — from a ``RuntimeSpec`` to a ready ``RuntimeHandle``.

Two paths:

    download=False  → find a matching ``node`` on PATH
    download=True   → platform → descriptor → download → extract → locate

The download path is idempotent: once the cache entry exists it is
returned as-is, with no network call and no extraction.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from pathlib import Path

from nodestep.core.errors import MalformedDistributionError, RuntimeNotFoundError
from nodestep.core.models.runtime import PlatformKey, RuntimeHandle, RuntimeSpec
from nodestep.core.reliability.locks import KeyedLock
from nodestep.core.services.runtime.download import Downloader
from nodestep.core.services.runtime.extract import Extractor, locate_runtime
from nodestep.core.services.runtime.platform import build_descriptor, resolve_platform

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"v?(\d+\.\d+\.\d+)")

_INSTALL_LOCKS = KeyedLock()


def detect_version(node_path: str, timeout: float = 10) -> str | None:
    """Run ``node --version`` and return ``"18.16.0"``-style output, or None."""
    try:
        result = subprocess.run(
            [node_path, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug("Cannot query version of %s: %s", node_path, e)
        return None

    match = _VERSION_RE.search(result.stdout + result.stderr)
    return match.group(1) if match else None


class RuntimeProvisioner:
    """Owns the runtime cache and hands out ``RuntimeHandle``s.

    Args:
        downloader: Archive fetcher (shared so its locks are shared).
        platform: Override the detected host platform (tests, cross setups).
    """

    def __init__(
        self,
        downloader: Downloader | None = None,
        platform: PlatformKey | None = None,
    ):
        self._downloader = downloader or Downloader()
        self._platform = platform

    @property
    def platform(self) -> PlatformKey:
        return self._platform or resolve_platform()

    def provision(self, spec: RuntimeSpec) -> RuntimeHandle:
        """Make ``spec`` available and describe where it lives.

        Raises:
            RuntimeNotFoundError: ``download`` is off and no matching node is on PATH.
            NetworkError, ChecksumMismatchError, UnsupportedArchiveError,
            MalformedDistributionError, UnsupportedPlatformError: download path failures.
        """
        if not spec.download:
            return self._system_runtime(spec)
        return self._downloaded_runtime(spec)

    def installed(self, spec: RuntimeSpec) -> RuntimeHandle | None:
        """The cached runtime for ``spec`` if it is already promoted, else None."""
        key = self.platform
        descriptor = build_descriptor(spec, key)
        if not descriptor.install_root.is_dir():
            return None
        try:
            return locate_runtime(descriptor.install_root, key, spec.version)
        except MalformedDistributionError:
            return None

    # ── Download path ───────────────────────────────────────────

    def _downloaded_runtime(self, spec: RuntimeSpec) -> RuntimeHandle:
        key = self.platform
        descriptor = build_descriptor(spec, key)

        handle = self.installed(spec)
        if handle is not None:
            logger.debug("Node.js %s already provisioned at %s", spec.version, handle.home)
            return handle

        with _INSTALL_LOCKS.hold(("install", str(Path(descriptor.install_root).resolve()))):
            # Another worker may have finished while we waited.
            handle = self.installed(spec)
            if handle is not None:
                return handle

            if descriptor.install_root.exists():
                # Leftover from an aborted non-atomic copy; never trust it.
                logger.warning("Removing invalid runtime directory %s", descriptor.install_root)
                shutil.rmtree(descriptor.install_root)

            archive = self._downloader.fetch(descriptor)
            home = Extractor(key).extract(archive, descriptor.archive_format, descriptor.install_root)
            handle = locate_runtime(home, key, spec.version)

        logger.info("Node.js %s ready: %s", spec.version, handle.node_path)
        return handle

    # ── System path ─────────────────────────────────────────────

    def _system_runtime(self, spec: RuntimeSpec) -> RuntimeHandle:
        node = shutil.which("node")
        if node is None:
            raise RuntimeNotFoundError(
                "Node.js not found on PATH. Install Node.js "
                f"{spec.version} or set 'download: true' in nodestep.yml."
            )

        version = detect_version(node)
        if version is None:
            raise RuntimeNotFoundError(f"Cannot determine the version of {node}")

        if tuple(version.split(".")[:2]) != spec.major_minor:
            raise RuntimeNotFoundError(
                f"System Node.js {version} at {node} does not match requested "
                f"{spec.version} (major.minor must match)"
            )

        logger.debug("Using system Node.js %s at %s", version, node)
        return RuntimeHandle(
            version=version,
            source="system",
            node_path=node,
            npm_command=shutil.which("npm") or "npm",
            npx_command=shutil.which("npx") or "npx",
        )
