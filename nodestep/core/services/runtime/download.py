"""
Runtime download — fetch a Node.js archive into the cache exactly once.

Archives are streamed into a temporary file next to their final name
and only ``os.replace``-d into place after the full body arrived and
the digest checked out. A crash mid-download never leaves something
that looks like a valid cached archive.

Concurrent callers asking for the same archive serialize on a per-path
lock; whoever comes second finds the artifact already materialized.
"""

from __future__ import annotations

import hashlib
import http.client
import logging
import os
import tempfile
import urllib.error
import urllib.request
from collections.abc import Callable
from pathlib import Path
from typing import Any

from nodestep import __version__
from nodestep.core.errors import ChecksumMismatchError, NetworkError
from nodestep.core.models.runtime import DistributionDescriptor
from nodestep.core.reliability.locks import KeyedLock
from nodestep.core.reliability.retry import RetryPolicy

logger = logging.getLogger(__name__)

USER_AGENT = f"nodestep/{__version__}"
_CHUNK = 64 * 1024

# Shared by every Downloader in the process so separate instances still
# coordinate on the same cache path.
_FETCH_LOCKS = KeyedLock()

Opener = Callable[..., Any]


def _fmt_size(n: int | float) -> str:
    """Format byte count to human-readable string."""
    for unit in ("B", "KB", "MB", "GB"):
        if n < 1024:
            return f"{n:.1f} {unit}"
        n /= 1024
    return f"{n:.1f} TB"


def file_sha256(path: Path) -> str:
    """Hex sha256 of a file, read in chunks."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def parse_shasums(text: str, archive_name: str) -> str | None:
    """Find ``archive_name`` in a SHASUMS256.txt body.

    Lines look like ``<hex>  node-v18.16.0-linux-x64.tar.gz``.
    """
    for line in text.splitlines():
        parts = line.split()
        if len(parts) == 2 and parts[1].lstrip("*") == archive_name:
            return parts[0].lower()
    return None


def _sidecar(path: Path) -> Path:
    return path.with_name(path.name + ".sha256")


class Downloader:
    """Fetches distribution archives through ``urllib.request``.

    Args:
        opener: ``urlopen``-compatible callable (tests inject a fake).
        retry: Backoff policy for ``NetworkError``.
        timeout: Socket timeout per request, in seconds.
    """

    def __init__(
        self,
        opener: Opener | None = None,
        retry: RetryPolicy | None = None,
        timeout: float = 60.0,
        locks: KeyedLock | None = None,
    ):
        self._opener = opener or urllib.request.urlopen
        self._retry = retry or RetryPolicy()
        self._timeout = timeout
        self._locks = locks or _FETCH_LOCKS

    def fetch(self, descriptor: DistributionDescriptor) -> Path:
        """Return a local path to the verified archive for ``descriptor``.

        Raises:
            NetworkError: All download attempts failed.
            ChecksumMismatchError: The archive does not match its published digest.
        """
        dest = descriptor.archive_path

        with self._locks.hold(("download", str(dest.resolve()))):
            if self._cached_ok(dest, descriptor):
                logger.debug("Archive already cached: %s", dest)
                return dest

            expected = self._expected_digest(descriptor)

            logger.info("Downloading %s", descriptor.archive_url)
            tmp, actual, size = self._retry.call(
                lambda: self._download(descriptor.archive_url, dest),
                retry_on=(NetworkError,),
                label=f"download {descriptor.archive_name}",
            )

            try:
                if expected and actual != expected:
                    raise ChecksumMismatchError(str(dest), expected, actual)
                os.replace(tmp, dest)
            except BaseException:
                tmp.unlink(missing_ok=True)
                raise

            _sidecar(dest).write_text(actual + "\n", encoding="utf-8")
            logger.info("Downloaded %s (%s)", dest.name, _fmt_size(size))
            return dest

    # ── Cache check ─────────────────────────────────────────────

    def _cached_ok(self, dest: Path, descriptor: DistributionDescriptor) -> bool:
        if not dest.is_file():
            return False

        known = descriptor.expected_sha256
        sidecar = _sidecar(dest)
        if not known and sidecar.is_file():
            known = sidecar.read_text(encoding="utf-8").strip()
        if not known:
            # Only ever promoted complete, so presence is enough.
            return True

        actual = file_sha256(dest)
        if actual == known.lower():
            return True

        logger.warning(
            "Cached archive %s does not match its digest (expected %s, got %s), re-downloading",
            dest, known, actual,
        )
        dest.unlink(missing_ok=True)
        sidecar.unlink(missing_ok=True)
        return False

    # ── Checksums ───────────────────────────────────────────────

    def _expected_digest(self, descriptor: DistributionDescriptor) -> str | None:
        if descriptor.expected_sha256:
            return descriptor.expected_sha256.lower()
        if descriptor.checksum_policy == "off" or not descriptor.checksum_url:
            return None

        strict = descriptor.checksum_policy == "strict"
        try:
            text = self._read_text(descriptor.checksum_url)
        except NetworkError as e:
            if strict:
                raise
            logger.warning(
                "No published checksums for %s (%s), continuing without verification",
                descriptor.archive_name, e.reason,
            )
            return None

        digest = parse_shasums(text, descriptor.archive_name)
        if digest is None:
            if strict:
                raise ChecksumMismatchError(str(descriptor.archive_path), "<not published>", "")
            logger.warning("%s not listed in %s", descriptor.archive_name, descriptor.checksum_url)
        return digest

    def _read_text(self, url: str) -> str:
        req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
        try:
            with self._opener(req, timeout=self._timeout) as resp:
                return resp.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            raise NetworkError(url, str(e.reason), status=e.code) from e
        except (OSError, http.client.HTTPException) as e:
            raise NetworkError(url, str(getattr(e, "reason", e))) from e

    # ── Transfer ────────────────────────────────────────────────

    def _download(self, url: str, dest: Path) -> tuple[Path, str, int]:
        """Stream ``url`` into a temp file beside ``dest``.

        Returns ``(tmp_path, sha256, size)``. The temp file is removed on
        any failure.
        """
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".{dest.name}.", suffix=".part")
        tmp = Path(tmp_name)
        hasher = hashlib.sha256()
        written = 0

        try:
            with os.fdopen(fd, "wb") as out:
                req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
                try:
                    response = self._opener(req, timeout=self._timeout)
                except urllib.error.HTTPError as e:
                    raise NetworkError(url, str(e.reason), status=e.code) from e
                except (OSError, http.client.HTTPException) as e:
                    raise NetworkError(url, str(getattr(e, "reason", e))) from e

                with response as resp:
                    status = getattr(resp, "status", None)
                    if status is not None and not 200 <= status < 300:
                        raise NetworkError(url, "unexpected status", status=status)

                    total = int(resp.headers.get("Content-Length") or 0)
                    last_progress = -1
                    while True:
                        try:
                            chunk = resp.read(_CHUNK)
                        except (OSError, http.client.HTTPException) as e:
                            raise NetworkError(url, f"transfer interrupted: {e}") from e
                        if not chunk:
                            break
                        out.write(chunk)
                        hasher.update(chunk)
                        written += len(chunk)

                        if total > 0:
                            pct = int(written * 100 / total)
                            if pct >= last_progress + 10:
                                last_progress = pct
                                logger.debug(
                                    "Download progress: %d%% (%s / %s)",
                                    pct, _fmt_size(written), _fmt_size(total),
                                )

            if total and written != total:
                raise NetworkError(url, f"truncated body: got {written} of {total} bytes")
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

        return tmp, hasher.hexdigest(), written
