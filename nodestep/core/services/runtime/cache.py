"""
Runtime cache inspection — list and clear provisioned Node.js runtimes.

The cache tree is ``<working_dir>/<version>/<os>-<arch>/`` with the
downloaded archive (and its ``.sha256`` sidecar) next to each entry.
Staging directories (``.staging-*``) and partial downloads (``*.part``)
are reported separately; they only exist while a provisioning is in
flight or after a crash.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def _dir_size(path: Path) -> tuple[int, int]:
    files = [f for f in path.rglob("*") if f.is_file() and not f.is_symlink()]
    return len(files), sum(f.stat().st_size for f in files)


def cache_status(working_dir: Path) -> dict:
    """Summarize the runtime cache.

    Returns::

        {
            "working_dir": "/repo/.nodestep/nodejs",
            "runtimes": [
                {"version": "18.16.0", "platform": "linux-x64",
                 "files": 2104, "size_mb": 87.3, "archive": True},
            ],
            "leftovers": ["18.16.0/.staging-linux-x64-abc123"],
            "total_size_mb": 87.3,
        }
    """
    runtimes: list[dict] = []
    leftovers: list[str] = []
    total_bytes = 0

    if working_dir.is_dir():
        for version_dir in sorted(p for p in working_dir.iterdir() if p.is_dir()):
            for item in sorted(version_dir.iterdir()):
                if item.name.startswith(".staging-") or item.name.endswith(".part"):
                    leftovers.append(f"{version_dir.name}/{item.name}")
                    continue
                if not item.is_dir():
                    continue
                files, size = _dir_size(item)
                arch = item.name.split("-", 1)[-1]
                runtimes.append({
                    "version": version_dir.name,
                    "platform": item.name,
                    "files": files,
                    "size_mb": round(size / (1024 * 1024), 1),
                    "archive": any(
                        a.name.endswith((".tar.gz", ".zip"))
                        for a in version_dir.glob(f"node-v*-{arch}.*")
                    ),
                })
                total_bytes += size
            total_bytes += sum(
                f.stat().st_size for f in version_dir.iterdir() if f.is_file()
            )

    return {
        "working_dir": str(working_dir),
        "runtimes": runtimes,
        "leftovers": leftovers,
        "total_size_mb": round(total_bytes / (1024 * 1024), 1),
    }


def clear_cache(working_dir: Path, version: str | None = None) -> dict:
    """Remove one cached version, or the whole cache.

    Returns:
        ``{"ok": True, "cleared": "18.16.0"}`` or
        ``{"ok": True, "cleared": "all"}``; ``{"ok": False, "error": ...}``
        when ``version`` points outside ``working_dir``.
    """
    if version:
        name = version.lstrip("v")
        target = working_dir / name
        root = working_dir.resolve()
        if target.resolve().parent != root:
            return {"ok": False, "error": f"'{version}' is not a cached version under {working_dir}"}
        if target.exists():
            shutil.rmtree(target)
            logger.info("Removed cached Node.js %s", version)
        return {"ok": True, "cleared": name}

    if working_dir.exists():
        shutil.rmtree(working_dir)
        logger.info("Removed runtime cache %s", working_dir)
    return {"ok": True, "cleared": "all"}
