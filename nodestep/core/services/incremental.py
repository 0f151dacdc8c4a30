"""
Incremental gate — decide whether a step can be skipped.

A step is up to date when:

    1. a fingerprint was recorded after its last successful run,
    2. its command line (signature) is unchanged,
    3. every input glob resolves to the same files with the same content,
    4. every declared output file and output directory exists.

A step that declares no outputs always runs.
"""

from __future__ import annotations

import glob
import hashlib
import logging
from collections.abc import Iterable
from pathlib import Path

from nodestep.core.models.fingerprint import FileSignature, Fingerprint

logger = logging.getLogger(__name__)


def command_signature(argv: Iterable[str]) -> str:
    """Stable hash of a command line, so changed args invalidate the fingerprint."""
    return hashlib.sha256("\0".join(argv).encode("utf-8")).hexdigest()


def _expand(pattern: str, base_dir: Path) -> list[Path]:
    # base_dir is never part of the pattern, so "proj[1]" stays literal
    matches = glob.glob(pattern, root_dir=base_dir, recursive=True)
    return sorted(base_dir / m for m in matches)



def _sign(path: Path, base_dir: Path) -> FileSignature:
    st = path.stat()
    digest = hashlib.sha256()
    if path.is_file():
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(64 * 1024), b""):
                digest.update(chunk)
    try:
        rel = path.relative_to(base_dir).as_posix()
    except ValueError:
        rel = str(path)
    return FileSignature(
        path=rel,
        exists=True,
        size=st.st_size,
        mtime_ns=st.st_mtime_ns,
        sha256=digest.hexdigest(),
    )


def compute_fingerprint(
    input_files: Iterable[str],
    base_dir: Path,
    signature: str = "",
) -> Fingerprint:
    """Sign every file each input glob matches.

    A glob that matches nothing is recorded as a single missing entry,
    so a file appearing later invalidates the fingerprint.
    """
    inputs: dict[str, list[FileSignature]] = {}
    for pattern in input_files:
        matches = [p for p in _expand(pattern, base_dir) if p.is_file()]
        if matches:
            inputs[pattern] = [_sign(p, base_dir) for p in matches]
        else:
            inputs[pattern] = [FileSignature(path=pattern, exists=False)]
    return Fingerprint(signature=signature, inputs=inputs)


def missing_outputs(
    output_files: Iterable[str],
    output_directories: Iterable[str],
    base_dir: Path,
) -> list[str]:
    """Declared outputs that do not exist right now."""
    missing = [p for p in output_files if not any(m.is_file() for m in _expand(p, base_dir))]
    missing += [d for d in output_directories if not (base_dir / d).is_dir()]
    return missing


def is_up_to_date(
    input_files: Iterable[str],
    output_files: Iterable[str],
    output_directories: Iterable[str],
    prior_fingerprint: Fingerprint | None,
    base_dir: Path,
    signature: str = "",
) -> bool:
    """True when the step's recorded state still matches the workspace."""
    output_files = list(output_files)
    output_directories = list(output_directories)

    if not output_files and not output_directories:
        logger.debug("No outputs declared, step always runs")
        return False

    if prior_fingerprint is None:
        logger.debug("No prior fingerprint")
        return False

    missing = missing_outputs(output_files, output_directories, base_dir)
    if missing:
        logger.debug("Outputs missing: %s", ", ".join(missing))
        return False

    current = compute_fingerprint(input_files, base_dir, signature)
    if not current.same_inputs(prior_fingerprint):
        logger.debug("Inputs or command line changed")
        return False

    return True
