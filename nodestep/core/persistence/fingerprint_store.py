"""
Fingerprint persistence — atomic read/write of step fingerprints.

One JSON file per step under the state directory
(``.nodestep/state/fingerprints/<step>.json``). Writes are atomic
(write to temp file, then rename) so a crash mid-write never leaves a
half-written fingerprint that could wrongly mark a step up to date.
"""

from __future__ import annotations

import json
import logging
import re
import tempfile
from pathlib import Path

from nodestep.core.models.fingerprint import Fingerprint

logger = logging.getLogger(__name__)

FINGERPRINT_DIR = "fingerprints"

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def _file_name(step_id: str) -> str:
    return _UNSAFE.sub("_", step_id).strip("_") or "step"


class FingerprintStore:
    """Stores one ``Fingerprint`` per step id."""

    def __init__(self, state_dir: Path):
        self.root = Path(state_dir) / FINGERPRINT_DIR

    def path_for(self, step_id: str) -> Path:
        return self.root / f"{_file_name(step_id)}.json"

    def load(self, step_id: str) -> Fingerprint | None:
        """Load the fingerprint of ``step_id``.

        A missing or unreadable file yields None, which makes the step
        run again.
        """
        path = self.path_for(step_id)
        if not path.is_file():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return Fingerprint.model_validate(data)
        except json.JSONDecodeError as e:
            logger.warning("Corrupt fingerprint %s: %s, step will re-run", path, e)
            return None
        except Exception as e:
            logger.warning("Cannot load fingerprint %s: %s, step will re-run", path, e)
            return None

    def save(self, step_id: str, fingerprint: Fingerprint) -> Path:
        """Persist ``fingerprint`` for ``step_id`` (atomic write)."""
        path = self.path_for(step_id)
        path.parent.mkdir(parents=True, exist_ok=True)

        content = json.dumps(fingerprint.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

        _fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".fp_", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with open(_fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(path)
            logger.debug("Fingerprint saved to %s", path)
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
        return path

    def clear(self, step_id: str) -> bool:
        """Forget a step's fingerprint. Returns True if one existed."""
        path = self.path_for(step_id)
        if path.is_file():
            path.unlink()
            return True
        return False
