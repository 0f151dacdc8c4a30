"""
Tests for the incremental gate and fingerprint persistence.
"""

import json
import os
from pathlib import Path

from nodestep.core.models.fingerprint import Fingerprint
from nodestep.core.persistence.fingerprint_store import FingerprintStore
from nodestep.core.services.incremental import (
    command_signature,
    compute_fingerprint,
    is_up_to_date,
    missing_outputs,
)

INPUTS = ("package.json", "pnpm-lock.yaml")
OUTPUTS = ("pnpm-lock.yaml",)
DIRS = ("node_modules",)


def _workspace(tmp_path: Path) -> Path:
    tmp_path.mkdir(parents=True, exist_ok=True)
    (tmp_path / "package.json").write_text('{"name": "demo"}')
    (tmp_path / "pnpm-lock.yaml").write_text("lockfileVersion: 6.0\n")
    (tmp_path / "node_modules").mkdir()
    return tmp_path


def _check(base: Path, prior, signature: str = "sig") -> bool:
    return is_up_to_date(INPUTS, OUTPUTS, DIRS, prior, base, signature)


class TestFingerprint:
    """Tests for input signing."""

    def test_signs_matches(self, tmp_path: Path):
        base = _workspace(tmp_path)
        fp = compute_fingerprint(["package.json"], base)

        [sig] = fp.inputs["package.json"]
        assert sig.exists
        assert sig.path == "package.json"
        assert sig.size == len('{"name": "demo"}')
        assert len(sig.sha256) == 64

    def test_glob_without_matches_is_recorded_missing(self, tmp_path: Path):
        fp = compute_fingerprint(["*.lock"], tmp_path)
        assert [s.exists for s in fp.inputs["*.lock"]] == [False]

    def test_recursive_glob(self, tmp_path: Path):
        (tmp_path / "src" / "a").mkdir(parents=True)
        (tmp_path / "src" / "a" / "x.js").write_text("1")
        (tmp_path / "src" / "y.js").write_text("2")

        fp = compute_fingerprint(["src/**/*.js"], tmp_path)
        assert [s.path for s in fp.inputs["src/**/*.js"]] == ["src/a/x.js", "src/y.js"]

    def test_same_inputs_ignores_timestamp(self, tmp_path: Path):
        base = _workspace(tmp_path)
        a = compute_fingerprint(INPUTS, base, "sig")
        b = compute_fingerprint(INPUTS, base, "sig")
        assert a.recorded_at <= b.recorded_at
        assert a.same_inputs(b)

    def test_signature_is_stable(self):
        assert command_signature(["pnpm", "install"]) == command_signature(["pnpm", "install"])
        assert command_signature(["pnpm", "install"]) != command_signature(["pnpm", "install", "--prod"])
        assert command_signature(["a b"]) != command_signature(["a", "b"])


class TestIsUpToDate:
    """Tests for the skip decision."""

    def test_unchanged_is_up_to_date(self, tmp_path: Path):
        base = _workspace(tmp_path)
        prior = compute_fingerprint(INPUTS, base, "sig")
        assert _check(base, prior) is True

    def test_no_prior_fingerprint(self, tmp_path: Path):
        assert _check(_workspace(tmp_path), None) is False

    def test_missing_output_dir(self, tmp_path: Path):
        base = _workspace(tmp_path)
        prior = compute_fingerprint(INPUTS, base, "sig")
        (base / "node_modules").rmdir()
        assert _check(base, prior) is False

    def test_missing_output_file(self, tmp_path: Path):
        base = _workspace(tmp_path)
        prior = compute_fingerprint(INPUTS, base, "sig")
        (base / "pnpm-lock.yaml").unlink()
        assert _check(base, prior) is False

    def test_changed_input_content(self, tmp_path: Path):
        base = _workspace(tmp_path)
        prior = compute_fingerprint(INPUTS, base, "sig")
        pkg = base / "package.json"
        st = pkg.stat()
        pkg.write_text('{"name": "demx"}')
        os.utime(pkg, ns=(st.st_atime_ns, st.st_mtime_ns))  # same size, same mtime
        assert _check(base, prior) is False

    def test_new_input_file_appears(self, tmp_path: Path):
        base = _workspace(tmp_path)
        prior = compute_fingerprint(("package.json", "*.npmrc"), base, "sig")
        (base / "x.npmrc").write_text("registry=x")
        assert is_up_to_date(("package.json", "*.npmrc"), OUTPUTS, DIRS, prior, base, "sig") is False

    def test_changed_command_line(self, tmp_path: Path):
        base = _workspace(tmp_path)
        prior = compute_fingerprint(INPUTS, base, "sig")
        assert _check(base, prior, signature="other") is False

    def test_no_outputs_never_up_to_date(self, tmp_path: Path):
        base = _workspace(tmp_path)
        prior = compute_fingerprint(INPUTS, base)
        assert is_up_to_date(INPUTS, (), (), prior, base) is False

    def test_missing_outputs_lists_both_kinds(self, tmp_path: Path):
        assert missing_outputs(["a.txt"], ["dist"], tmp_path) == ["a.txt", "dist"]


class TestFingerprintStore:
    """Tests for JSON fingerprint persistence."""

    def test_save_and_load(self, tmp_path: Path):
        base = _workspace(tmp_path / "ws")
        store = FingerprintStore(tmp_path / "state")
        fp = compute_fingerprint(INPUTS, base, "sig")

        path = store.save("pnpm:install", fp)
        assert path.parent == tmp_path / "state" / "fingerprints"
        assert path.name == "pnpm_install.json"

        loaded = store.load("pnpm:install")
        assert loaded is not None
        assert loaded.same_inputs(fp)

    def test_is_valid_json(self, tmp_path: Path):
        store = FingerprintStore(tmp_path)
        path = store.save("step", Fingerprint(signature="abc"))
        data = json.loads(path.read_text())
        assert data["signature"] == "abc"
        assert data["schema_version"] == 1

    def test_load_missing(self, tmp_path: Path):
        assert FingerprintStore(tmp_path).load("nope") is None

    def test_load_corrupt(self, tmp_path: Path):
        store = FingerprintStore(tmp_path)
        path = store.path_for("step")
        path.parent.mkdir(parents=True)
        path.write_text("{{{ not json")
        assert store.load("step") is None

    def test_no_temp_files_left(self, tmp_path: Path):
        store = FingerprintStore(tmp_path)
        store.save("a", Fingerprint())
        store.save("a", Fingerprint(signature="x"))
        assert [p.name for p in store.root.iterdir()] == ["a.json"]

    def test_clear(self, tmp_path: Path):
        store = FingerprintStore(tmp_path)
        store.save("a", Fingerprint())
        assert store.clear("a") is True
        assert store.clear("a") is False


class TestGlobCharactersInBaseDir:
    """The project path itself may contain glob metacharacters."""

    def test_inputs_found(self, tmp_path: Path):
        base = tmp_path / "proj[1]"
        base.mkdir()
        _workspace(base)

        fp = compute_fingerprint(["package.json"], base)
        [sig] = fp.inputs["package.json"]
        assert sig.exists

    def test_content_change_detected(self, tmp_path: Path):
        base = tmp_path / "proj[1]"
        base.mkdir()
        _workspace(base)
        prior = compute_fingerprint(["package.json"], base)

        (base / "package.json").write_text('{"name": "changed"}')
        assert is_up_to_date(["package.json"], [], ["node_modules"], prior, base) is False

    def test_existing_outputs_not_missing(self, tmp_path: Path):
        base = tmp_path / "out*[x]"
        base.mkdir()
        _workspace(base)
        assert missing_outputs(["pnpm-lock.yaml"], ["node_modules"], base) == []
