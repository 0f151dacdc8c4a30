"""
Configuration loader — reads nodestep.yml into a ``NodestepConfig``.

This is the primary entry point for loading configuration. It reads
YAML, validates against the Pydantic models, anchors relative paths at
the config file's directory and applies environment overrides.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from nodestep.core.errors import ConfigError
from nodestep.core.models.config import NodestepConfig
from nodestep.core.models.packager import PackagerConfig
from nodestep.core.services.packager.presets import PRESET_NAMES, preset

logger = logging.getLogger(__name__)

CONFIG_FILE = "nodestep.yml"

ENV_DIST_BASE_URL = "NODESTEP_DIST_BASE_URL"

# Where preset packagers get installed, relative to the project root
PRESET_WORKING_DIR = Path(".nodestep") / "packagers"


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for nodestep.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to nodestep.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def _anchor(path: Path | None, root: Path) -> Path | None:
    if path is None:
        return None
    path = Path(os.path.expanduser(path))
    return path if path.is_absolute() else (root / path)


def resolve_paths(config: NodestepConfig, root: Path) -> NodestepConfig:
    """Return ``config`` with every relative path anchored at ``root``."""
    root = root.resolve()

    node = config.node.model_copy(update={"working_dir": _anchor(config.node.working_dir, root)})

    custom = config.custom
    if custom is not None:
        custom = custom.model_copy(
            update={"working_dir": _anchor(custom.working_dir or PRESET_WORKING_DIR, root)}
        )

    packager = config.packager
    if packager is not None:
        packager = packager.model_copy(
            update={"working_dir": _anchor(packager.working_dir or PRESET_WORKING_DIR, root)}
        )

    dist_url = os.environ.get(ENV_DIST_BASE_URL)
    if dist_url:
        logger.debug("Dist base URL overridden by %s: %s", ENV_DIST_BASE_URL, dist_url)
        node = node.model_copy(update={"dist_base_url": dist_url.rstrip("/")})

    return config.model_copy(update={
        "node": node,
        "custom": custom,
        "packager": packager,
        "state_dir": _anchor(config.state_dir, root),
        "project_root": root,
    })


def _check_versions(data: dict, path: Path) -> None:
    """Numeric YAML versions become strings; floats are refused.

    ``18.10`` parses as the float 18.1, so the intended version cannot be
    recovered. Integers such as ``20`` are unambiguous.
    """
    for section in ("node", "packager", "custom"):
        block = data.get(section)
        if not isinstance(block, dict):
            continue
        version = block.get("version")
        if isinstance(version, bool):
            continue
        if isinstance(version, float):
            raise ConfigError(
                f"{section}.version in {path} was read as the number {version!r}. "
                f"Quote it, e.g. version: \"{version}\""
            )
        if isinstance(version, int):
            block["version"] = str(version)


def load_config(path: Path | None = None, start_dir: Path | None = None) -> NodestepConfig:
    """Load and validate nodestep configuration.

    Args:
        path: Explicit path to nodestep.yml. If None, searches upward.
        start_dir: Where the upward search starts (default: cwd).

    Returns:
        Validated ``NodestepConfig``. Without any config file the
        defaults are used, rooted at ``start_dir``.

    Raises:
        ConfigError: If an explicit file is missing or any file is invalid.
    """
    if path is None:
        path = find_config_file(start_dir)
        if path is None:
            logger.debug("No %s found, using defaults", CONFIG_FILE)
            return resolve_paths(NodestepConfig(), start_dir or Path.cwd())

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    _check_versions(data, path)

    try:
        config = NodestepConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    if config.packager is not None and config.packager.name not in PRESET_NAMES:
        raise ConfigError(
            f"Unknown packager '{config.packager.name}' in {path}. "
            f"Available: {', '.join(PRESET_NAMES)}"
        )

    config = resolve_paths(config, path.parent)
    logger.info(
        "Loaded config %s (node %s, download=%s)", path, config.node.version, config.node.download
    )
    return config


def active_packager(config: NodestepConfig) -> PackagerConfig:
    """The packager steps run with: the custom block, a preset, or npm."""
    if config.custom is not None:
        return config.custom
    chosen = config.packager
    if chosen is None:
        return preset("npm", config.project_root / PRESET_WORKING_DIR)
    return preset(
        chosen.name,
        chosen.working_dir or config.project_root / PRESET_WORKING_DIR,
        version=chosen.version,
    )
