"""
Packager presets — the well-known package managers as ready-made configs.

``npm`` ships with every Node.js runtime. The others are installed
from the npm registry into their own prefix on first use.
"""

from __future__ import annotations

from pathlib import Path

from nodestep.core.errors import ConfigError
from nodestep.core.models.packager import CliConfig, PackagerConfig

_PRESETS: dict[str, dict] = {
    "npm": {
        "command": "npm",
        "input_files": ("package.json", "package-lock.json"),
        "output_files": ("package-lock.json",),
        "output_directories": ("node_modules",),
        "cli": CliConfig(command="npx"),
    },
    "pnpm": {
        "command": "pnpm",
        "npm_package": "pnpm",
        "input_files": ("package.json",),
        "output_files": ("pnpm-lock.yaml",),
        "output_directories": ("node_modules",),
        "cli": CliConfig(command="pnpx"),
    },
    "yarn": {
        "command": "yarn",
        "npm_package": "yarn",
        "input_files": ("package.json", "yarn.lock"),
        "output_files": ("yarn.lock",),
        "output_directories": ("node_modules",),
    },
    "cnpm": {
        "command": "cnpm",
        "npm_package": "cnpm",
        "input_files": ("package.json",),
        "output_directories": ("node_modules",),
    },
}

PRESET_NAMES = tuple(_PRESETS)


def preset(name: str, working_dir: Path, version: str = "latest") -> PackagerConfig:
    """Build the ``PackagerConfig`` for a preset name.

    Args:
        name: One of ``PRESET_NAMES``.
        working_dir: Parent directory of the packager's install prefix.
        version: npm version spec of the packager package.

    Raises:
        ConfigError: Unknown preset.
    """
    fields = _PRESETS.get(name)
    if fields is None:
        raise ConfigError(
            f"Unknown packager '{name}'. Available: {', '.join(PRESET_NAMES)}"
        )
    return PackagerConfig(name=name, working_dir=working_dir, version=version, **fields)
