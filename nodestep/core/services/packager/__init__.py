"""
Package manager resolution and presets.
"""

from nodestep.core.services.packager.presets import PRESET_NAMES, preset
from nodestep.core.services.packager.resolver import (
    BUILTIN_COMMANDS,
    PackagerResolver,
    npm_command,
    npx_command,
)

__all__ = [
    "BUILTIN_COMMANDS",
    "PRESET_NAMES",
    "PackagerResolver",
    "npm_command",
    "npx_command",
    "preset",
]
