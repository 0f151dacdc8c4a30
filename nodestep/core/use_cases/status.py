"""
Status use case — what is configured, what is provisioned, what is up to date.

Read-only: never downloads, installs or runs anything except
``node --version`` for a system runtime.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from nodestep.core.config.loader import active_packager, find_config_file, load_config
from nodestep.core.errors import NodestepError
from nodestep.core.models.config import NodestepConfig
from nodestep.core.models.runtime import RuntimeHandle
from nodestep.core.persistence.fingerprint_store import FingerprintStore
from nodestep.core.services.packager.resolver import BUILTIN_COMMANDS, PackagerResolver
from nodestep.core.services.runtime.cache import cache_status
from nodestep.core.services.runtime.provisioner import RuntimeProvisioner, detect_version
from nodestep.core.services.runtime.platform import resolve_platform
from nodestep.core.use_cases.run import install_step_id


@dataclass
class StatusResult:
    """Aggregated nodestep status."""

    config: NodestepConfig | None = None
    config_path: Path | None = None
    error: str | None = None

    platform: str = ""
    runtime: RuntimeHandle | None = None
    packager_name: str = ""
    packager_installed: bool = False
    install_recorded_at: str | None = None
    cache: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to a JSON-serializable dictionary."""
        if self.error or self.config is None:
            return {"error": self.error or "No configuration loaded"}

        return {
            "config_path": str(self.config_path) if self.config_path else None,
            "project_root": str(self.config.project_root),
            "platform": self.platform,
            "node": {
                "version": self.config.node.version,
                "download": self.config.node.download,
                "provisioned": self.runtime is not None,
                "path": self.runtime.node_path if self.runtime else None,
            },
            "packager": {
                "name": self.packager_name,
                "installed": self.packager_installed,
                "last_install": self.install_recorded_at,
            },
            "cache": self.cache,
        }


def _system_runtime() -> RuntimeHandle | None:
    node = shutil.which("node")
    if node is None:
        return None
    return RuntimeHandle(source="system", node_path=node, version=detect_version(node))


def get_status(config_path: Path | None = None) -> StatusResult:
    """Get the status of the runtime, packager and install step.

    Args:
        config_path: Optional explicit path to nodestep.yml.
    """
    result = StatusResult()

    try:
        result.config_path = config_path or find_config_file()
        config = load_config(result.config_path)
        result.config = config
        key = resolve_platform()
    except NodestepError as e:
        result.error = str(e)
        return result

    result.platform = key.slug

    if config.node.download:
        result.runtime = RuntimeProvisioner(platform=key).installed(config.node)
    else:
        result.runtime = _system_runtime()

    packager = active_packager(config)
    result.packager_name = packager.effective_name
    if packager.effective_name in BUILTIN_COMMANDS:
        result.packager_installed = result.runtime is not None
    else:
        binary = PackagerResolver(platform=key).binary_path(packager, packager.command)
        result.packager_installed = binary is not None and binary.exists()

    fingerprint = FingerprintStore(config.state_dir).load(install_step_id(packager.effective_name))
    result.install_recorded_at = fingerprint.recorded_at if fingerprint else None

    result.cache = cache_status(config.node.working_dir)
    return result
