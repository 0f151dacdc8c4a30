"""
Domain models — Pydantic types for runtime provisioning and packager steps.

All models are re-exported here for convenient access:

    from nodestep.core.models import RuntimeSpec, PackagerConfig, ExecutionRequest
"""

from nodestep.core.models.config import NodestepConfig
from nodestep.core.models.execution import ExecutionRequest, ExecutionResult
from nodestep.core.models.fingerprint import FileSignature, Fingerprint
from nodestep.core.models.packager import (
    CliConfig,
    PackagerConfig,
    PackagerKind,
    PresetConfig,
    ResolvedCommand,
)
from nodestep.core.models.runtime import (
    ArchiveFormat,
    DistributionDescriptor,
    PlatformKey,
    RuntimeHandle,
    RuntimeSpec,
)
from nodestep.core.models.step import StepReport

__all__ = [
    # runtime.py
    "ArchiveFormat",
    # packager.py
    "CliConfig",
    "DistributionDescriptor",
    # execution.py
    "ExecutionRequest",
    "ExecutionResult",
    # fingerprint.py
    "FileSignature",
    "Fingerprint",
    # config.py
    "NodestepConfig",
    "PackagerConfig",
    "PackagerKind",
    "PlatformKey",
    "PresetConfig",
    "ResolvedCommand",
    "RuntimeHandle",
    "RuntimeSpec",
    # step.py
    "StepReport",
]
