"""
Configuration model — the root of nodestep.yml.

Built once per invocation by the config loader and passed down the call
chain. It is frozen: nothing mutates it after construction.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from nodestep.core.models.packager import PackagerConfig, PresetConfig
from nodestep.core.models.runtime import RuntimeSpec


class NodestepConfig(BaseModel):
    """Everything a step needs to know about Node and its packager."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    node: RuntimeSpec = Field(default_factory=RuntimeSpec)
    packager: PresetConfig | None = None     # npm, pnpm, yarn or cnpm
    custom: PackagerConfig | None = None     # or a fully custom packager
    state_dir: Path = Path(".nodestep/state")
    project_root: Path = Path(".")

    @model_validator(mode="after")
    def _single_packager(self) -> NodestepConfig:
        if self.packager is not None and self.custom is not None:
            raise ValueError(
                "Multiple packagers defined. Please configure a single packager "
                "(either 'packager' or 'custom')."
            )
        return self
