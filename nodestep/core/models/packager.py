"""
Packager models — a package manager described as data.

A ``PackagerConfig`` says which command to run, where its private
install lives, which npm package provides it, and which files make up
its inputs and outputs for up-to-date checks. Resolution turns a
packager name into a ``ResolvedCommand`` tagged with its kind.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CliConfig(BaseModel):
    """CLI companion of a packager (``npx`` for npm, ``pnpx`` for pnpm).

    Only the command name differs; everything else comes from the parent.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    command: str


class PackagerConfig(BaseModel):
    """A package manager usable as a build step."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    name: str = ""
    command: str
    working_dir: Path | None = None
    npm_package: str | None = None
    version: str = "latest"

    input_files: tuple[str, ...] = ()
    output_files: tuple[str, ...] = ()
    output_directories: tuple[str, ...] = ()

    cli: CliConfig | None = None

    @property
    def effective_name(self) -> str:
        """The unique key; falls back to the command name."""
        return self.name or self.command

    @property
    def cli_command(self) -> str | None:
        return self.cli.command if self.cli else None

    def install_prefix(self) -> Path | None:
        """Versioned directory the packager gets installed into."""
        if self.working_dir is None:
            return None
        suffix = "latest" if self.version == "latest" else f"v{self.version}"
        return self.working_dir / f"{self.effective_name}-{suffix}"

    def install_spec(self) -> str | None:
        """``<npm_package>@<version>`` argument for ``npm install``."""
        if not self.npm_package:
            return None
        return f"{self.npm_package}@{self.version}"


class PresetConfig(BaseModel):
    """The ``packager:`` setting: a preset name, optionally pinned.

    ``packager: pnpm`` and ``packager: {name: pnpm, version: 8.6.0}``
    are both accepted.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    name: str
    version: str = "latest"
    working_dir: Path | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_name(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"name": value}
        return value

    @field_validator("version")
    @classmethod
    def _strip_v_prefix(cls, value: str) -> str:
        value = value.strip().removeprefix("v")
        if not value:
            raise ValueError("version must not be empty")
        return value



class PackagerKind(str, Enum):
    """Closed set of packager variants, decided once at resolution."""

    BUILTIN = "builtin"
    CLI_WRAPPER = "cli_wrapper"
    CUSTOM = "custom"


class ResolvedCommand(BaseModel):
    """A concrete command line prefix for a packager invocation."""

    model_config = ConfigDict(frozen=True)

    kind: PackagerKind
    name: str
    executable: str
    base_args: tuple[str, ...] = ()
    working_dir: Path | None = None              # install prefix, None for builtins
    path_entries: tuple[str, ...] = Field(default_factory=tuple)

    def argv(self, *args: str) -> list[str]:
        """Full argument vector (without the executable) for a call."""
        return [*self.base_args, *args]
