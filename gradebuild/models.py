"""Request, result and compiled-type records shared across the pipeline."""

from __future__ import annotations

import dataclasses
from enum import StrEnum
from pathlib import Path
from typing import TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator

ConformanceTable: TypeAlias = dict[str, bool]


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    NOTE = "note"


class OutputStrategy(StrEnum):
    DISCARD = "discard"
    EPHEMERAL = "ephemeral"
    PERSISTENT = "persistent"


@dataclasses.dataclass(frozen=True, slots=True)
class Diagnostic:
    """One compiler message; `message` is the full rendered text."""

    severity: Severity
    message: str
    file: str | None = None
    line: int | None = None

    @property
    def surfaced(self) -> bool:
        return self.severity is not Severity.WARNING


@dataclasses.dataclass(frozen=True, slots=True)
class CompiledUnit:
    """A compiled type as seen through a TypeMetadataProvider."""

    name: str
    is_contract: bool
    contracts: frozenset[str] = frozenset()

    @property
    def simple_name(self) -> str:
        return self.name.rsplit(".", 1)[-1]

    @property
    def package(self) -> str:
        head, _, _ = self.name.rpartition(".")
        return head


@dataclasses.dataclass(frozen=True, slots=True)
class ToolchainResult:
    """Outcome of one compiler invocation."""

    success: bool
    diagnostics: tuple[Diagnostic, ...] = ()
    output_dir: Path | None = None

    def messages(self) -> list[str]:
        return [diagnostic.message for diagnostic in self.diagnostics]


@dataclasses.dataclass(frozen=True, slots=True)
class ConformanceReport:
    all_satisfied: bool
    unsatisfied: tuple[str, ...] = ()
    # What the caller sees; the unsatisfied names unless introspection failed.
    messages: tuple[str, ...] = ()


class BuildRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    sources: list[Path] = Field(min_length=1)
    destination: Path | None = None
    enforce_conformance: bool = False
    synthesize_factory: bool = False

    @field_validator("destination", mode="before")
    @classmethod
    def blank_destination_is_absent(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def needs_output(self) -> bool:
        return self.enforce_conformance or self.synthesize_factory

    @property
    def strategy(self) -> OutputStrategy:
        if self.destination is not None:
            return OutputStrategy.PERSISTENT
        if self.needs_output:
            return OutputStrategy.EPHEMERAL
        return OutputStrategy.DISCARD


class BuildResult(BaseModel):
    """What the caller gets back: a success flag and ordered messages."""

    model_config = ConfigDict(frozen=True)

    success: bool
    diagnostics: list[str] = Field(default_factory=list)
