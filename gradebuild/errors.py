"""Exception taxonomy.

Only ConfigurationError escapes the pipeline. The others are raised by the
lower layers and folded into a BuildResult by the orchestrator.
"""

from __future__ import annotations

from pathlib import Path


class GradebuildError(Exception):
    """Base class for every error raised by gradebuild."""


class ConfigurationError(GradebuildError, OSError):
    """Source roots were not given, do not exist, or are not directories."""

    def __init__(self, path: Path | None, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(reason if path is None else f"{reason}: {path}")


class TypeNotFoundError(GradebuildError, LookupError):
    """A compiled type could not be resolved from its output directory."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Compiled type not found: {name}")


class ClassFormatError(GradebuildError, ValueError):
    """A .class file on disk is truncated or otherwise unreadable."""


class SynthesisIOError(GradebuildError, OSError):
    """Generated factory sources could not be written."""


class InvalidTransitionError(GradebuildError, RuntimeError):
    """The pipeline state machine was asked for a transition it does not allow."""
