from .config import BuildSettings
from .conformance import verify
from .errors import (
    ClassFormatError,
    ConfigurationError,
    GradebuildError,
    SynthesisIOError,
    TypeNotFoundError,
)
from .factory import FactoryArtifact, synthesize
from .models import BuildRequest, BuildResult, CompiledUnit, Diagnostic
from .pipeline import Compiler, compile_interfaces, compile_submission, compile_tests
from .sources import collect

__all__ = [
    "BuildRequest",
    "BuildResult",
    "BuildSettings",
    "ClassFormatError",
    "CompiledUnit",
    "Compiler",
    "ConfigurationError",
    "Diagnostic",
    "FactoryArtifact",
    "GradebuildError",
    "SynthesisIOError",
    "TypeNotFoundError",
    "collect",
    "compile_interfaces",
    "compile_submission",
    "compile_tests",
    "synthesize",
    "verify",
]
