"""Build pipeline: compile, optionally synthesize a factory, optionally verify.

A call walks an explicit stage machine

    PENDING -> BUILT -> [SYNTHESIZED] -> [VERIFIED] -> CLEANED_UP

where the bracketed stages run only when the request asks for them and the
build so far has succeeded. CLEANED_UP is reached on every path, including
failures, and is where ephemeral output is deleted.
"""

from __future__ import annotations

import dataclasses
import time
import uuid
from collections.abc import Callable, Sequence
from enum import StrEnum
from pathlib import Path
from typing import TypeAlias

from .classfile import ClassFileIntrospector, TypeMetadataProvider
from .config import BuildSettings
from .conformance import verify
from .errors import InvalidTransitionError
from .factory import synthesize
from .logging import bind_request_context, component_logger
from .models import BuildRequest, BuildResult, OutputStrategy
from .sources import collect, source_roots
from .toolchain import JavacToolchain, ScratchSpace, Toolchain, ToolchainInvoker

SOURCE_EXTENSION = ".java"
SYNTHESIS_FAILURE_MESSAGE = "Factory synthesis failed: generated sources could not be written"

emit_pipeline_log = component_logger("pipeline")

ProviderFactory: TypeAlias = Callable[[Path], TypeMetadataProvider]


class Stage(StrEnum):
    PENDING = "pending"
    BUILT = "built"
    SYNTHESIZED = "synthesized"
    VERIFIED = "verified"
    CLEANED_UP = "cleaned_up"


ALLOWED_TRANSITIONS: dict[Stage, frozenset[Stage]] = {
    Stage.PENDING: frozenset({Stage.BUILT, Stage.CLEANED_UP}),
    Stage.BUILT: frozenset({Stage.SYNTHESIZED, Stage.VERIFIED, Stage.CLEANED_UP}),
    Stage.SYNTHESIZED: frozenset({Stage.VERIFIED, Stage.CLEANED_UP}),
    Stage.VERIFIED: frozenset({Stage.CLEANED_UP}),
    Stage.CLEANED_UP: frozenset(),
}


@dataclasses.dataclass(slots=True)
class PipelineRun:
    """Mutable state of one build call; frozen into a BuildResult at the end."""

    request: BuildRequest
    stage: Stage = Stage.PENDING
    output_dir: Path | None = None
    build_ok: bool = False
    conformant: bool = True
    synthesis_failed: bool = False
    diagnostics: list[str] = dataclasses.field(default_factory=list)
    history: list[Stage] = dataclasses.field(default_factory=lambda: [Stage.PENDING])

    def advance(self, target: Stage) -> None:
        if target not in ALLOWED_TRANSITIONS[self.stage]:
            raise InvalidTransitionError(f"Cannot move from {self.stage} to {target}")
        emit_pipeline_log(
            "pipeline.transition",
            from_stage=str(self.stage),
            to_stage=str(target),
        )
        self.stage = target
        self.history.append(target)

    def result(self, *, strict_synthesis: bool = False) -> BuildResult:
        success = self.build_ok and self.conformant
        if strict_synthesis and self.synthesis_failed:
            success = False
        return BuildResult(success=success, diagnostics=list(self.diagnostics))


class Compiler:
    """
    Entry point for callers: compile contracts, tests, or a full submission.

    The toolchain and the type-metadata provider are injectable so the
    pipeline can be driven without a JDK.
    """

    def __init__(
        self,
        settings: BuildSettings | None = None,
        *,
        toolchain: Toolchain | None = None,
        provider_factory: ProviderFactory | None = None,
    ):
        self.settings = settings or BuildSettings.from_env()
        self.toolchain = toolchain or JavacToolchain(self.settings)
        self.scratch = ScratchSpace(self.settings.scratch_root)
        self.invoker = ToolchainInvoker(self.toolchain, self.scratch)
        self.provider_factory: ProviderFactory = provider_factory or ClassFileIntrospector

    def compile_interfaces(
        self,
        source_root: str | Path,
        destination: str | Path | None = None,
        *,
        synthesize_factory: bool = False,
    ) -> BuildResult:
        return self.build(
            BuildRequest(
                sources=[Path(source_root)],
                destination=destination,
                synthesize_factory=synthesize_factory,
            ),
            mode="interfaces",
        )

    def compile_tests(
        self,
        roots: Sequence[str | Path],
        destination: str | Path | None = None,
    ) -> BuildResult:
        return self.build(
            BuildRequest(
                sources=source_roots(roots),
                destination=destination,
            ),
            mode="tests",
        )

    def compile_submission(
        self,
        roots: Sequence[str | Path],
        destination: str | Path | None = None,
    ) -> BuildResult:
        return self.build(
            BuildRequest(
                sources=source_roots(roots),
                destination=destination,
                enforce_conformance=True,
                synthesize_factory=True,
            ),
            mode="submission",
        )

    def build(self, request: BuildRequest, *, mode: str = "build") -> BuildResult:
        """
        Run one request through the stage machine.

        Raises ConfigurationError for a missing source root; every other
        failure is reported through the returned BuildResult.
        """
        with bind_request_context(
            request_id=uuid.uuid4().hex[:12],
            mode=mode,
            strategy=request.strategy,
        ):
            return self._run(request)

    def _run(self, request: BuildRequest) -> BuildResult:
        started = time.monotonic()
        files = collect(request.sources, SOURCE_EXTENSION)
        emit_pipeline_log(
            "pipeline.start",
            sources=[str(path) for path in request.sources],
            files=len(files),
            enforce_conformance=request.enforce_conformance,
            synthesize_factory=request.synthesize_factory,
        )
        run = PipelineRun(request=request)
        ephemeral = request.strategy is OutputStrategy.EPHEMERAL
        run.output_dir = self.scratch.allocate() if ephemeral else request.destination
        try:
            self._build(run, files)
            if run.build_ok and request.synthesize_factory:
                self._synthesize(run)
            if run.build_ok and request.enforce_conformance:
                self._verify(run)
        finally:
            if ephemeral and run.output_dir is not None:
                self.scratch.release(run.output_dir)
            run.advance(Stage.CLEANED_UP)

        result = run.result(strict_synthesis=self.settings.strict_synthesis)
        emit_pipeline_log(
            "pipeline.complete",
            level="info" if result.success else "error",
            success=result.success,
            diagnostics=len(result.diagnostics),
            stages=[str(stage) for stage in run.history],
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return result

    def _build(self, run: PipelineRun, files: Sequence[Path]) -> None:
        outcome = self.invoker.build(files, run.request.strategy, run.output_dir)
        run.build_ok = outcome.success
        run.diagnostics = outcome.messages()
        run.advance(Stage.BUILT)

    def _synthesize(self, run: PipelineRun) -> None:
        assert run.output_dir is not None
        contracts_root = run.request.sources[0]
        factory_dir = contracts_root.resolve().parent / self.settings.factory_dir_name
        artifact = synthesize(
            run.output_dir,
            contracts_root,
            factory_dir,
            provider=self.provider_factory(run.output_dir),
            contract_package=self.settings.contract_package,
            factory_dir_name=self.settings.factory_dir_name,
        )
        if artifact is None:
            run.synthesis_failed = True
            if self.settings.strict_synthesis:
                run.diagnostics.append(SYNTHESIS_FAILURE_MESSAGE)
            return

        # Second pass so the generated factory is compiled with everything else.
        files = collect([*run.request.sources, factory_dir], SOURCE_EXTENSION)
        outcome = self.invoker.build(files, run.request.strategy, run.output_dir)
        run.build_ok = outcome.success
        run.diagnostics = outcome.messages()
        run.advance(Stage.SYNTHESIZED)

    def _verify(self, run: PipelineRun) -> None:
        assert run.output_dir is not None
        report = verify(run.output_dir, self.provider_factory(run.output_dir))
        run.conformant = report.all_satisfied
        run.diagnostics.extend(report.messages)
        run.advance(Stage.VERIFIED)


def compile_interfaces(
    source_root: str | Path,
    destination: str | Path | None = None,
    *,
    synthesize_factory: bool = False,
) -> BuildResult:
    return Compiler().compile_interfaces(
        source_root,
        destination,
        synthesize_factory=synthesize_factory,
    )


def compile_tests(
    roots: Sequence[str | Path],
    destination: str | Path | None = None,
) -> BuildResult:
    return Compiler().compile_tests(roots, destination)


def compile_submission(
    roots: Sequence[str | Path],
    destination: str | Path | None = None,
) -> BuildResult:
    return Compiler().compile_submission(roots, destination)
