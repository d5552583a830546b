"""Compiler invocation with Discard, Ephemeral and Persistent output.

`JavacToolchain` runs the external compiler once per call. `ScratchSpace`
hands out uniquely named directories for ephemeral output; names are uuid
tokens, so concurrent callers sharing a scratch root never collide.
`ToolchainInvoker` maps an OutputStrategy onto a concrete directory.
"""

from __future__ import annotations

import shutil
import subprocess
import time
import uuid
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from .config import BuildSettings
from .diagnostics import crash_diagnostic, parse_javac_output
from .logging import component_logger
from .models import OutputStrategy, ToolchainResult

emit_toolchain_log = component_logger("toolchain")

CRASH_TAIL_LINES = 20


@runtime_checkable
class Toolchain(Protocol):
    """Anything that can compile a file list into an output directory."""

    def invoke(self, files: Sequence[Path], output_dir: Path) -> ToolchainResult:
        """Compile `files` into `output_dir`; never raises for compile errors."""
        ...


class JavacToolchain:
    def __init__(self, settings: BuildSettings | None = None):
        self.settings = settings or BuildSettings.from_env()

    def command(self, files: Sequence[Path], output_dir: Path) -> list[str]:
        argv = [
            self.settings.javac,
            "-d",
            str(output_dir),
            "-encoding",
            self.settings.encoding,
        ]
        if self.settings.classpath:
            argv.extend(["-cp", self.settings.classpath])
        argv.extend(self.settings.javac_flags)
        argv.extend(str(path) for path in files)
        return argv

    def invoke(self, files: Sequence[Path], output_dir: Path) -> ToolchainResult:
        if not files:
            emit_toolchain_log("toolchain.skip", message="no source files")
            return ToolchainResult(success=True, output_dir=output_dir)

        argv = self.command(files, output_dir)
        timeout = self.settings.timeout_seconds or None
        started = time.monotonic()
        emit_toolchain_log(
            "toolchain.start",
            message=self.settings.javac,
            files=len(files),
            output_dir=str(output_dir),
        )
        try:
            completed = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            description = f"{self.settings.javac} timed out after {timeout} seconds"
            emit_toolchain_log("toolchain.crash", level="error", message=description)
            return ToolchainResult(
                success=False,
                diagnostics=(crash_diagnostic(description),),
                output_dir=output_dir,
            )
        except OSError as error:
            description = f"{self.settings.javac}: {error}"
            emit_toolchain_log("toolchain.crash", level="error", message=description)
            return ToolchainResult(
                success=False,
                diagnostics=(crash_diagnostic(description),),
                output_dir=output_dir,
            )

        parsed = parse_javac_output(completed.stdout or "")
        diagnostics = parsed.surfaced()
        success = completed.returncode == 0
        if not success and not diagnostics:
            tail = "\n".join(parsed.unparsed[-CRASH_TAIL_LINES:])
            description = tail or f"{self.settings.javac} exited with status {completed.returncode}"
            diagnostics = (crash_diagnostic(description),)

        emit_toolchain_log(
            "toolchain.complete",
            level="info" if success else "error",
            exit_code=completed.returncode,
            diagnostics=len(diagnostics),
            dropped_warnings=len(parsed.diagnostics) - len(parsed.surfaced()),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        return ToolchainResult(
            success=success,
            diagnostics=diagnostics,
            output_dir=output_dir,
        )


class ScratchSpace:
    def __init__(self, root: Path):
        self.root = root

    def allocate(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / uuid.uuid4().hex
        path.mkdir()
        emit_toolchain_log("scratch.allocate", path=str(path))
        return path

    def release(self, path: Path) -> None:
        shutil.rmtree(path, ignore_errors=True)
        emit_toolchain_log("scratch.release", path=str(path))


class ToolchainInvoker:
    """Resolve an output strategy to a directory and run one build."""

    def __init__(self, toolchain: Toolchain, scratch: ScratchSpace):
        self.toolchain = toolchain
        self.scratch = scratch

    def build(
        self,
        files: Sequence[Path],
        strategy: OutputStrategy,
        destination: Path | None = None,
    ) -> ToolchainResult:
        """
        Compile `files`.

        DISCARD compiles into a sink directory that is removed before
        returning, so the result carries no output_dir. EPHEMERAL allocates
        a scratch directory and hands it back; the caller releases it.
        PERSISTENT (and EPHEMERAL with an explicit destination, used for
        follow-up passes into an already allocated directory) writes to
        `destination`, creating it if needed.
        """
        if strategy is OutputStrategy.DISCARD:
            sink = self.scratch.allocate()
            try:
                result = self.toolchain.invoke(files, sink)
            finally:
                self.scratch.release(sink)
            return ToolchainResult(success=result.success, diagnostics=result.diagnostics)

        if destination is not None:
            destination.mkdir(parents=True, exist_ok=True)
            result = self.toolchain.invoke(files, destination)
        elif strategy is OutputStrategy.PERSISTENT:
            raise ValueError("Persistent output requires a destination")
        else:
            destination = self.scratch.allocate()
            try:
                result = self.toolchain.invoke(files, destination)
            except BaseException:
                self.scratch.release(destination)
                raise

        return ToolchainResult(
            success=result.success,
            diagnostics=result.diagnostics,
            output_dir=destination,
        )
