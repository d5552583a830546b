from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest
from gradebuild.config import BuildSettings
from gradebuild.errors import ConfigurationError, InvalidTransitionError
from gradebuild.models import BuildRequest, Diagnostic, Severity, ToolchainResult
from gradebuild.pipeline import SYNTHESIS_FAILURE_MESSAGE, Compiler, PipelineRun, Stage

_PACKAGE_RE = re.compile(r"^\s*package\s+([\w.]+)\s*;", re.MULTILINE)
_DECLARATION_RE = re.compile(
    r"\b(?P<kind>class|interface)\s+(?P<name>\w+)"
    r"(?:\s+extends\s+(?P<extends>[\w.,\s]+?))?"
    r"(?:\s+implements\s+(?P<implements>[\w.,\s]+?))?\s*\{"
)


class FakeJavac:
    """
    Understands just enough Java to emit class headers: one top-level
    declaration per file, its package, and what it extends/implements.
    A file containing SYNTAX_ERROR fails the whole build.
    """

    def __init__(self, write_class: Callable[..., Path]):
        self.write_class = write_class
        self.calls: list[list[Path]] = []

    def invoke(self, files: Sequence[Path], output_dir: Path) -> ToolchainResult:
        self.calls.append(list(files))
        broken = [path for path in files if "SYNTAX_ERROR" in path.read_text()]
        if broken:
            diagnostics = tuple(
                Diagnostic(
                    severity=Severity.ERROR,
                    message=f"{path}:1: error: ';' expected",
                    file=str(path),
                    line=1,
                )
                for path in broken
            )
            return ToolchainResult(success=False, diagnostics=diagnostics, output_dir=output_dir)

        for path in files:
            text = path.read_text()
            package_match = _PACKAGE_RE.search(text)
            package = package_match.group(1) if package_match else ""
            declaration = _DECLARATION_RE.search(text)
            assert declaration is not None, path
            is_interface = declaration.group("kind") == "interface"
            listed = (
                declaration.group("extends") if is_interface else declaration.group("implements")
            ) or ""
            interfaces = [
                self.qualify(item.strip(), package)
                for item in listed.split(",")
                if item.strip()
            ]
            name = self.qualify(declaration.group("name"), package)
            _ = self.write_class(output_dir, name, interface=is_interface, interfaces=interfaces)
        return ToolchainResult(success=True, output_dir=output_dir)

    @staticmethod
    def qualify(name: str, package: str) -> str:
        if "." in name or not package:
            return name
        return f"{package}.{name}"


@pytest.fixture
def javac(write_class: Callable[..., Path]) -> FakeJavac:
    return FakeJavac(write_class)


@pytest.fixture
def compiler(settings: BuildSettings, javac: FakeJavac) -> Compiler:
    return Compiler(settings, toolchain=javac)


def write_sources(root: Path, sources: dict[str, str]) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    for filename, text in sources.items():
        (root / filename).write_text(text)
    return root


def scratch_entries(settings: BuildSettings) -> list[Path]:
    if not settings.scratch_root.exists():
        return []
    return list(settings.scratch_root.iterdir())


def test_compile_tests_discards_output(
    tmp_path: Path,
    compiler: Compiler,
    javac: FakeJavac,
    settings: BuildSettings,
) -> None:
    interfaces = write_sources(tmp_path / "interfaces", {"Shape.java": "public interface Shape {}"})
    tests = write_sources(tmp_path / "tests", {"ShapeTest.java": "public class ShapeTest {}"})

    result = compiler.compile_tests([interfaces, tests])

    assert result.success is True
    assert result.diagnostics == []
    assert len(javac.calls) == 1
    assert sorted(path.name for path in javac.calls[0]) == ["Shape.java", "ShapeTest.java"]
    assert scratch_entries(settings) == []


def test_submission_with_implemented_contract_succeeds(
    tmp_path: Path,
    compiler: Compiler,
    javac: FakeJavac,
    settings: BuildSettings,
) -> None:
    root = write_sources(
        tmp_path / "interfaces",
        {
            "Shape.java": "public interface Shape {}",
            "Circle.java": "public class Circle implements Shape {}",
        },
    )

    result = compiler.compile_submission([root])

    assert result.success is True
    assert result.diagnostics == []
    assert (root / "FactoryInterface.java").exists()
    assert (tmp_path / "factory" / "Factory.java").exists()
    assert len(javac.calls) == 2
    assert "Factory.java" in {path.name for path in javac.calls[1]}
    assert scratch_entries(settings) == []


def test_submission_with_unimplemented_contract_fails(
    tmp_path: Path,
    compiler: Compiler,
    settings: BuildSettings,
) -> None:
    root = write_sources(tmp_path / "interfaces", {"Shape.java": "public interface Shape {}"})

    result = compiler.compile_submission([root])

    assert result.success is False
    assert result.diagnostics == ["Shape"]
    assert scratch_entries(settings) == []


def test_build_failure_skips_post_steps_and_cleans_up(
    tmp_path: Path,
    compiler: Compiler,
    javac: FakeJavac,
    settings: BuildSettings,
) -> None:
    root = write_sources(
        tmp_path / "interfaces",
        {
            "Shape.java": "public interface Shape {}",
            "Broken.java": "public class Broken { SYNTAX_ERROR }",
        },
    )

    result = compiler.compile_submission([root])

    assert result.success is False
    assert len(result.diagnostics) == 1
    assert "Broken.java:1: error" in result.diagnostics[0]
    assert len(javac.calls) == 1
    assert not (root / "FactoryInterface.java").exists()
    assert scratch_entries(settings) == []


def test_persistent_destination_is_kept(tmp_path: Path, compiler: Compiler) -> None:
    root = write_sources(
        tmp_path / "interfaces",
        {
            "Shape.java": "public interface Shape {}",
            "Circle.java": "public class Circle implements Shape {}",
        },
    )
    destination = tmp_path / "classes"

    result = compiler.compile_submission([root], destination)

    assert result.success is True
    assert (destination / "Shape.class").exists()
    assert (destination / "Factory.class").exists()


def test_compile_interfaces_defaults_to_a_single_discarded_pass(
    tmp_path: Path,
    compiler: Compiler,
    javac: FakeJavac,
) -> None:
    root = write_sources(tmp_path / "interfaces", {"Shape.java": "public interface Shape {}"})

    result = compiler.compile_interfaces(root)

    assert result.success is True
    assert len(javac.calls) == 1
    assert not (root / "FactoryInterface.java").exists()


def test_compile_interfaces_can_synthesize_the_factory(
    tmp_path: Path,
    compiler: Compiler,
    javac: FakeJavac,
) -> None:
    root = write_sources(
        tmp_path / "interfaces",
        {
            "Shape.java": "public interface Shape {}",
            "Sized.java": "public interface Sized {}",
        },
    )

    result = compiler.compile_interfaces(root, synthesize_factory=True)

    assert result.success is True
    contract = (root / "FactoryInterface.java").read_text()
    assert "createShape(String arg)" in contract
    assert "createSized(String arg)" in contract
    assert len(javac.calls) == 2


def test_rerunning_synthesis_ignores_the_generated_contract(
    tmp_path: Path,
    compiler: Compiler,
) -> None:
    root = write_sources(tmp_path / "interfaces", {"Shape.java": "public interface Shape {}"})

    _ = compiler.compile_interfaces(root, synthesize_factory=True)
    first = (root / "FactoryInterface.java").read_bytes()
    _ = compiler.compile_interfaces(root, synthesize_factory=True)

    assert (root / "FactoryInterface.java").read_bytes() == first
    assert b"createFactoryInterface" not in first


def blocked_factory(tmp_path: Path) -> Path:
    root = write_sources(
        tmp_path / "interfaces",
        {
            "Shape.java": "public interface Shape {}",
            "Circle.java": "public class Circle implements Shape {}",
        },
    )
    (tmp_path / "factory").write_text("a file where the factory directory goes")
    return root


def test_synthesis_write_failure_does_not_fail_the_build(
    tmp_path: Path,
    compiler: Compiler,
    javac: FakeJavac,
) -> None:
    root = blocked_factory(tmp_path)

    result = compiler.compile_submission([root])

    assert result.success is True
    assert result.diagnostics == []
    assert len(javac.calls) == 1


def test_strict_synthesis_turns_write_failure_into_failure(
    tmp_path: Path,
    javac: FakeJavac,
) -> None:
    settings = BuildSettings(scratch_root=tmp_path / "scratch", strict_synthesis=True)
    root = blocked_factory(tmp_path)

    result = Compiler(settings, toolchain=javac).compile_submission([root])

    assert result.success is False
    assert result.diagnostics == [SYNTHESIS_FAILURE_MESSAGE]


def test_missing_source_root_raises_before_allocating(
    tmp_path: Path,
    compiler: Compiler,
    javac: FakeJavac,
    settings: BuildSettings,
) -> None:
    with pytest.raises(ConfigurationError):
        compiler.compile_submission([tmp_path / "missing"])

    assert javac.calls == []
    assert scratch_entries(settings) == []


def test_blank_destination_means_ephemeral(tmp_path: Path) -> None:
    request = BuildRequest(sources=[tmp_path], destination="", enforce_conformance=True)

    assert request.destination is None
    assert request.strategy == "ephemeral"


def test_stage_history_is_logged(
    tmp_path: Path,
    compiler: Compiler,
    captured_logs: list[dict[str, object]],
) -> None:
    root = write_sources(
        tmp_path / "interfaces",
        {
            "Shape.java": "public interface Shape {}",
            "Circle.java": "public class Circle implements Shape {}",
        },
    )

    _ = compiler.compile_submission([root])

    complete = [record for record in captured_logs if record["event"] == "pipeline.complete"]
    assert complete[0]["stages"] == ["pending", "built", "synthesized", "verified", "cleaned_up"]
    assert complete[0]["mode"] == "submission"
    assert complete[0]["strategy"] == "ephemeral"
    assert all("request_id" in record for record in captured_logs if record["component"] == "pipeline")


def test_state_machine_rejects_skipping_the_build(tmp_path: Path) -> None:
    run = PipelineRun(request=BuildRequest(sources=[tmp_path]))

    with pytest.raises(InvalidTransitionError):
        run.advance(Stage.VERIFIED)

    run.advance(Stage.BUILT)
    run.advance(Stage.CLEANED_UP)
    with pytest.raises(InvalidTransitionError):
        run.advance(Stage.BUILT)


@pytest.mark.parametrize("entry", ["compile_tests", "compile_submission"])
def test_empty_source_list_is_a_configuration_error(
    compiler: Compiler,
    javac: FakeJavac,
    entry: str,
) -> None:
    with pytest.raises(ConfigurationError, match="No source roots given"):
        getattr(compiler, entry)([])

    assert javac.calls == []
