"""Factory scaffolding generated from a directory of compiled contracts.

The synthesizer emits two sources: a factory contract with one
`create<Contract>(String)` method per contract, and a stub implementation
whose methods all return a placeholder. The stub is meant to be completed
by hand; it only has to compile.

Generation is split in two: `FactoryTemplate` is an ordered list of
methods that knows nothing about target syntax, and a `FactorySyntax`
names the jinja2 templates that render it.
"""

from __future__ import annotations

import dataclasses
import os
import uuid
from collections.abc import Iterable
from pathlib import Path

import jinja2

from .classfile import TypeMetadataProvider, compiled_type_names
from .errors import ClassFormatError, SynthesisIOError, TypeNotFoundError
from .logging import component_logger
from .models import CompiledUnit

emit_factory_log = component_logger("factory")

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates"
FACTORY_CONTRACT_NAME = "FactoryInterface"
FACTORY_IMPLEMENTATION_NAME = "Factory"
DEFAULT_FACTORY_DIR = "factory"


@dataclasses.dataclass(frozen=True, slots=True)
class FactoryMethod:
    name: str
    return_type: str
    parameters: tuple[tuple[str, str], ...] = (("java.lang.String", "arg"),)


@dataclasses.dataclass(frozen=True, slots=True)
class FactoryTemplate:
    contract_name: str
    implementation_name: str
    contract_package: str
    implementation_package: str
    methods: tuple[FactoryMethod, ...]

    @property
    def contract_qualified_name(self) -> str:
        return qualify(self.contract_package, self.contract_name)

    @classmethod
    def for_contracts(
        cls,
        contracts: Iterable[str],
        *,
        contract_package: str,
        implementation_package: str,
        contract_name: str = FACTORY_CONTRACT_NAME,
        implementation_name: str = FACTORY_IMPLEMENTATION_NAME,
    ) -> FactoryTemplate:
        methods = tuple(
            FactoryMethod(name=f"create{simple_name(contract)}", return_type=contract)
            for contract in contracts
        )
        return cls(
            contract_name=contract_name,
            implementation_name=implementation_name,
            contract_package=contract_package,
            implementation_package=implementation_package,
            methods=methods,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class FactorySyntax:
    name: str
    extension: str
    contract_template: str
    implementation_template: str
    placeholder: str
    implicit_packages: tuple[str, ...] = ()


SYNTAXES: dict[str, FactorySyntax] = {
    "java": FactorySyntax(
        name="java",
        extension=".java",
        contract_template="java/factory_contract.java.j2",
        implementation_template="java/factory_implementation.java.j2",
        placeholder="null",
        implicit_packages=("java.lang",),
    ),
}


@dataclasses.dataclass(frozen=True, slots=True)
class FactoryArtifact:
    contract_filename: str
    contract_source: str
    implementation_filename: str
    implementation_source: str
    contracts: tuple[str, ...]


def qualify(package: str, name: str) -> str:
    return f"{package}.{name}" if package else name


def simple_name(qualified: str) -> str:
    return qualified.rsplit(".", 1)[-1]


def package_of(qualified: str) -> str:
    return qualified.rpartition(".")[0]


def sibling_package(package: str, leaf: str) -> str:
    """`a.b.interfaces` -> `a.b.factory`; the default package stays default."""
    if not package:
        return ""
    parent = package.rpartition(".")[0]
    return qualify(parent, leaf)


def _jinja_environment(syntax: FactorySyntax) -> jinja2.Environment:
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(TEMPLATE_DIR),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        undefined=jinja2.StrictUndefined,
    )

    def type_reference(qualified: str, package: str) -> str:
        owner = package_of(qualified)
        if owner == package or owner in syntax.implicit_packages:
            return simple_name(qualified)
        return qualified

    def parameter_list(parameters: tuple[tuple[str, str], ...], package: str) -> str:
        return ", ".join(
            f"{type_reference(type_name, package)} {name}"
            for type_name, name in parameters
        )

    env.filters["typeref"] = type_reference
    env.filters["parameters"] = parameter_list
    return env


def render(template: FactoryTemplate, syntax_name: str = "java") -> FactoryArtifact:
    syntax = SYNTAXES[syntax_name]
    env = _jinja_environment(syntax)
    context = {
        "template": template,
        "placeholder": syntax.placeholder,
    }
    contract_source = env.get_template(syntax.contract_template).render(
        package=template.contract_package,
        **context,
    )
    implementation_source = env.get_template(syntax.implementation_template).render(
        package=template.implementation_package,
        **context,
    )
    return FactoryArtifact(
        contract_filename=template.contract_name + syntax.extension,
        contract_source=contract_source,
        implementation_filename=template.implementation_name + syntax.extension,
        implementation_source=implementation_source,
        contracts=tuple(method.return_type for method in template.methods),
    )


def discover_contracts(
    compiled_dir: Path,
    provider: TypeMetadataProvider | None = None,
    *,
    exclude: Iterable[str] = (FACTORY_CONTRACT_NAME,),
) -> list[str]:
    """
    Qualified names of the contracts compiled under `compiled_dir`.

    Without a provider every compiled top-level type counts, as when the
    directory holds nothing but contracts. With one, only interface-like
    types are kept. Output is sorted by simple name and unique per simple
    name, since each one becomes a method name.
    """
    excluded = set(exclude)
    by_simple_name: dict[str, str] = {}
    for name in sorted(compiled_type_names(compiled_dir)):
        leaf = simple_name(name)
        if "$" in leaf or leaf in excluded:
            continue
        if provider is not None:
            try:
                unit: CompiledUnit = provider.load(name)
            except (TypeNotFoundError, ClassFormatError, OSError) as error:
                emit_factory_log(
                    "factory.skip",
                    level="warning",
                    message=str(error),
                    type_name=name,
                )
                continue
            if not unit.is_contract:
                continue
        if leaf in by_simple_name:
            emit_factory_log(
                "factory.duplicate",
                level="warning",
                message=f"{name} shadows {by_simple_name[leaf]}",
            )
            continue
        by_simple_name[leaf] = name
    return [by_simple_name[leaf] for leaf in sorted(by_simple_name)]


def infer_contract_package(contracts: Iterable[str]) -> str:
    packages = sorted({package_of(name) for name in contracts})
    if not packages:
        return ""
    if len(packages) > 1:
        emit_factory_log(
            "factory.mixed_packages",
            level="warning",
            message=f"contracts span {len(packages)} packages, using {packages[0]!r}",
        )
    return packages[0]


def write_artifact(
    artifact: FactoryArtifact,
    contract_output_dir: Path,
    implementation_output_dir: Path,
) -> tuple[Path, Path]:
    """
    Stage both files next to their targets, then move them into place.

    Nothing is left behind if either write fails.
    """
    targets = [
        (contract_output_dir, artifact.contract_filename, artifact.contract_source),
        (
            implementation_output_dir,
            artifact.implementation_filename,
            artifact.implementation_source,
        ),
    ]
    staged: list[tuple[Path, Path]] = []
    token = uuid.uuid4().hex[:8]
    try:
        for directory, filename, text in targets:
            directory.mkdir(parents=True, exist_ok=True)
            temporary = directory / f".{filename}.{token}.tmp"
            staged.append((temporary, directory / filename))
            _ = temporary.write_text(text, encoding="utf-8")
        for temporary, target in staged:
            os.replace(temporary, target)
    except OSError as error:
        for temporary, _target in staged:
            temporary.unlink(missing_ok=True)
        raise SynthesisIOError(str(error)) from error
    return staged[0][1], staged[1][1]


def synthesize(
    compiled_contracts_dir: Path,
    contract_output_dir: Path,
    implementation_output_dir: Path,
    *,
    provider: TypeMetadataProvider | None = None,
    contract_package: str | None = None,
    factory_dir_name: str = DEFAULT_FACTORY_DIR,
    syntax: str = "java",
) -> FactoryArtifact | None:
    """
    Generate and write the factory contract and its stub implementation.

    Returns the artifact, or None when the files could not be written; the
    failure is logged, not raised. Re-running with the same compiled
    contracts rewrites identical bytes.
    """
    contracts = discover_contracts(compiled_contracts_dir, provider)
    package = (
        contract_package
        if contract_package is not None
        else infer_contract_package(contracts)
    )
    template = FactoryTemplate.for_contracts(
        contracts,
        contract_package=package,
        implementation_package=sibling_package(package, factory_dir_name),
    )
    artifact = render(template, syntax)
    try:
        contract_path, implementation_path = write_artifact(
            artifact,
            contract_output_dir,
            implementation_output_dir,
        )
    except SynthesisIOError as error:
        emit_factory_log(
            "factory.failed",
            level="error",
            message=str(error),
            contract_dir=str(contract_output_dir),
            implementation_dir=str(implementation_output_dir),
        )
        return None

    emit_factory_log(
        "factory.written",
        contracts=len(contracts),
        contract_path=str(contract_path),
        implementation_path=str(implementation_path),
    )
    return artifact
