"""Check that every compiled contract has at least one direct implementer."""

from __future__ import annotations

from pathlib import Path

from .classfile import (
    ClassFileIntrospector,
    TypeMetadataProvider,
    compiled_type_names,
)
from .errors import ClassFormatError, TypeNotFoundError
from .logging import component_logger
from .models import CompiledUnit, ConformanceReport, ConformanceTable

emit_conformance_log = component_logger("conformance")

INTROSPECTION_FAILURE_MESSAGE = "Class not found, please inform a system administrator"


def record_unit(table: ConformanceTable, unit: CompiledUnit) -> None:
    """
    Fold one compiled type into the table.

    A contract enters as unsatisfied unless an earlier type already
    claimed it. Each directly listed contract is marked satisfied; bases
    of those contracts are not.
    """
    if unit.is_contract and unit.name not in table:
        table[unit.name] = False
    for contract in unit.contracts:
        table[contract] = True


def verify(
    compiled_dir: Path,
    provider: TypeMetadataProvider | None = None,
) -> ConformanceReport:
    """
    Build a ConformanceTable for `compiled_dir` and report what is missing.

    Unsatisfied contract names are the report's messages on a normal run.
    If a type listed on disk cannot be resolved the report fails with a
    single operator-facing message instead.
    """
    resolver = provider if provider is not None else ClassFileIntrospector(compiled_dir)
    table: ConformanceTable = {}
    names = compiled_type_names(compiled_dir)

    for name in names:
        try:
            unit = resolver.load(name)
        except (TypeNotFoundError, ClassFormatError, OSError) as error:
            emit_conformance_log(
                "conformance.inconsistent",
                level="error",
                message=str(error),
                type_name=name,
                compiled_dir=str(compiled_dir),
            )
            return ConformanceReport(
                all_satisfied=False,
                messages=(INTROSPECTION_FAILURE_MESSAGE,),
            )
        record_unit(table, unit)

    unsatisfied = sorted(name for name, satisfied in table.items() if not satisfied)
    emit_conformance_log(
        "conformance.complete",
        level="info" if not unsatisfied else "error",
        types=len(names),
        contracts=len(table),
        unsatisfied=unsatisfied or None,
    )
    return ConformanceReport(
        all_satisfied=not unsatisfied,
        unsatisfied=tuple(unsatisfied),
        messages=tuple(unsatisfied),
    )
