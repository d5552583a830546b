"""Parse javac stderr into ordered Diagnostic records."""

from __future__ import annotations

import dataclasses
import re

from .models import Diagnostic, Severity

_LOCATED_RE = re.compile(
    r"^(?P<file>.+?):(?P<line>\d+):\s*(?P<severity>error|warning):\s*(?P<message>.*)$"
)
_BARE_RE = re.compile(r"^(?P<severity>error|warning):\s*(?P<message>.*)$")
_NOTE_RE = re.compile(r"^Note:\s*(?P<message>.*)$")
_SUMMARY_RE = re.compile(r"^\d+\s+(?:error|warning)s?$")


@dataclasses.dataclass(slots=True)
class _Block:
    severity: Severity
    lines: list[str]
    file: str | None = None
    line: int | None = None

    def freeze(self) -> Diagnostic:
        text = "\n".join(self.lines).rstrip()
        return Diagnostic(
            severity=self.severity,
            message=text,
            file=self.file,
            line=self.line,
        )


@dataclasses.dataclass(frozen=True, slots=True)
class ParsedOutput:
    diagnostics: tuple[Diagnostic, ...]
    unparsed: tuple[str, ...]

    def surfaced(self) -> tuple[Diagnostic, ...]:
        return tuple(item for item in self.diagnostics if item.surfaced)


def _open_block(raw_line: str) -> _Block | None:
    stripped = raw_line.rstrip()
    located = _LOCATED_RE.match(stripped)
    if located:
        return _Block(
            severity=Severity(located.group("severity")),
            lines=[stripped],
            file=located.group("file").strip(),
            line=int(located.group("line")),
        )
    bare = _BARE_RE.match(stripped)
    if bare:
        return _Block(severity=Severity(bare.group("severity")), lines=[stripped])
    note = _NOTE_RE.match(stripped)
    if note:
        return _Block(severity=Severity.NOTE, lines=[stripped])
    return None


def parse_javac_output(text: str) -> ParsedOutput:
    """
    Split javac output into diagnostics in emission order.

    A diagnostic starts at a `file:line: error|warning:` header, a bare
    `error:`/`warning:` line, or a `Note:` line, and owns every following
    line (source excerpt, caret, symbol/location details) until the next
    header. Trailing `N errors` summaries are dropped. Lines seen before
    the first header are returned as `unparsed`.
    """
    diagnostics: list[Diagnostic] = []
    unparsed: list[str] = []
    current: _Block | None = None

    for raw_line in text.splitlines():
        if _SUMMARY_RE.match(raw_line.strip()):
            if current is not None:
                diagnostics.append(current.freeze())
                current = None
            continue

        opened = _open_block(raw_line)
        if opened is not None:
            if current is not None:
                diagnostics.append(current.freeze())
            current = opened
            # Notes are always one line.
            if opened.severity is Severity.NOTE:
                diagnostics.append(opened.freeze())
                current = None
            continue

        if current is not None:
            current.lines.append(raw_line.rstrip())
        elif raw_line.strip():
            unparsed.append(raw_line.rstrip())

    if current is not None:
        diagnostics.append(current.freeze())

    return ParsedOutput(diagnostics=tuple(diagnostics), unparsed=tuple(unparsed))


def crash_diagnostic(description: str) -> Diagnostic:
    return Diagnostic(
        severity=Severity.ERROR,
        message=f"Compiler crashed: {description}".rstrip(),
    )
