from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

from .errors import ConfigurationError
from .logging import component_logger

emit_collect_log = component_logger("sources")


def source_roots(roots: Iterable[str | Path]) -> list[Path]:
    paths = [Path(root) for root in roots]
    if not paths:
        raise ConfigurationError(None, "No source roots given")
    return paths


def require_directory(root: Path) -> Path:
    if not root.exists():
        raise ConfigurationError(root, "Source root does not exist")
    if not root.is_dir():
        raise ConfigurationError(root, "Source root is not a directory")
    return root


def collect(roots: Iterable[str | Path], extension: str) -> list[Path]:
    """
    Return every regular file under `roots` whose name ends with `extension`.
    An empty extension matches all files. Missing roots raise ConfigurationError.
    """
    files: list[Path] = []
    seen: set[Path] = set()
    root_count = 0
    for raw_root in roots:
        root = require_directory(Path(raw_root))
        root_count += 1
        for directory, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for filename in sorted(filenames):
                if not filename.endswith(extension):
                    continue
                path = Path(directory) / filename
                if not path.is_file():
                    continue
                key = path.resolve()
                if key in seen:
                    continue
                seen.add(key)
                files.append(path)

    emit_collect_log(
        "collect.complete",
        roots=root_count,
        extension=extension or "*",
        matched=len(files),
    )
    return files
