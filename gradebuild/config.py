"""Runtime settings for the build pipeline.

Every knob can be set from a GRADEBUILD_* environment variable; callers that
need isolation (tests, the web layer) construct BuildSettings directly.
"""

from __future__ import annotations

import os
import shlex
import tempfile
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

TRUTHY_VALUES = {"1", "true", "yes", "on"}


def default_scratch_root() -> Path:
    return Path(tempfile.gettempdir()) / "gradebuild"


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY_VALUES


def env_text(name: str) -> str | None:
    raw = (os.environ.get(name) or "").strip()
    return raw or None


class BuildSettings(BaseModel):
    """Toolchain, scratch-space and factory settings for one Compiler."""

    model_config = ConfigDict(frozen=True)

    javac: str = "javac"
    javac_flags: list[str] = Field(default_factory=list)
    classpath: str | None = None
    encoding: str = "UTF-8"
    scratch_root: Path = Field(default_factory=default_scratch_root)
    timeout_seconds: int = 0
    factory_dir_name: str = "factory"
    contract_package: str | None = None
    strict_synthesis: bool = False

    @classmethod
    def from_env(cls) -> BuildSettings:
        values: dict[str, object] = {
            "javac": env_text("GRADEBUILD_JAVAC") or "javac",
            "javac_flags": shlex.split(os.environ.get("GRADEBUILD_JAVAC_FLAGS", "")),
            "classpath": env_text("GRADEBUILD_CLASSPATH"),
            "encoding": env_text("GRADEBUILD_ENCODING") or "UTF-8",
            "timeout_seconds": max(
                0, int(os.environ.get("GRADEBUILD_TIMEOUT_SECONDS", "0") or "0")
            ),
            "factory_dir_name": env_text("GRADEBUILD_FACTORY_DIR") or "factory",
            "contract_package": env_text("GRADEBUILD_CONTRACT_PACKAGE"),
            "strict_synthesis": env_flag("GRADEBUILD_STRICT_SYNTHESIS"),
        }
        scratch_root = env_text("GRADEBUILD_SCRATCH_ROOT")
        if scratch_root is not None:
            values["scratch_root"] = Path(scratch_root)
        return cls.model_validate(values)
