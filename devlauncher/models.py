"""Data models shared across the bootstrap pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class Profile(str, Enum):
    DEBUG = "debug"
    RELEASE = "release"

    @property
    def cargo_flags(self) -> list[str]:
        return ["--release"] if self is Profile.RELEASE else []


@dataclass(frozen=True)
class ToolRequirement:
    """An external command that must be resolvable before building."""

    name: str
    probe_command: str


@dataclass(frozen=True)
class RunConfig:
    """Per-invocation switches derived from the command line."""

    release: bool = False
    skip_build: bool = False
    verbose: bool = False

    @property
    def profile(self) -> Profile:
        return Profile.RELEASE if self.release else Profile.DEBUG


class PipelineState(str, Enum):
    START = "start"
    CHECKING = "checking"
    READY = "ready"
    MISSING = "missing"
    INSTALLING = "installing"
    INSTALL_FAILED = "install_failed"
    MISSING_AFTER_INSTALL = "missing_after_install"
    BUILDING = "building"
    BUILT = "built"
    BUILD_FAILED = "build_failed"
    SKIP_BUILD = "skip_build"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    LAUNCHING = "launching"
    LAUNCH_FAILED = "launch_failed"
    DONE = "done"


@dataclass
class PipelineOutcome:
    """Terminal result of a pipeline run.

    ``exit_code`` is what the orchestrator process should exit with; ``hint``
    is the next concrete action for the user when the run failed.
    """

    state: PipelineState
    exit_code: int
    error: Optional[Exception] = None
    hint: Optional[str] = None
    binary: Optional[Path] = None
    installed: list[Path] = field(default_factory=list)
    history: list[PipelineState] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.state is PipelineState.DONE and self.exit_code == 0
