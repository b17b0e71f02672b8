"""Prerequisite detection: is each required tool resolvable right now?"""

from __future__ import annotations

import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from devlauncher.models import ToolRequirement
from devlauncher.path_registry import SessionEnvironment

logger = logging.getLogger(__name__)


class Prober(ABC):
    """Decides whether one tool is resolvable in a session."""

    def __init__(self, requirement: ToolRequirement):
        self.requirement = requirement

    @abstractmethod
    def is_resolvable(self, session: SessionEnvironment) -> bool:
        ...


class CommandProber(Prober):
    """Resolvable when the probe command is found on the session PATH."""

    def is_resolvable(self, session: SessionEnvironment) -> bool:
        found = session.which(self.requirement.probe_command)
        logger.debug("which %s -> %s", self.requirement.probe_command, found)
        return found is not None


class VersionProber(CommandProber):
    """Resolvable when found on PATH and ``<cmd> --version`` succeeds.

    A rustup proxy can sit on PATH without any toolchain behind it.
    """

    def __init__(self, requirement: ToolRequirement, timeout: int = 30):
        super().__init__(requirement)
        self.timeout = timeout

    def is_resolvable(self, session: SessionEnvironment) -> bool:
        executable = session.which(self.requirement.probe_command)
        if executable is None:
            return False
        try:
            result = subprocess.run(
                [executable, "--version"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=session.child_env(),
            )
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.debug("%s --version failed: %s", executable, exc)
            return False
        logger.debug("%s --version -> rc=%s out=%r", executable, result.returncode, result.stdout.strip())
        return result.returncode == 0


# Tools that need more than a PATH lookup
PROBER_TYPES: dict[str, type[Prober]] = {
    "cargo": VersionProber,
}


def make_prober(requirement: ToolRequirement, timeout: int = 30) -> Prober:
    prober_type = PROBER_TYPES.get(requirement.name, CommandProber)
    if issubclass(prober_type, VersionProber):
        return prober_type(requirement, timeout=timeout)
    return prober_type(requirement)


class PrerequisiteChecker:
    """Report which required tools are resolvable. Never raises for a missing tool."""

    def __init__(self, session: SessionEnvironment, probers: Optional[dict[str, Prober]] = None):
        self.session = session
        self.probers = probers or {}

    def prober_for(self, requirement: ToolRequirement) -> Prober:
        if requirement.name not in self.probers:
            self.probers[requirement.name] = make_prober(requirement)
        return self.probers[requirement.name]

    def check(self, requirements: Iterable[ToolRequirement]) -> dict[str, bool]:
        status = {}
        for requirement in requirements:
            status[requirement.name] = self.prober_for(requirement).is_resolvable(self.session)
            logger.info(
                "Prerequisite %s: %s",
                requirement.name,
                "found" if status[requirement.name] else "missing",
            )
        return status
