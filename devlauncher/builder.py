"""Build invocation for the managed application."""

from __future__ import annotations

import logging
import os
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from devlauncher.exceptions import BuildError
from devlauncher.models import Profile
from devlauncher.path_registry import SessionEnvironment

logger = logging.getLogger(__name__)

# Reported when the build system never started
EXIT_NOT_STARTED = 1


@contextmanager
def working_directory(path: Path) -> Iterator[Path]:
    """chdir into ``path``; the previous directory is restored on any exit."""
    previous = os.getcwd()
    os.chdir(path)
    try:
        yield path
    finally:
        os.chdir(previous)


class BuildOrchestrator:
    """Run ``cargo build`` for a profile from the project root."""

    def __init__(
        self,
        project_dir: Path,
        session: SessionEnvironment,
        command: str = "cargo",
        target: Optional[str] = None,
    ):
        self.project_dir = Path(project_dir)
        self.session = session
        self.command = command
        self.target = target

    def command_line(self, profile: Profile) -> list[str]:
        executable = self.session.which(self.command) or self.command
        cmd = [executable, "build", *profile.cargo_flags]
        if self.target:
            cmd += ["--target", self.target]
        return cmd

    def build(self, profile: Profile) -> int:
        """Returns the build system's exit code unchanged.

        Raises ``BuildError`` when the project directory or build command is
        unusable, so the build never started.
        """
        cmd = self.command_line(profile)
        logger.info("Building %s profile in %s: %s", profile.value, self.project_dir, " ".join(cmd))
        try:
            with working_directory(self.project_dir):
                result = subprocess.run(cmd, env=self.session.child_env())
        except OSError as e:
            raise BuildError(EXIT_NOT_STARTED, f"Could not run {cmd[0]} in {self.project_dir}: {e}") from e
        if result.returncode != 0:
            logger.error("Build failed with exit code %d", result.returncode)
        return result.returncode
