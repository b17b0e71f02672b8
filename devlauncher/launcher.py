"""Start the managed application and hand back its exit status."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from devlauncher.exceptions import LaunchError
from devlauncher.models import RunConfig
from devlauncher.path_registry import SessionEnvironment

logger = logging.getLogger(__name__)


class Launcher:
    def __init__(self, session: SessionEnvironment, base_token: str = "menubar", verbose_token: str = "-v"):
        self.session = session
        self.base_token = base_token
        self.verbose_token = verbose_token

    def arguments(self, config: RunConfig) -> list[str]:
        args = [self.base_token]
        if config.verbose:
            args.insert(0, self.verbose_token)
        return args

    def launch(self, binary: Path, config: RunConfig) -> int:
        """Run ``binary`` to completion and return its exit code.

        A process killed by signal N reports ``128 + N``, as a POSIX shell does.
        """
        cmd = [str(binary), *self.arguments(config)]
        logger.info("Launching %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, env=self.session.child_env())
        except OSError as e:
            raise LaunchError(f"Could not start {binary}: {e}") from e
        code = result.returncode
        if code < 0:
            logger.warning("%s was terminated by signal %d", binary.name, -code)
            code = 128 - code
        logger.info("%s exited with code %d", binary.name, code)
        return code
