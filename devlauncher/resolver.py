"""Locate the built executable among its possible output directories."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from devlauncher.exceptions import BinaryNotFoundError
from devlauncher.models import Profile

logger = logging.getLogger(__name__)


class BinaryResolver:
    def __init__(self, project_dir: Path, executable: str, target_triples: Iterable[str] = ()):
        self.project_dir = Path(project_dir)
        self.executable = executable
        self.target_triples = list(target_triples)

    def candidates(self, profile: Profile) -> list[Path]:
        """Candidate paths for ``profile``, highest precedence first."""
        target = self.project_dir / "target"
        paths = [target / profile.value / self.executable]
        paths += [target / triple / profile.value / self.executable for triple in self.target_triples]
        return paths

    def resolve(self, profile: Profile) -> Path:
        """First existing candidate; never falls back to another profile."""
        checked = self.candidates(profile)
        for path in checked:
            if path.is_file():
                logger.info("Resolved %s binary: %s", profile.value, path)
                return path
            logger.debug("No binary at %s", path)
        raise BinaryNotFoundError(checked)
