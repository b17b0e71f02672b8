"""Custom exceptions for the devlauncher pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional


class DevLauncherError(Exception):
    """Base exception for all devlauncher errors."""


class ConfigError(DevLauncherError):
    """Configuration error."""


class MissingPrerequisiteError(DevLauncherError):
    """One or more required tools are not resolvable on the session path."""

    def __init__(self, missing: Iterable[str]):
        self.missing = sorted(missing)
        super().__init__(f"Required tools not found: {', '.join(self.missing)}")


class InstallError(DevLauncherError):
    """A tool installation step failed (download, extract or vendor installer)."""

    def __init__(
        self,
        tool: str,
        message: str,
        artifact: Optional[str] = None,
        url: Optional[str] = None,
    ):
        self.tool = tool
        self.artifact = artifact
        self.url = url
        detail = f"Failed to install {tool}: {message}"
        if artifact and url:
            detail += f" (artifact {artifact} from {url})"
        super().__init__(detail)


class BuildError(DevLauncherError):
    """The build system could not start or exited with a non-zero code."""

    def __init__(self, exit_code: int, message: Optional[str] = None):
        self.exit_code = exit_code
        super().__init__(message or f"Build failed with exit code {exit_code}")


class BinaryNotFoundError(DevLauncherError):
    """No build artifact exists at any candidate path."""

    def __init__(self, searched: Iterable[Path]):
        self.searched = list(searched)
        listing = "\n".join(f"  - {path}" for path in self.searched)
        super().__init__(f"Executable not found. Searched:\n{listing}")


class LaunchError(DevLauncherError):
    """The resolved binary exists but could not be started."""
