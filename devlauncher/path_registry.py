"""Session and persisted command-resolution path management.

Two lists are tracked:

* the session path, i.e. ``PATH`` of the running process and every child it
  spawns. Changes here are lost when the process exits.
* the persisted user path, which future sessions inherit. On Windows this is
  ``HKCU\\Environment\\Path``; on POSIX it is a managed block in a shell
  profile script.

Both are append-only and never hold the same directory twice. Persisted
changes are not pushed to terminals that are already open: the host shell
composes ``PATH`` once at startup, so those sessions keep their old value
until restarted.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import MutableMapping, Optional

logger = logging.getLogger(__name__)


def _normalize(entry: str) -> str:
    entry = entry.strip().strip('"')
    if not entry:
        return ""
    return os.path.normcase(os.path.normpath(os.path.expandvars(entry)))


def path_contains(entries: list[str], directory: str | Path) -> bool:
    """Entry-wise containment check.

    ``C:\\tools\\bin`` is not considered present just because
    ``C:\\tools\\bin2`` is.
    """
    target = _normalize(str(directory))
    return any(_normalize(entry) == target for entry in entries)


class SessionEnvironment:
    """The current process's environment, injectable for tests."""

    def __init__(self, environ: Optional[MutableMapping[str, str]] = None):
        self.environ = os.environ if environ is None else environ

    @property
    def path(self) -> str:
        return self.environ.get("PATH", os.defpath)

    def path_entries(self) -> list[str]:
        return [entry for entry in self.path.split(os.pathsep) if entry]

    def prepend(self, directory: str | Path) -> bool:
        """Put ``directory`` at the front of PATH unless already present."""
        entries = self.path_entries()
        if path_contains(entries, directory):
            return False
        self.environ["PATH"] = os.pathsep.join([str(directory), *entries])
        return True

    def which(self, command: str) -> Optional[str]:
        return shutil.which(command, path=self.path)

    def child_env(self) -> dict[str, str]:
        """Environment mapping to hand to subprocesses."""
        return dict(self.environ)


class UserPathStore(ABC):
    """Durable, user-scoped path list read by future sessions."""

    @abstractmethod
    def entries(self) -> list[str]:
        ...

    @abstractmethod
    def append(self, directory: str | Path) -> None:
        ...


class WindowsUserPathStore(UserPathStore):
    """``HKCU\\Environment\\Path`` via winreg."""

    KEY = "Environment"
    VALUE = "Path"

    def __init__(self):
        import winreg  # noqa: PLC0415  (Windows only)

        self._winreg = winreg

    def _read(self) -> tuple[str, int]:
        winreg = self._winreg
        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, self.KEY, 0, winreg.KEY_READ) as key:
            try:
                value, value_type = winreg.QueryValueEx(key, self.VALUE)
            except FileNotFoundError:
                return "", winreg.REG_EXPAND_SZ
        return value or "", value_type

    def entries(self) -> list[str]:
        value, _ = self._read()
        return [entry for entry in value.split(";") if entry]

    def append(self, directory: str | Path) -> None:
        winreg = self._winreg
        value, value_type = self._read()
        value = value.rstrip(";")
        value = f"{value};{directory}" if value else str(directory)
        with winreg.OpenKey(winreg.HKEY_CURRENT_USER, self.KEY, 0, winreg.KEY_SET_VALUE) as key:
            winreg.SetValueEx(key, self.VALUE, 0, value_type, value)


class ProfileScriptPathStore(UserPathStore):
    """Managed ``export PATH=...`` block inside a POSIX shell profile.

    Lines outside the block are never touched.
    """

    BEGIN = "# >>> devlauncher path >>>"
    END = "# <<< devlauncher path <<<"
    _EXPORT = re.compile(r'^export PATH="(?P<dir>.+):\$PATH"$')

    def __init__(self, profile: Path):
        self.profile = Path(profile)

    def _lines(self) -> list[str]:
        if not self.profile.exists():
            return []
        return self.profile.read_text(encoding="utf-8").splitlines()

    def entries(self) -> list[str]:
        found = []
        inside = False
        for line in self._lines():
            if line == self.BEGIN:
                inside = True
            elif line == self.END:
                inside = False
            elif inside:
                match = self._EXPORT.match(line.strip())
                if match:
                    found.append(match.group("dir"))
        return found

    def append(self, directory: str | Path) -> None:
        lines = self._lines()
        export = f'export PATH="{directory}:$PATH"'
        if self.END in lines:
            lines.insert(lines.index(self.END), export)
        else:
            if lines and lines[-1].strip():
                lines.append("")
            lines.extend([self.BEGIN, export, self.END])
        self.profile.parent.mkdir(parents=True, exist_ok=True)
        self.profile.write_text("\n".join(lines) + "\n", encoding="utf-8")


def default_user_path_store(user_root: Path) -> UserPathStore:
    if sys.platform == "win32":
        return WindowsUserPathStore()
    return ProfileScriptPathStore(user_root / ".profile")


class PathRegistry:
    """Sole writer of the session and persisted path lists."""

    def __init__(self, session: SessionEnvironment, store: UserPathStore):
        self.session = session
        self.store = store

    def ensure_on_session_path(self, directory: str | Path) -> bool:
        """Prepend ``directory`` to the session PATH. Returns True if it was added."""
        added = self.session.prepend(directory)
        if added:
            logger.info("Added %s to session PATH", directory)
        else:
            logger.debug("%s already on session PATH", directory)
        return added

    def persist_to_user_path(self, directory: str | Path) -> bool:
        """Add ``directory`` to the durable user path and the session path.

        Returns True if the persisted list changed.
        """
        persisted = False
        if not path_contains(self.store.entries(), directory):
            self.store.append(directory)
            persisted = True
            logger.info("Persisted %s to user PATH", directory)
        self.ensure_on_session_path(directory)
        return persisted

    def stale_entries(self) -> list[str]:
        """Persisted directories that no longer exist on disk."""
        return [entry for entry in self.store.entries() if not Path(os.path.expandvars(entry)).is_dir()]
