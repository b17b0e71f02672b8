"""Tool provisioning: bring missing prerequisites into a resolvable state."""

from __future__ import annotations

import logging
import os
import stat
import subprocess
import tarfile
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable

from devlauncher.config import EXE_SUFFIX, Config
from devlauncher.downloader import Downloader
from devlauncher.exceptions import InstallError
from devlauncher.path_registry import PathRegistry, SessionEnvironment

logger = logging.getLogger(__name__)


class InstallStep(ABC):
    """An idempotent installation action for a single tool.

    The step counts as done only when its marker file (the tool's own
    executable) exists; a populated directory alone proves nothing.
    """

    #: Lower runs first. A toolchain manager precedes anything it provides.
    order: int = 100

    def __init__(self, tool: str, bin_dir: Path, executable: str):
        self.tool = tool
        self.bin_dir = Path(bin_dir)
        self.marker = self.bin_dir / f"{executable}{EXE_SUFFIX}"

    def is_satisfied(self) -> bool:
        return self.marker.is_file()

    @abstractmethod
    def run(self) -> None:
        ...

    def apply(self) -> bool:
        """Run the step unless already satisfied. Returns True if work was done."""
        if self.is_satisfied():
            logger.info("%s already present at %s, skipping install", self.tool, self.marker)
            return False
        logger.info("Installing %s …", self.tool)
        self.run()
        if not self.is_satisfied():
            raise InstallError(self.tool, f"{self.marker} not found after installation")
        logger.info("%s installed: %s", self.tool, self.marker)
        return True


class VendorInstallerStep(InstallStep):
    """Download a vendor installer executable and run it unattended."""

    order = 0

    def __init__(
        self,
        tool: str,
        bin_dir: Path,
        executable: str,
        downloader: Downloader,
        url: str,
        args: list[str],
        session: SessionEnvironment,
        timeout: int = 1800,
    ):
        super().__init__(tool, bin_dir, executable)
        self.downloader = downloader
        self.url = url
        self.args = list(args)
        self.session = session
        self.timeout = timeout

    def run(self) -> None:
        installer = self.downloader.fetch(self.url, self.tool)
        if os.name != "nt":
            installer.chmod(installer.stat().st_mode | stat.S_IXUSR)

        cmd = [str(installer), *self.args]
        logger.info("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd, env=self.session.child_env(), timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise InstallError(
                self.tool, f"installer timed out after {self.timeout}s", artifact=installer.name, url=self.url
            ) from e
        except OSError as e:
            raise InstallError(
                self.tool, f"could not run installer: {e}", artifact=installer.name, url=self.url
            ) from e

        if result.returncode != 0:
            raise InstallError(
                self.tool,
                f"installer exited with code {result.returncode}",
                artifact=installer.name,
                url=self.url,
            )
        self.downloader.discard(installer)


class ArchiveStep(InstallStep):
    """Download a zip/tar archive and unpack it into ``extract_root``."""

    order = 10

    def __init__(
        self,
        tool: str,
        bin_dir: Path,
        executable: str,
        downloader: Downloader,
        url: str,
        extract_root: Path,
    ):
        super().__init__(tool, bin_dir, executable)
        self.downloader = downloader
        self.url = url
        self.extract_root = Path(extract_root)

    def run(self) -> None:
        archive = self.downloader.fetch(self.url, self.tool)
        logger.info("Extracting %s to %s …", archive.name, self.extract_root)
        try:
            self.extract_root.mkdir(parents=True, exist_ok=True)
            self._extract(archive)
        except (zipfile.BadZipFile, tarfile.TarError) as e:
            # Corrupt download; the next run must fetch it again
            self.downloader.discard(archive)
            raise InstallError(self.tool, f"extraction failed: {e}", artifact=archive.name, url=self.url) from e
        except OSError as e:
            raise InstallError(self.tool, f"extraction failed: {e}", artifact=archive.name, url=self.url) from e
        self.downloader.discard(archive)

    def _extract(self, archive: Path) -> None:
        if zipfile.is_zipfile(archive):
            with zipfile.ZipFile(archive) as zf:
                zf.extractall(self.extract_root)
                if os.name != "nt":
                    self._restore_modes(zf)
            return
        with tarfile.open(archive, "r:*") as tf:
            tf.extractall(self.extract_root)

    def _restore_modes(self, zf: zipfile.ZipFile) -> None:
        """zipfile drops permission bits; reapply the ones recorded in the archive."""
        for info in zf.infolist():
            mode = (info.external_attr >> 16) & 0o777
            if mode and not info.is_dir():
                (self.extract_root / info.filename).chmod(mode)


def build_install_steps(config: Config, downloader: Downloader, session: SessionEnvironment) -> list[InstallStep]:
    return [
        VendorInstallerStep(
            tool="cargo",
            bin_dir=config.cargo_bin_dir,
            executable=config.toolchain.command,
            downloader=downloader,
            url=config.toolchain.installer_url,
            args=config.toolchain.installer_args,
            session=session,
            timeout=config.toolchain.install_timeout_seconds,
        ),
        ArchiveStep(
            tool="dlltool",
            bin_dir=config.linker_bin_dir,
            executable=config.linker.command,
            downloader=downloader,
            url=config.linker.archive_url,
            extract_root=config.user_root,
        ),
    ]


class Installer:
    """Run the install steps for missing tools, then register their directories."""

    def __init__(self, steps: Iterable[InstallStep], registry: PathRegistry):
        self.steps = {step.tool: step for step in steps}
        self.registry = registry

    def plan(self, missing: Iterable[str]) -> list[InstallStep]:
        selected = []
        for tool in missing:
            if tool not in self.steps:
                raise InstallError(tool, "no installation step is defined for this tool")
            selected.append(self.steps[tool])
        return sorted(selected, key=lambda step: (step.order, step.tool))

    def install(self, missing: Iterable[str]) -> list[Path]:
        """Install every tool in ``missing``. Aborts on the first failing step.

        Returns the directories persisted to the user path.
        """
        steps = self.plan(missing)
        for step in steps:
            step.apply()
            # Later steps may need this tool on PATH already
            self.registry.ensure_on_session_path(step.bin_dir)

        registered = []
        for step in steps:
            self.registry.persist_to_user_path(step.bin_dir)
            registered.append(step.bin_dir)
        return registered
