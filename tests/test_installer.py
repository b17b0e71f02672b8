"""Tests for tool installation steps and ordering."""

import io
import os
import subprocess
import sys
import tarfile
import zipfile
from unittest.mock import MagicMock, patch

import pytest

from devlauncher.config import EXE_SUFFIX
from devlauncher.exceptions import InstallError
from devlauncher.installer import ArchiveStep, Installer, VendorInstallerStep
from devlauncher.path_registry import PathRegistry, SessionEnvironment
from tests.fixtures.fakes import CopyDownloader, MemoryPathStore, RecordingStep

ARCHIVE_URL = "https://example.invalid/dist/mingw.zip"
RUSTUP_URL = "https://example.invalid/dist/rustup-init"


@pytest.fixture
def registry():
    return PathRegistry(SessionEnvironment({"PATH": ""}), MemoryPathStore())


def _mingw_zip(path, with_marker=True):
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("mingw64/include/stdio.h", "")
        if with_marker:
            zf.writestr(f"mingw64/bin/dlltool{EXE_SUFFIX}", "binary")
    return path


def _archive_step(tmp_path, source):
    root = tmp_path / "home"
    downloader = CopyDownloader(tmp_path / "cache", source)
    step = ArchiveStep(
        tool="dlltool",
        bin_dir=root / "mingw64" / "bin",
        executable="dlltool",
        downloader=downloader,
        url=ARCHIVE_URL,
        extract_root=root,
    )
    return step, downloader


class TestInstaller:
    def test_runs_steps_in_dependency_order(self, tmp_path, registry):
        log = []
        steps = [
            RecordingStep("dlltool", tmp_path / "mingw", log, order=10),
            RecordingStep("cargo", tmp_path / "cargo", log, order=0),
        ]
        Installer(steps, registry).install({"dlltool", "cargo"})
        assert log == ["cargo", "dlltool"]

    def test_registers_directories_after_all_steps(self, tmp_path, registry):
        log = []
        steps = [
            RecordingStep("cargo", tmp_path / "cargo", log, order=0),
            RecordingStep("dlltool", tmp_path / "mingw", log, order=10),
        ]
        registered = Installer(steps, registry).install({"cargo", "dlltool"})

        assert registered == [tmp_path / "cargo", tmp_path / "mingw"]
        assert registry.store.entries() == [str(tmp_path / "cargo"), str(tmp_path / "mingw")]
        assert str(tmp_path / "cargo") in registry.session.path_entries()

    def test_only_installs_missing_tools(self, tmp_path, registry):
        log = []
        steps = [
            RecordingStep("cargo", tmp_path / "cargo", log, order=0),
            RecordingStep("dlltool", tmp_path / "mingw", log, order=10),
        ]
        Installer(steps, registry).install({"dlltool"})
        assert log == ["dlltool"]
        assert registry.store.entries() == [str(tmp_path / "mingw")]

    def test_failure_aborts_and_names_tool(self, tmp_path, registry):
        log = []
        steps = [
            RecordingStep("cargo", tmp_path / "cargo", log, order=0, fail=True),
            RecordingStep("dlltool", tmp_path / "mingw", log, order=10),
        ]
        with pytest.raises(InstallError) as excinfo:
            Installer(steps, registry).install({"cargo", "dlltool"})

        assert excinfo.value.tool == "cargo"
        assert log == ["cargo"]
        assert registry.store.entries() == []

    def test_step_that_leaves_no_marker_fails(self, tmp_path, registry):
        step = RecordingStep("cargo", tmp_path / "cargo", [], create_marker=False)
        with pytest.raises(InstallError, match="not found after installation"):
            Installer([step], registry).install({"cargo"})

    def test_unknown_tool_fails(self, registry):
        with pytest.raises(InstallError) as excinfo:
            Installer([], registry).install({"ninja"})
        assert excinfo.value.tool == "ninja"

    def test_rerun_is_a_noop_for_installed_tools(self, tmp_path, registry):
        step = RecordingStep("cargo", tmp_path / "cargo", [])
        installer = Installer([step], registry)
        installer.install({"cargo"})
        installer.install({"cargo"})

        assert step.runs == 1
        assert registry.store.appends == 1


class TestArchiveStep:
    def test_extracts_and_cleans_up(self, tmp_path):
        step, downloader = _archive_step(tmp_path, _mingw_zip(tmp_path / "src.zip"))

        assert step.apply() is True
        assert step.marker.is_file()
        assert downloader.fetches == 1
        assert not downloader.cached_path(ARCHIVE_URL).exists()

    def test_skips_when_marker_present(self, tmp_path):
        step, downloader = _archive_step(tmp_path, _mingw_zip(tmp_path / "src.zip"))
        step.bin_dir.mkdir(parents=True)
        step.marker.write_text("")

        assert step.apply() is False
        assert downloader.fetches == 0

    def test_partial_directory_is_not_treated_as_installed(self, tmp_path):
        step, downloader = _archive_step(tmp_path, _mingw_zip(tmp_path / "src.zip"))
        # Left over from an interrupted extraction
        step.bin_dir.mkdir(parents=True)
        (step.bin_dir / f"gcc{EXE_SUFFIX}").write_text("")

        assert step.is_satisfied() is False
        assert step.apply() is True
        assert step.marker.is_file()

    def test_reuses_cached_download(self, tmp_path):
        step, downloader = _archive_step(tmp_path, _mingw_zip(tmp_path / "src.zip"))
        cached = downloader.cached_path(ARCHIVE_URL)
        cached.parent.mkdir(parents=True)
        _mingw_zip(cached)

        step.apply()
        assert downloader.fetches == 0

    def test_corrupt_archive_fails(self, tmp_path):
        bad = tmp_path / "bad.zip"
        bad.write_bytes(b"PK\x03\x04 not really a zip")
        step, _ = _archive_step(tmp_path, bad)

        with pytest.raises(InstallError) as excinfo:
            step.apply()
        assert excinfo.value.tool == "dlltool"
        assert excinfo.value.url == ARCHIVE_URL

    def test_corrupt_cached_archive_is_refetched_on_rerun(self, tmp_path):
        bad = tmp_path / "bad.zip"
        bad.write_bytes(b"PK\x03\x04 truncated")
        step, downloader = _archive_step(tmp_path, bad)

        with pytest.raises(InstallError):
            step.apply()
        assert not downloader.cached_path(ARCHIVE_URL).exists()

        downloader.source = _mingw_zip(tmp_path / "good.zip")
        assert step.apply() is True
        assert step.marker.is_file()
        assert downloader.fetches == 2

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
    def test_zip_keeps_execute_bits(self, tmp_path):
        source = tmp_path / "src.zip"
        info = zipfile.ZipInfo(f"mingw64/bin/dlltool{EXE_SUFFIX}")
        info.external_attr = 0o755 << 16
        with zipfile.ZipFile(source, "w") as zf:
            zf.writestr(info, "#!/bin/sh\n")
        step, _ = _archive_step(tmp_path, source)

        step.apply()
        assert os.access(step.marker, os.X_OK)

    def test_archive_without_marker_fails(self, tmp_path):
        step, _ = _archive_step(tmp_path, _mingw_zip(tmp_path / "src.zip", with_marker=False))
        with pytest.raises(InstallError, match="not found after installation"):
            step.apply()

    def test_extracts_tarballs(self, tmp_path):
        source = tmp_path / "src.tar.gz"
        with tarfile.open(source, "w:gz") as tf:
            data = b"binary"
            info = tarfile.TarInfo(f"mingw64/bin/dlltool{EXE_SUFFIX}")
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
        step, _ = _archive_step(tmp_path, source)

        assert step.apply() is True
        assert step.marker.read_bytes() == b"binary"


class TestVendorInstallerStep:
    def _step(self, tmp_path):
        source = tmp_path / "rustup-init"
        source.write_bytes(b"installer")
        downloader = CopyDownloader(tmp_path / "cache", source)
        step = VendorInstallerStep(
            tool="cargo",
            bin_dir=tmp_path / "home" / ".cargo" / "bin",
            executable="cargo",
            downloader=downloader,
            url=RUSTUP_URL,
            args=["-y"],
            session=SessionEnvironment({"PATH": ""}),
            timeout=5,
        )
        return step, downloader

    def test_runs_installer_and_removes_it(self, tmp_path):
        step, downloader = self._step(tmp_path)

        def fake_run(cmd, env=None, timeout=None):
            step.bin_dir.mkdir(parents=True)
            step.marker.write_text("")
            return MagicMock(returncode=0)

        with patch("devlauncher.installer.subprocess.run", side_effect=fake_run) as run:
            assert step.apply() is True

        cmd = run.call_args.args[0]
        assert cmd[0].endswith("rustup-init")
        assert cmd[1:] == ["-y"]
        assert run.call_args.kwargs["timeout"] == 5
        assert downloader.discarded == [downloader.cached_path(RUSTUP_URL)]

    def test_nonzero_exit_fails(self, tmp_path):
        step, downloader = self._step(tmp_path)
        with patch("devlauncher.installer.subprocess.run", return_value=MagicMock(returncode=3)):
            with pytest.raises(InstallError, match="exited with code 3"):
                step.apply()
        # Kept for the next attempt
        assert downloader.discarded == []

    def test_timeout_fails(self, tmp_path):
        step, _ = self._step(tmp_path)
        with patch(
            "devlauncher.installer.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="rustup-init", timeout=5),
        ):
            with pytest.raises(InstallError, match="timed out"):
                step.apply()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permission bits")
    def test_marks_installer_executable(self, tmp_path):
        step, downloader = self._step(tmp_path)
        seen = {}

        def fake_run(cmd, env=None, timeout=None):
            seen["exec"] = os.access(cmd[0], os.X_OK)
            step.bin_dir.mkdir(parents=True)
            step.marker.write_text("")
            return MagicMock(returncode=0)

        with patch("devlauncher.installer.subprocess.run", side_effect=fake_run):
            step.apply()
        assert seen["exec"] is True
