"""Configuration management for devlauncher."""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from devlauncher.exceptions import ConfigError
from devlauncher.models import ToolRequirement

IS_WINDOWS = sys.platform == "win32"
EXE_SUFFIX = ".exe" if IS_WINDOWS else ""


def user_profile_root() -> Path:
    """Return the per-user root directory (USERPROFILE, then HOME)."""
    for var in ("USERPROFILE", "HOME"):
        value = os.environ.get(var)
        if value:
            return Path(value)
    return Path.home()


def _default_rustup_url() -> str:
    host = "x86_64-pc-windows-msvc" if IS_WINDOWS else "x86_64-unknown-linux-gnu"
    return f"https://static.rust-lang.org/rustup/dist/{host}/rustup-init{EXE_SUFFIX}"


class AppConfig(BaseModel):
    name: str = "devlauncher"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    user_root: Optional[str] = None


class ToolchainConfig(BaseModel):
    """rustup-managed Rust toolchain (provides ``cargo``)."""

    command: str = "cargo"
    installer_url: str = Field(default_factory=_default_rustup_url)
    installer_args: list[str] = Field(
        default_factory=lambda: ["-y", "--default-toolchain", "stable", "--profile", "minimal"]
    )
    install_timeout_seconds: int = Field(default=1800, ge=1)
    probe_timeout_seconds: int = Field(default=30, ge=1)
    # Relative to the user root
    bin_dir: str = ".cargo/bin"


class LinkerConfig(BaseModel):
    """MinGW-w64 distribution (provides ``dlltool``).

    The default archive is a Windows build. On other hosts install binutils
    from the system package manager, or point ``archive_url`` at an archive
    that unpacks a matching ``bin_dir``.
    """

    command: str = "dlltool"
    archive_url: str = (
        "https://github.com/brechtsanders/winlibs_mingw/releases/download/"
        "14.2.0posix-19.1.1-12.0.0-ucrt-r2/"
        "winlibs-x86_64-posix-seh-gcc-14.2.0-mingw-w64ucrt-12.0.0-r2.zip"
    )
    # Relative to the user root; the archive unpacks a top-level ``mingw64/``
    bin_dir: str = "mingw64/bin"


class DownloadConfig(BaseModel):
    cache_dir: str = Field(default_factory=lambda: str(Path(tempfile.gettempdir()) / "devlauncher"))
    timeout_seconds: int = Field(default=900, ge=1)
    chunk_size: int = Field(default=1 << 16, ge=1024)


class BuildConfig(BaseModel):
    project_dir: str = "rust"
    binary_name: str = "codexbar"
    target: Optional[str] = None
    target_triples: list[str] = Field(
        default_factory=lambda: ["x86_64-pc-windows-gnu", "x86_64-pc-windows-msvc"]
    )


class LaunchConfig(BaseModel):
    base_token: str = "menubar"
    verbose_token: str = "-v"


class Config(BaseSettings):
    """Launcher configuration loaded from env vars and config file."""

    app: AppConfig = Field(default_factory=AppConfig)
    toolchain: ToolchainConfig = Field(default_factory=ToolchainConfig)
    linker: LinkerConfig = Field(default_factory=LinkerConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    launch: LaunchConfig = Field(default_factory=LaunchConfig)

    model_config = {
        "env_prefix": "DEVLAUNCHER_",
        "env_nested_delimiter": "__",
        "extra": "ignore",
    }

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):
        # Environment wins over values read from the YAML file
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> Config:
        """Load configuration from YAML file and environment variables."""
        config_path = config_path or os.getenv("DEVLAUNCHER_CONFIG", "./devlauncher.yaml")

        file_config = {}
        config_file = Path(config_path)
        if config_file.exists():
            try:
                with open(config_file, encoding="utf-8") as f:
                    file_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {config_file}: {exc}") from exc
            if not isinstance(file_config, dict):
                raise ConfigError(f"Config file {config_file} must contain a mapping")

        try:
            return cls(**file_config)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration in {config_file}: {exc}") from exc

    @property
    def user_root(self) -> Path:
        return Path(self.app.user_root) if self.app.user_root else user_profile_root()

    @property
    def cargo_bin_dir(self) -> Path:
        return self.user_root / self.toolchain.bin_dir

    @property
    def linker_bin_dir(self) -> Path:
        return self.user_root / self.linker.bin_dir

    @property
    def project_dir(self) -> Path:
        return Path(self.build.project_dir).resolve()

    @property
    def executable_name(self) -> str:
        return f"{self.build.binary_name}{EXE_SUFFIX}"

    def requirements(self) -> list[ToolRequirement]:
        """Required tools in dependency order."""
        return [
            ToolRequirement(name="cargo", probe_command=self.toolchain.command),
            ToolRequirement(name="dlltool", probe_command=self.linker.command),
        ]
