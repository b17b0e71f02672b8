"""Main orchestrator: check → install → re-verify → build → resolve → launch."""

from __future__ import annotations

import logging
from typing import Optional

from devlauncher.builder import BuildOrchestrator
from devlauncher.config import Config
from devlauncher.downloader import Downloader
from devlauncher.exceptions import (
    BinaryNotFoundError,
    BuildError,
    InstallError,
    LaunchError,
    MissingPrerequisiteError,
)
from devlauncher.installer import Installer, build_install_steps
from devlauncher.launcher import Launcher
from devlauncher.models import PipelineOutcome, PipelineState, RunConfig, ToolRequirement
from devlauncher.path_registry import (
    PathRegistry,
    SessionEnvironment,
    UserPathStore,
    default_user_path_store,
)
from devlauncher.prerequisites import PrerequisiteChecker, make_prober
from devlauncher.resolver import BinaryResolver

logger = logging.getLogger(__name__)

EXIT_FAILURE = 1


class Pipeline:
    """Sequential bootstrap pipeline for the managed application.

    Coordinates:
    - PrerequisiteChecker: probe required tools on the session PATH
    - Installer: provision missing tools and register their directories
    - BuildOrchestrator: build the selected profile
    - BinaryResolver: find the produced executable
    - Launcher: run it and forward its exit code

    Every stage either hands its value to the next one or ends the run with a
    terminal ``PipelineOutcome``; nothing is guessed past a failed stage.
    """

    def __init__(
        self,
        requirements: list[ToolRequirement],
        checker: PrerequisiteChecker,
        installer: Installer,
        builder: BuildOrchestrator,
        resolver: BinaryResolver,
        launcher: Launcher,
    ):
        self.requirements = requirements
        self.checker = checker
        self.installer = installer
        self.builder = builder
        self.resolver = resolver
        self.launcher = launcher

    @classmethod
    def from_config(
        cls,
        config: Config,
        session: Optional[SessionEnvironment] = None,
        store: Optional[UserPathStore] = None,
    ) -> Pipeline:
        session = session or SessionEnvironment()
        registry = PathRegistry(session, store or default_user_path_store(config.user_root))
        requirements = config.requirements()
        probers = {
            req.name: make_prober(req, timeout=config.toolchain.probe_timeout_seconds) for req in requirements
        }
        downloader = Downloader(
            cache_dir=config.download.cache_dir,
            timeout=config.download.timeout_seconds,
            chunk_size=config.download.chunk_size,
        )
        return cls(
            requirements=requirements,
            checker=PrerequisiteChecker(session, probers),
            installer=Installer(build_install_steps(config, downloader, session), registry),
            builder=BuildOrchestrator(
                config.project_dir,
                session,
                command=config.toolchain.command,
                target=config.build.target,
            ),
            resolver=BinaryResolver(config.project_dir, config.executable_name, config.build.target_triples),
            launcher=Launcher(session, config.launch.base_token, config.launch.verbose_token),
        )

    @property
    def registry(self) -> PathRegistry:
        return self.installer.registry

    @staticmethod
    def _enter(outcome: PipelineOutcome, state: PipelineState) -> None:
        logger.debug("Pipeline state: %s -> %s", outcome.state.value, state.value)
        outcome.state = state
        outcome.history.append(state)

    def _fail(
        self,
        outcome: PipelineOutcome,
        state: PipelineState,
        error: Exception,
        exit_code: int = EXIT_FAILURE,
        hint: Optional[str] = None,
    ) -> PipelineOutcome:
        self._enter(outcome, state)
        outcome.error = error
        outcome.exit_code = exit_code
        outcome.hint = hint
        logger.error("%s", error)
        return outcome

    def _missing(self) -> set[str]:
        status = self.checker.check(self.requirements)
        return {name for name, found in status.items() if not found}

    def prepare(self, outcome: Optional[PipelineOutcome] = None) -> PipelineOutcome:
        """Check prerequisites, installing and re-verifying if needed.

        Ends in READY, INSTALL_FAILED or MISSING_AFTER_INSTALL.
        """
        if outcome is None:
            outcome = PipelineOutcome(state=PipelineState.START, exit_code=0, history=[PipelineState.START])

        self._enter(outcome, PipelineState.CHECKING)
        missing = self._missing()
        if missing:
            self._enter(outcome, PipelineState.MISSING)
            self._enter(outcome, PipelineState.INSTALLING)
            try:
                outcome.installed = self.installer.install(missing)
            except InstallError as e:
                return self._fail(
                    outcome,
                    PipelineState.INSTALL_FAILED,
                    e,
                    hint="Check your network connection and disk space, then re-run; "
                    "completed steps are skipped on the next attempt.",
                )

            self._enter(outcome, PipelineState.CHECKING)
            still_missing = self._missing()
            if still_missing:
                return self._fail(
                    outcome,
                    PipelineState.MISSING_AFTER_INSTALL,
                    MissingPrerequisiteError(still_missing),
                    hint="Restart your terminal so the updated PATH is picked up, then re-run.",
                )

        self._enter(outcome, PipelineState.READY)
        return outcome

    def run(self, run_config: RunConfig) -> PipelineOutcome:
        outcome = self.prepare()
        if outcome.state is not PipelineState.READY:
            return outcome

        profile = run_config.profile
        if run_config.skip_build:
            self._enter(outcome, PipelineState.SKIP_BUILD)
        else:
            self._enter(outcome, PipelineState.BUILDING)
            try:
                code = self.builder.build(profile)
            except BuildError as e:
                return self._fail(
                    outcome,
                    PipelineState.BUILD_FAILED,
                    e,
                    exit_code=e.exit_code,
                    hint="Run from the repository root or set build.project_dir in devlauncher.yaml.",
                )
            if code != 0:
                return self._fail(
                    outcome,
                    PipelineState.BUILD_FAILED,
                    BuildError(code),
                    exit_code=code,
                    hint="Fix the compiler errors above and re-run.",
                )
            self._enter(outcome, PipelineState.BUILT)

        self._enter(outcome, PipelineState.RESOLVING)
        try:
            outcome.binary = self.resolver.resolve(profile)
        except BinaryNotFoundError as e:
            hint = "Run without --skip-build to produce it." if run_config.skip_build else (
                "Check the build output directory configuration."
            )
            return self._fail(outcome, PipelineState.NOT_FOUND, e, hint=hint)
        self._enter(outcome, PipelineState.RESOLVED)

        self._enter(outcome, PipelineState.LAUNCHING)
        try:
            code = self.launcher.launch(outcome.binary, run_config)
        except LaunchError as e:
            return self._fail(
                outcome,
                PipelineState.LAUNCH_FAILED,
                e,
                hint=f"Check that {outcome.binary} is executable and not blocked.",
            )

        self._enter(outcome, PipelineState.DONE)
        outcome.exit_code = code
        return outcome
