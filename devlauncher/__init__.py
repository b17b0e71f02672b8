"""devlauncher - bootstrap the toolchain, build and launch CodexBar."""

from devlauncher.models import PipelineOutcome, PipelineState, Profile, RunConfig, ToolRequirement
from devlauncher.pipeline import Pipeline

__version__ = "0.1.0"
__all__ = [
    "Pipeline",
    "PipelineOutcome",
    "PipelineState",
    "Profile",
    "RunConfig",
    "ToolRequirement",
]
