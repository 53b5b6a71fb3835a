"""Domain models shared by the GitHub and Codefresh pipelines."""

from ci_trigger.models.domain import (
    ApiResponse,
    BranchRef,
    DeployContext,
    InstallationToken,
    PipelineOptions,
)

__all__ = [
    "ApiResponse",
    "BranchRef",
    "DeployContext",
    "InstallationToken",
    "PipelineOptions",
]
