"""
Domain models for ci-trigger.

These dataclasses are the values that flow between the GitHub
authentication pipeline and the Codefresh generation pipeline:

    - InstallationToken: result of a GitHub App installation token exchange
    - ApiResponse / BranchRef: payloads returned by the GitHub REST API
    - DeployContext / PipelineOptions: inputs of pipeline document and
      command generation

Example:
    Building options for an image build::

        options = PipelineOptions(
            branch="feature/login",
            image_tag="9f2c1ab",
            repo="goodrx/web",
            revision="9f2c1ab0e4...",
            ecr_repo="lfc/web",
            ecr_domain="123456789012.dkr.ecr.us-west-2.amazonaws.com",
            build_pipeline_name="lifecycle/build",
        )
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any

from ci_trigger.exceptions import ConfigurationError


@dataclass
class InstallationToken:
    """Short-lived access token scoped to one GitHub App installation.

    ``expires_at`` is None when the provider did not report an expiry.
    """

    value: str
    expires_at: datetime | None = None

    def __repr__(self) -> str:
        return f"InstallationToken(value='***', expires_at={self.expires_at!r})"


@dataclass
class ApiResponse:
    """Decoded response of a GitHub REST API request."""

    status: int
    url: str
    headers: dict[str, str]
    data: Any


@dataclass
class BranchRef:
    """Git reference payload for a branch head.

    ``data`` is the raw ``git/ref`` payload, e.g.::

        {"ref": "refs/heads/main", "object": {"sha": "aa218f56...", "type": "commit"}}
    """

    data: Any
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def ref(self) -> str | None:
        return self.data.get("ref") if isinstance(self.data, dict) else None

    @property
    def sha(self) -> str | None:
        if not isinstance(self.data, dict):
            return None
        return (self.data.get("object") or {}).get("sha")


@dataclass(frozen=True)
class DeployContext:
    """Deploy identifiers attached to a pipeline run as annotations."""

    uuid: str | None = None
    build_uuid: str | None = None
    branch_name: str | None = None


@dataclass(frozen=True)
class PipelineOptions:
    """Inputs for generating a Codefresh image build.

    Attributes:
        branch: Branch the pipeline runs against (passed with ``-b``)
        image_tag: Tag pushed to the ECR repository
        repo: Repository full name (``owner/name``)
        revision: Commit SHA to check out
        ecr_repo: ECR repository path, ``registry/image`` (e.g. ``lfc/web``)
        ecr_domain: ECR registry host
        build_pipeline_name: Codefresh pipeline that runs the generated YAML
        runtime_name: Optional Codefresh runtime
        dockerfile_path: Dockerfile used for the main image
        init_dockerfile_path: Optional Dockerfile for an init container image
        init_tag: Tag of the init container image
        cache_from: Optional image reference for ``--cache-from``
        after_build_pipeline_id: Optional pipeline invoked after the build
        detach_after_build_pipeline: Do not wait for the after-build pipeline
        env_vars: Variables passed to the run and as docker build args
        deploy: Deploy identifiers used for annotations
        uuid: Build uuid, used for log prefixes
        author: Commit author, added as an annotation
        enabled_features: Feature flags of the build
        git_context: Codefresh git integration used for checkout
    """

    branch: str
    image_tag: str
    repo: str
    revision: str = ""
    ecr_repo: str = "lifecycle-deployments"
    ecr_domain: str = ""
    build_pipeline_name: str = ""
    runtime_name: str | None = None
    dockerfile_path: str = "Dockerfile"
    init_dockerfile_path: str | None = None
    init_tag: str | None = None
    cache_from: str | None = None
    after_build_pipeline_id: str | None = None
    detach_after_build_pipeline: bool = False
    env_vars: Mapping[str, str] = field(default_factory=dict)
    deploy: DeployContext = field(default_factory=DeployContext)
    uuid: str | None = None
    author: str | None = None
    enabled_features: tuple[str, ...] = ()
    git_context: str = "github"

    def __post_init__(self) -> None:
        owner, _, name = self.repo.partition("/")
        if not owner or not name or "/" in name:
            raise ConfigurationError(f"repo must be 'owner/name', got {self.repo!r}")
        if self.init_dockerfile_path and not self.init_tag:
            raise ConfigurationError("init_tag is required when init_dockerfile_path is set")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PipelineOptions":
        """Build options from a parsed YAML/JSON mapping.

        Raises:
            ConfigurationError: On unknown keys or missing required keys
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown pipeline option(s): {', '.join(unknown)}")

        missing = [name for name in ("branch", "image_tag", "repo") if not data.get(name)]
        if missing:
            raise ConfigurationError(f"Missing required pipeline option(s): {', '.join(missing)}")

        values = dict(data)
        try:
            deploy = values.get("deploy")
            if isinstance(deploy, Mapping):
                values["deploy"] = DeployContext(**deploy)
            elif deploy is None:
                values.pop("deploy", None)
            if "env_vars" in values:
                values["env_vars"] = {str(k): str(v) for k, v in (values["env_vars"] or {}).items()}
            if "enabled_features" in values:
                values["enabled_features"] = tuple(values["enabled_features"] or ())
            return cls(**values)
        except (TypeError, AttributeError) as e:
            raise ConfigurationError(f"Invalid pipeline options: {e}") from e
