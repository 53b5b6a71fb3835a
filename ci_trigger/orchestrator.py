"""Trigger an image build for the current head of a branch.

This is where the GitHub authentication pipeline (token -> client -> ref)
meets the Codefresh generation pipeline (document -> command -> run).
"""

import dataclasses
from pathlib import Path
from typing import Any

import structlog

from ci_trigger.codefresh.constants import CODEFRESH_CLI, CODEFRESH_PATH
from ci_trigger.codefresh.pipeline import build_image
from ci_trigger.config.settings import TriggerSettings
from ci_trigger.exceptions import ConfigurationError
from ci_trigger.github.auth import create_token_service
from ci_trigger.github.refs import RefResolver
from ci_trigger.github.store import KeyValueStore
from ci_trigger.models.domain import PipelineOptions
from ci_trigger.utils.async_subprocess import ShellRunner, run_shell_command
from ci_trigger.utils.logging_config import get_logger

log = structlog.get_logger(__name__)


class BuildTrigger:
    """Resolves the revision to build and starts the Codefresh build.

    ``ref_resolver`` may be None when no GitHub App is configured; builds
    then need an explicit revision.
    """

    def __init__(
        self,
        ref_resolver: RefResolver | None,
        *,
        config_dir: Path | str = CODEFRESH_PATH,
        cli: str = CODEFRESH_CLI,
        runner: ShellRunner = run_shell_command,
    ):
        self.ref_resolver = ref_resolver
        self.config_dir = Path(config_dir)
        self.cli = cli
        self.runner = runner

    @classmethod
    def from_settings(cls, settings: TriggerSettings, store: KeyValueStore | None = None, **kwargs: Any) -> "BuildTrigger":
        """Wire a trigger from settings (GitHub App, token cache, Codefresh)."""
        resolver = None
        if settings.github.app_id is not None:
            resolver = RefResolver(
                create_token_service(settings, store=store),
                base_url=settings.github.base_url,
                timeout=settings.github.request_timeout,
            )
        else:
            log.debug("build_trigger_without_github_app")
        return cls(
            resolver,
            config_dir=settings.codefresh.config_dir,
            cli=settings.codefresh.cli,
            **kwargs,
        )

    async def aclose(self) -> None:
        if self.ref_resolver is not None:
            await self.ref_resolver.aclose()

    async def resolve_revision(self, owner: str, repo: str, branch: str, installation_id: int) -> str:
        """Return the commit SHA the branch currently points at.

        Raises:
            ConfigurationError: If no GitHub App is configured
            ValueError: If the ref payload has no commit SHA
        """
        if self.ref_resolver is None:
            raise ConfigurationError(
                f"GitHub App id not configured (github.app_id); needed to resolve {owner}/{repo}:{branch}"
            )
        logger = get_logger(__name__, caller="resolve_revision")
        ref = await self.ref_resolver.get_ref_for_branch_name(owner, repo, branch, installation_id, logger=logger)
        if not ref.sha:
            raise ValueError(f"No commit SHA in ref payload for {owner}/{repo}:{branch}")
        return ref.sha

    async def trigger_build(self, installation_id: int, options: PipelineOptions) -> tuple[str, str]:
        """Start an image build for ``options``.

        When ``options.revision`` is empty the branch head is resolved
        through the GitHub API first.

        Returns:
            Tuple of (Codefresh build id, revision built)
        """
        revision = options.revision
        if not revision:
            owner, _, repo = options.repo.partition("/")
            revision = await self.resolve_revision(owner, repo, options.branch, installation_id)
            options = dataclasses.replace(options, revision=revision)

        log.info("build_trigger_started", repo=options.repo, branch=options.branch, revision=revision)
        build_id = await build_image(options, config_dir=self.config_dir, cli=self.cli, runner=self.runner)
        return build_id, revision
