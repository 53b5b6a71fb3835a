"""CLI entry point for ci-trigger."""

import asyncio
import json
import sys
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Any

import click
import structlog
import yaml

from ci_trigger.codefresh.command import generate_codefresh_cmd
from ci_trigger.codefresh.pipeline import get_logs, tag_exists, trigger_pipeline, wait_for_image
from ci_trigger.codefresh.yaml_generator import generate_yaml
from ci_trigger.config.settings import TriggerSettings
from ci_trigger.exceptions import CiTriggerError, ConfigurationError
from ci_trigger.github.auth import create_token_service
from ci_trigger.github.refs import RefResolver
from ci_trigger.models.domain import BranchRef, PipelineOptions
from ci_trigger.orchestrator import BuildTrigger
from ci_trigger.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


def handle_errors(func: Callable[..., Any]) -> Callable[..., Any]:
    """Map errors raised by a command to an exit status."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except CiTriggerError as e:
            click.echo(f"Error: {e.message}", err=True)
            log.debug("command_error", exc_info=True)
            sys.exit(1)
        except KeyboardInterrupt:
            click.echo("\nInterrupted by user", err=True)
            sys.exit(130)
        except (click.ClickException, click.exceptions.Exit):
            raise
        except Exception as e:
            click.echo(f"Unexpected error: {e}", err=True)
            log.error("command_unexpected_error", exc_info=True)
            sys.exit(1)

    return wrapper


def load_options(path: str, settings: TriggerSettings | None = None) -> PipelineOptions:
    """Read pipeline options from a YAML file.

    The configured Codefresh git context applies unless the file sets one.
    """
    try:
        data = yaml.safe_load(Path(path).read_text())
    except OSError as e:
        raise ConfigurationError(f"Cannot read options file: {path}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax in {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Options file must contain a YAML mapping: {path}")
    if settings is not None:
        data.setdefault("git_context", settings.codefresh.git_context)
    return PipelineOptions.from_mapping(data)


def resolve_installation_id(settings: TriggerSettings, installation_id: int | None) -> int:
    resolved = installation_id or settings.github.installation_id
    if not resolved:
        raise ConfigurationError("No installation id given (use --installation-id or github.installation_id)")
    return resolved


def parse_variables(values: tuple[str, ...]) -> dict[str, str]:
    variables = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="-v/--variable")
        variables[key] = value
    return variables


@click.group()
@click.option(
    "--config",
    envvar="CI_TRIGGER_CONFIG",
    type=click.Path(dir_okay=False),
    default=None,
    help="Path to configuration file (settings are read from CI_TRIGGER_* env vars when omitted)",
)
@click.option("--log-level", default=None, help="Logging level (overrides log_level from settings)")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str | None) -> None:
    """ci-trigger: GitHub App backed Codefresh build triggering."""
    try:
        settings = TriggerSettings.from_yaml(config) if config else TriggerSettings()
    except ConfigurationError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Unexpected error loading configuration: {e}", err=True)
        log.error("config_error_unexpected", exc_info=True)
        sys.exit(1)

    configure_logging(log_level or settings.log_level)
    ctx.obj = {"settings": settings}


@cli.command()
@click.option("--installation-id", type=int, help="GitHub App installation id")
@click.pass_context
@handle_errors
def token(ctx: click.Context, installation_id: int | None) -> None:
    """Print an installation access token."""
    settings: TriggerSettings = ctx.obj["settings"]
    resolved = resolve_installation_id(settings, installation_id)

    async def _token() -> str:
        tokens = create_token_service(settings)
        try:
            return await tokens.get_app_token(resolved)
        finally:
            await tokens.aclose()

    click.echo(asyncio.run(_token()))


@cli.command()
@click.argument("owner")
@click.argument("repo")
@click.argument("branch")
@click.option("--installation-id", type=int, help="GitHub App installation id")
@click.pass_context
@handle_errors
def ref(ctx: click.Context, owner: str, repo: str, branch: str, installation_id: int | None) -> None:
    """Print the git ref payload of OWNER/REPO's BRANCH."""
    settings: TriggerSettings = ctx.obj["settings"]
    resolved = resolve_installation_id(settings, installation_id)

    async def _ref() -> BranchRef:
        resolver = RefResolver(
            create_token_service(settings),
            base_url=settings.github.base_url,
            timeout=settings.github.request_timeout,
        )
        try:
            return await resolver.get_ref_for_branch_name(owner, repo, branch, resolved)
        finally:
            await resolver.aclose()

    click.echo(json.dumps(asyncio.run(_ref()).data, indent=2))


@cli.command()
@click.argument("options_file", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
@handle_errors
def render(ctx: click.Context, options_file: str) -> None:
    """Print the pipeline document for OPTIONS_FILE."""
    click.echo(generate_yaml(load_options(options_file, ctx.obj["settings"])), nl=False)


@cli.command()
@click.argument("options_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--config-dir", type=click.Path(file_okay=False), help="Directory of generated pipeline documents")
@click.pass_context
@handle_errors
def command(ctx: click.Context, options_file: str, config_dir: str | None) -> None:
    """Print the codefresh run command for OPTIONS_FILE."""
    settings: TriggerSettings = ctx.obj["settings"]
    click.echo(
        generate_codefresh_cmd(
            load_options(options_file, settings),
            config_dir=config_dir or settings.codefresh.config_dir,
            cli=settings.codefresh.cli,
        )
    )


@cli.command()
@click.argument("options_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--installation-id", type=int, help="GitHub App installation id (needed to resolve the revision)")
@click.option("--wait/--no-wait", default=False, help="Wait for the image build to finish")
@click.pass_context
@handle_errors
def build(ctx: click.Context, options_file: str, installation_id: int | None, wait: bool) -> None:
    """Start an image build for OPTIONS_FILE."""
    settings: TriggerSettings = ctx.obj["settings"]
    options = load_options(options_file, settings)

    # the installation is only needed when the branch head must be resolved
    if options.revision:
        resolved = installation_id or settings.github.installation_id or 0
    else:
        resolved = resolve_installation_id(settings, installation_id)

    async def _build() -> tuple[str, str, bool | None]:
        build_trigger = BuildTrigger.from_settings(settings)
        try:
            build_id, revision = await build_trigger.trigger_build(resolved, options)
        finally:
            await build_trigger.aclose()
        succeeded = None
        if wait:
            succeeded = await wait_for_image(
                build_id,
                timeout=settings.codefresh.wait_timeout_seconds,
                interval=settings.codefresh.poll_interval_seconds,
                cli=settings.codefresh.cli,
            )
        return build_id, revision, succeeded

    build_id, revision, succeeded = asyncio.run(_build())
    click.echo(f"{build_id} {revision}")
    if succeeded is False:
        click.echo(f"Build {build_id} did not succeed", err=True)
        sys.exit(1)


@cli.command()
@click.argument("pipeline_id")
@click.option("--trigger", "trigger_name", required=True, help="Pipeline trigger name")
@click.option("-v", "--variable", "variables", multiple=True, help="Run variable as KEY=VALUE (repeatable)")
@click.pass_context
@handle_errors
def trigger(ctx: click.Context, pipeline_id: str, trigger_name: str, variables: tuple[str, ...]) -> None:
    """Run PIPELINE_ID through one of its triggers."""
    settings: TriggerSettings = ctx.obj["settings"]
    click.echo(
        asyncio.run(
            trigger_pipeline(pipeline_id, trigger_name, parse_variables(variables), cli=settings.codefresh.cli)
        )
    )


@cli.command("tag-exists")
@click.argument("tag")
@click.option("--ecr-repo", default="lifecycle-deployments", show_default=True, help="ECR repository")
@click.option("--ecr-domain", default="", help="ECR registry host; its account id selects the registry")
@handle_errors
def tag_exists_command(tag: str, ecr_repo: str, ecr_domain: str) -> None:
    """Exit 0 when TAG is present in ECR, 1 otherwise."""
    exists = asyncio.run(tag_exists(tag, ecr_repo=ecr_repo, ecr_domain=ecr_domain))
    click.echo("present" if exists else "missing")
    if not exists:
        sys.exit(1)


@cli.command()
@click.argument("build_id")
@click.pass_context
@handle_errors
def logs(ctx: click.Context, build_id: str) -> None:
    """Print the logs of Codefresh build BUILD_ID."""
    settings: TriggerSettings = ctx.obj["settings"]
    click.echo(asyncio.run(get_logs(build_id, cli=settings.codefresh.cli)), nl=False)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
