"""Run Codefresh pipelines through the Codefresh CLI.

Every function takes a ``runner`` (defaults to ``run_shell_command``) so
the CLI can be replaced in tests.
"""

import asyncio
import json
import re
import subprocess
import time
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path

import structlog

from ci_trigger.codefresh.command import generate_trigger_cmd, prepare_codefresh_run
from ci_trigger.codefresh.constants import CODEFRESH_CLI, CODEFRESH_PATH, PIPELINE_ID_PATTERN
from ci_trigger.exceptions import PipelineOutputError
from ci_trigger.models.domain import PipelineOptions
from ci_trigger.utils.async_subprocess import ShellRunner, run_shell_command

log = structlog.get_logger(__name__)

_PIPELINE_ID = re.compile(PIPELINE_ID_PATTERN, re.IGNORECASE)


def get_codefresh_pipeline_id_from_output(output: str) -> str:
    """Return the first line of CLI output that is a Codefresh build id.

    Raises:
        PipelineOutputError: If no line looks like a build id
    """
    for line in output.splitlines():
        candidate = line.strip()
        if _PIPELINE_ID.match(candidate):
            return candidate
    raise PipelineOutputError(f"Could not find pipeline ID in Codefresh output: {output!r}")


async def build_image(
    options: PipelineOptions,
    *,
    config_dir: Path | str = CODEFRESH_PATH,
    cli: str = CODEFRESH_CLI,
    runner: ShellRunner = run_shell_command,
) -> str:
    """Write the pipeline document and start the image build.

    Returns:
        Codefresh build id

    Raises:
        PipelineOutputError: If the CLI printed nothing or no build id
        subprocess.CalledProcessError: If the CLI exited non-zero
    """
    run = prepare_codefresh_run(options, config_dir=config_dir, cli=cli)
    context = {
        "uuid": options.uuid,
        "repo": options.repo,
        "branch": options.branch,
        "revision": options.revision,
        "tag": options.image_tag,
    }

    try:
        run.config_path.parent.mkdir(parents=True, exist_ok=True)
        run.config_path.write_text(run.document, encoding="utf-8")

        output, _, _ = await runner(run.command)
        if not output.strip():
            raise PipelineOutputError("no output from Codefresh", pipeline=options.build_pipeline_name)
        if "Yaml" not in output:
            log.warning("codefresh_output_missing_yaml", output=output, **context)

        build_id = get_codefresh_pipeline_id_from_output(output)
    except Exception as e:
        log.error("codefresh_build_image_failed", error=str(e), **context)
        raise

    log.info("codefresh_build_started", build_id=build_id, **context)
    return build_id


async def trigger_pipeline(
    pipeline_id: str,
    trigger: str,
    variables: Mapping[str, str],
    *,
    cli: str = CODEFRESH_CLI,
    runner: ShellRunner = run_shell_command,
) -> str:
    """Run a pipeline through one of its triggers and return the build id."""
    command = generate_trigger_cmd(pipeline_id, trigger, variables, cli=cli)
    output, _, _ = await runner(command)
    build_id = get_codefresh_pipeline_id_from_output(output)
    log.info("codefresh_pipeline_triggered", pipeline_id=pipeline_id, trigger=trigger, build_id=build_id)
    return build_id


async def tag_exists(
    tag: str,
    *,
    ecr_repo: str = "lifecycle-deployments",
    ecr_domain: str = "",
    uuid: str | None = None,
    runner: ShellRunner = run_shell_command,
) -> bool:
    """Check whether an image tag is already present in ECR.

    The registry id is the account id leading ``ecr_domain``
    (``<account>.dkr.ecr.<region>.amazonaws.com``), so registries in other
    accounts are supported.
    """
    registry_id = ecr_domain.split(".")[0] if ecr_domain else ""
    command = (
        f"aws ecr describe-images --repository-name={ecr_repo} --image-ids=imageTag={tag} "
        "--no-paginate --no-cli-auto-prompt"
    )
    if registry_id:
        command += f" --registry-id {registry_id}"

    try:
        await runner(command)
    except subprocess.CalledProcessError:
        log.info("ecr_tag_missing", uuid=uuid, tag=tag, ecr_repo=ecr_repo)
        return False
    log.info("ecr_tag_exists", uuid=uuid, tag=tag, ecr_repo=ecr_repo)
    return True


async def check_pipeline_status(
    build_id: str,
    *,
    cli: str = CODEFRESH_CLI,
    runner: ShellRunner = run_shell_command,
) -> bool:
    """Wait for a build to finish and report whether it succeeded."""
    await runner(f"{cli} wait {build_id}")
    output, _, _ = await runner(f"{cli} get build {build_id} --output json")
    try:
        payload = json.loads(output)
    except json.JSONDecodeError:
        status = output.strip()
    else:
        if isinstance(payload, list):
            payload = payload[0] if payload else {}
        status = str(payload.get("status", "")) if isinstance(payload, dict) else ""
    return "success" in status


async def wait_until(
    condition: Callable[[], Awaitable[bool]],
    *,
    timeout: float,
    interval: float,
) -> bool:
    """Poll ``condition`` until it returns True.

    Raises:
        TimeoutError: If the condition is still False after ``timeout`` seconds
    """
    deadline = time.monotonic() + timeout
    while True:
        if await condition():
            return True
        if time.monotonic() >= deadline:
            raise TimeoutError("Timeout waiting for condition")
        await asyncio.sleep(interval)


async def wait_for_image(
    build_id: str,
    *,
    timeout: float = 180.0,
    interval: float = 10.0,
    cli: str = CODEFRESH_CLI,
    runner: ShellRunner = run_shell_command,
) -> bool:
    """Wait for an image build; False when it failed or timed out."""

    async def succeeded() -> bool:
        return await check_pipeline_status(build_id, cli=cli, runner=runner)

    try:
        return await wait_until(succeeded, timeout=timeout, interval=interval)
    except (TimeoutError, subprocess.CalledProcessError) as e:
        log.warning("codefresh_wait_for_image_failed", build_id=build_id, error=str(e))
        return False


async def get_logs(
    build_id: str,
    *,
    cli: str = CODEFRESH_CLI,
    runner: ShellRunner = run_shell_command,
) -> str:
    output, _, _ = await runner(f"{cli} logs {build_id}")
    return output
