"""Generate ``codefresh run`` command lines.

Command generation is pure: the pipeline document is produced by the
injected generator and returned alongside the command, and callers write
it to ``config_path`` before executing the command.
"""

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from ci_trigger.codefresh.constants import CODEFRESH_CLI, CODEFRESH_PATH
from ci_trigger.codefresh.steps import construct_ecr_tag
from ci_trigger.codefresh.yaml_generator import generate_yaml
from ci_trigger.exceptions import PipelineTriggerError
from ci_trigger.models.domain import PipelineOptions

YamlGenerator = Callable[[PipelineOptions], str]


@dataclass(frozen=True)
class CodefreshRun:
    """A generated command and the pipeline document it references."""

    command: str
    config_path: Path
    document: str


def format_variables(variables: Mapping[str, str]) -> str:
    """Render ``-v 'KEY'='VALUE'`` arguments."""
    return " ".join(f"-v '{key}'='{value}'" for key, value in variables.items())


def pipeline_config_path(options: PipelineOptions, config_dir: Path | str = CODEFRESH_PATH) -> Path:
    """Location of the generated document, named after the image reference."""
    ecr_tag = construct_ecr_tag(options.ecr_repo, options.image_tag, options.ecr_domain)
    return Path(config_dir) / f"{ecr_tag.replace('/', '')}.yaml"


def prepare_codefresh_run(
    options: PipelineOptions,
    *,
    config_dir: Path | str = CODEFRESH_PATH,
    yaml_generator: YamlGenerator = generate_yaml,
    cli: str = CODEFRESH_CLI,
) -> CodefreshRun:
    """Generate the pipeline document and the command that runs it.

    The branch is always wrapped in double quotes and is not escaped;
    callers must pass shell-safe branch names.
    """
    document = yaml_generator(options)
    config_path = pipeline_config_path(options, config_dir)

    parts = [f'{cli} run "{options.build_pipeline_name}"', f'-b "{options.branch}"']
    if options.runtime_name:
        parts.append(f"--runtime-name {options.runtime_name}")
    if options.env_vars:
        parts.append(format_variables(options.env_vars))
    parts.append(f"-y {config_path} -d")

    return CodefreshRun(command=" ".join(parts), config_path=config_path, document=document)


def generate_codefresh_cmd(
    options: PipelineOptions,
    *,
    config_dir: Path | str = CODEFRESH_PATH,
    yaml_generator: YamlGenerator = generate_yaml,
    cli: str = CODEFRESH_CLI,
) -> str:
    """Return the ``codefresh run`` command for an image build."""
    return prepare_codefresh_run(options, config_dir=config_dir, yaml_generator=yaml_generator, cli=cli).command


def generate_trigger_cmd(
    pipeline_id: str,
    trigger: str,
    variables: Mapping[str, str],
    *,
    cli: str = CODEFRESH_CLI,
) -> str:
    """Return the command that runs a pipeline through one of its triggers.

    The branch is taken from the ``branch`` (or ``BRANCH``) variable.

    Raises:
        PipelineTriggerError: If no branch variable is present
    """
    branch = variables.get("branch") or variables.get("BRANCH")
    if not branch:
        raise PipelineTriggerError(f'no "branch" variable for trigger {trigger}', pipeline=pipeline_id)

    parts = [f'{cli} run "{pipeline_id}" -d -b "{branch}" --trigger "{trigger}"']
    if variables:
        parts.append(format_variables(variables))
    return " ".join(parts)
