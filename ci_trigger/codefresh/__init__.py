"""Codefresh pipeline generation and execution.

Key Components:
    - generate_yaml: PipelineOptions -> pipeline document
    - generate_codefresh_cmd / prepare_codefresh_run: PipelineOptions -> ``codefresh run`` command
    - build_image / trigger_pipeline / wait_for_image: CLI execution
"""

from ci_trigger.codefresh.command import (
    CodefreshRun,
    generate_codefresh_cmd,
    generate_trigger_cmd,
    prepare_codefresh_run,
)
from ci_trigger.codefresh.pipeline import (
    build_image,
    get_codefresh_pipeline_id_from_output,
    trigger_pipeline,
    wait_for_image,
)
from ci_trigger.codefresh.yaml_generator import generate_yaml

__all__ = [
    "CodefreshRun",
    "build_image",
    "generate_codefresh_cmd",
    "generate_trigger_cmd",
    "generate_yaml",
    "get_codefresh_pipeline_id_from_output",
    "prepare_codefresh_run",
    "trigger_pipeline",
    "wait_for_image",
]
