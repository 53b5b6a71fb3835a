"""
Generate the Codefresh pipeline document for an image build.

The document checks out the requested revision, builds the image (and an
optional init container image) with buildkit, and optionally invokes a
follow-up pipeline with the resulting tag.
"""

from typing import Any

import yaml

from ci_trigger.codefresh.steps import (
    construct_build_args,
    construct_stages,
    generate_after_build_step,
    generate_build_step,
    generate_checkout_step,
)
from ci_trigger.models.domain import PipelineOptions


def build_annotations(options: PipelineOptions) -> list[dict[str, str]]:
    """Annotations set on the build when it is elected, empty values skipped."""
    candidates = {
        "uuid": options.deploy.build_uuid,
        "deployUUID": options.deploy.uuid,
        "branch": options.deploy.branch_name,
        "repo": options.repo,
        "author": options.author,
    }
    return [{key: value} for key, value in candidates.items() if value]


def build_pipeline_document(options: PipelineOptions) -> dict[str, Any]:
    """Pipeline definition as a dict, before serialization."""
    build_args = construct_build_args(options.env_vars)
    build_kwargs: dict[str, Any] = {
        "ecr_repo": options.ecr_repo,
        "tag": options.image_tag,
        "dockerfile": options.dockerfile_path,
        "build_args": build_args,
        "repo": options.repo,
        "cache_from": options.cache_from,
    }

    steps: dict[str, Any] = {
        "Checkout": generate_checkout_step(options.revision, options.repo, options.git_context),
        "Build": generate_build_step(**build_kwargs),
    }
    if options.init_dockerfile_path:
        steps["InitContainer"] = generate_build_step(
            **{**build_kwargs, "tag": options.init_tag, "dockerfile": options.init_dockerfile_path}
        )
    if options.after_build_pipeline_id:
        steps["PostBuildPipeline"] = generate_after_build_step(
            after_build_pipeline_id=options.after_build_pipeline_id,
            tag=options.image_tag,
            build_args=build_args,
            revision=options.revision,
            branch=options.branch,
            detach=options.detach_after_build_pipeline,
            ecr_repo=options.ecr_repo,
            ecr_domain=options.ecr_domain,
        )

    return {
        "version": "1.0",
        "hooks": {
            "on_elected": {
                "annotations": {
                    "set": [{"annotations": build_annotations(options), "display": "deployUUID"}],
                },
            },
        },
        "mode": "parallel",
        "stages": construct_stages(options.init_dockerfile_path, options.after_build_pipeline_id),
        "steps": steps,
    }


def generate_yaml(options: PipelineOptions) -> str:
    """Serialize the pipeline document for ``options`` to YAML."""
    return yaml.safe_dump(build_pipeline_document(options), default_flow_style=False, sort_keys=False)
