"""Builders for individual Codefresh pipeline steps.

Each function returns a plain dict ready to be placed in the ``steps``
section of a pipeline document. All builders are pure.
"""

import copy
from collections.abc import Mapping, Sequence
from typing import Any

from ci_trigger.codefresh.constants import (
    AFTER_BUILD_STEP,
    BUILD_STAGE,
    BUILD_STEP,
    CHECKOUT_STAGE,
    CHECKOUT_STEP,
    DEFAULT_GIT_CONTEXT,
    INIT_CONTAINER_STAGE,
    POST_BUILD_STAGE,
)


def construct_ecr_tag(repo: str, tag: str, ecr_domain: str) -> str:
    """Full image reference, ``<domain>/<repo>:<tag>``."""
    return f"{ecr_domain}/{repo}:{tag}"


def construct_build_args(env_vars: Mapping[str, str] | None = None) -> list[str]:
    """Docker build args that read each variable from the Codefresh run.

    >>> construct_build_args({"FOO": "bar"})
    ['FOO=${{FOO}}']
    """
    return [f"{key}=${{{{{key}}}}}" for key in (env_vars or {})]


def construct_stages(init_dockerfile_path: str | None = None, after_build_pipeline_id: str | None = None) -> list[str]:
    stages = [CHECKOUT_STAGE, BUILD_STAGE]
    if init_dockerfile_path:
        stages.append(INIT_CONTAINER_STAGE)
    if after_build_pipeline_id:
        stages.append(POST_BUILD_STAGE)
    return stages


def generate_checkout_step(revision: str, repo: str, git: str = DEFAULT_GIT_CONTEXT) -> dict[str, Any]:
    return {
        **copy.deepcopy(CHECKOUT_STEP),
        "working_directory": ".",
        "git": git,
        "repo": repo,
        "revision": revision,
    }


def generate_build_step(
    *,
    ecr_repo: str,
    tag: str,
    dockerfile: str,
    build_args: Sequence[str],
    repo: str,
    cache_from: str | None = None,
) -> dict[str, Any]:
    """Buildkit image build step.

    ``ecr_repo`` is split into registry (first segment) and image name
    (the rest). The build runs in the directory the checkout step cloned
    the repository into.
    """
    cache_from_args = [f"--cache-from={cache_from}"] if cache_from else []
    registry, _, image_name = ecr_repo.partition("/")
    return {
        **copy.deepcopy(BUILD_STEP),
        "registry": registry,
        "image_name": image_name,
        "tag": tag,
        "build_arguments": [*build_args, "BUILDKIT_INLINE_CACHE=1", *cache_from_args],
        "no_cf_cache": not cache_from,
        "working_directory": f"./{repo.split('/')[-1]}",
        "dockerfile": dockerfile,
    }


def generate_after_build_step(
    *,
    after_build_pipeline_id: str,
    tag: str,
    build_args: Sequence[str],
    revision: str,
    branch: str,
    detach: bool,
    ecr_repo: str,
    ecr_domain: str,
) -> dict[str, Any]:
    """Step that runs a follow-up pipeline with the built image tag."""
    ecr_tag = construct_ecr_tag(ecr_repo, tag, ecr_domain)
    return {
        **copy.deepcopy(AFTER_BUILD_STEP),
        "arguments": {
            "DETACH": detach,
            "PIPELINE_ID": after_build_pipeline_id,
            "VARIABLE": [
                *build_args,
                f"TAG={ecr_tag}",
                f"SOURCE_REVISION={revision}",
                f"SOURCE_BRANCH={branch}",
            ],
        },
    }
