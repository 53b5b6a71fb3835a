"""Codefresh pipeline step templates and identifiers."""

from pathlib import Path

from ci_trigger.config.settings import DEFAULT_CODEFRESH_DIR

CODEFRESH_CLI = "codefresh"
CODEFRESH_PATH: Path = DEFAULT_CODEFRESH_DIR

DEFAULT_GIT_CONTEXT = "github"

CHECKOUT_STAGE = "Checkout"
BUILD_STAGE = "Build"
INIT_CONTAINER_STAGE = "InitContainer"
POST_BUILD_STAGE = "PostBuild"

# Codefresh build ids are 24-character hexadecimal strings
PIPELINE_ID_PATTERN = r"^[a-f0-9]{24}$"

CHECKOUT_STEP = {
    "stage": CHECKOUT_STAGE,
    "fail_fast": True,
    "title": "Checkout repo",
    "type": "git-clone",
}

BUILD_STEP = {
    "stage": BUILD_STAGE,
    "title": "Build lifecycle image",
    "type": "build",
    "buildkit": True,
    "buildx": True,
    "when": {"steps": [{"name": "Checkout", "on": ["success"]}]},
}

AFTER_BUILD_STEP = {
    "stage": POST_BUILD_STAGE,
    "type": "codefresh-run:1.5.3",
    "title": "Invoke pipeline after build completes",
    "when": {"steps": [{"name": "Build", "on": ["success"]}]},
}
