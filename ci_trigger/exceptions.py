"""Custom exception hierarchy for ci-trigger.

Only conditions detected by ci-trigger itself are raised as these types.
Failures coming from collaborators (the GitHub App token exchange, the
GitHub REST API, the token store) are propagated to the caller unchanged.

Exception Hierarchy:
    CiTriggerError (base)
    ├── ConfigurationError
    └── PipelineError
        ├── PipelineOutputError
        └── PipelineTriggerError

Example Usage:
    >>> from ci_trigger.exceptions import ConfigurationError
    >>> try:
    ...     load_config(path)
    ... except FileNotFoundError as e:
    ...     raise ConfigurationError(f"Config file not found: {path}") from e
"""


class CiTriggerError(Exception):
    """Base exception for all ci-trigger errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


class ConfigurationError(CiTriggerError):
    """Configuration-related errors.

    Examples:
        - Configuration file not found
        - Invalid YAML syntax
        - Missing GitHub App private key
        - Malformed pipeline options file
    """

    pass


class PipelineError(CiTriggerError):
    """Codefresh pipeline errors.

    Attributes:
        message: Human-readable error description
        pipeline: Pipeline name or id involved, if known
    """

    def __init__(self, message: str, pipeline: str | None = None) -> None:
        self.pipeline = pipeline
        full_message = f"[{pipeline}] {message}" if pipeline else message
        super().__init__(full_message)
        self.message = message


class PipelineOutputError(PipelineError):
    """The Codefresh CLI produced no usable output (e.g. no build id)."""

    pass


class PipelineTriggerError(PipelineError):
    """A pipeline trigger request is missing required data."""

    pass
