"""ci-trigger: GitHub App authentication and Codefresh pipeline triggering.

The package is split into two independent pipelines that meet in
``ci_trigger.orchestrator``:

    - github: installation token caching, API client construction and
      branch ref resolution
    - codefresh: pipeline document generation, ``codefresh run`` command
      generation and CLI execution
"""

__version__ = "0.1.0"
