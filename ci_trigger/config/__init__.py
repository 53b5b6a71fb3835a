"""Configuration for ci-trigger.

Example:
    >>> from ci_trigger.config import TriggerSettings
    >>> settings = TriggerSettings.from_yaml("ci-trigger.yaml")
    >>> settings.github.base_url
    'https://api.github.com'
"""

from ci_trigger.config.settings import (
    CodefreshConfig,
    GitHubAppConfig,
    TokenCacheConfig,
    TriggerSettings,
)

__all__ = [
    "CodefreshConfig",
    "GitHubAppConfig",
    "TokenCacheConfig",
    "TriggerSettings",
]
