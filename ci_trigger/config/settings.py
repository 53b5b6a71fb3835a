"""
Configuration system using Pydantic for type-safe settings management.

This module provides configuration classes for the GitHub App credentials,
the installation token cache and the Codefresh CLI integration.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, HttpUrl, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ci_trigger.exceptions import ConfigurationError

DEFAULT_CODEFRESH_DIR = Path("/tmp/lifecycle/codefresh")


class GitHubAppConfig(BaseModel):
    """GitHub App configuration.

    The private key may be given inline (``private_key``, usually through
    ``${ENV}`` interpolation) or as a PEM file path (``private_key_path``).
    """

    app_id: int | None = Field(default=None, ge=1, description="GitHub App id")
    private_key: SecretStr | None = Field(default=None, description="GitHub App private key (PEM)")
    private_key_path: Path | None = Field(default=None, description="Path to the GitHub App private key")
    installation_id: int | None = Field(default=None, ge=1, description="Default installation id")
    api_url: HttpUrl = Field(
        default="https://api.github.com",  # type: ignore[assignment]
        validate_default=True,
        description="GitHub REST API base URL",
    )
    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")

    @property
    def base_url(self) -> str:
        """API URL without the trailing slash Pydantic adds."""
        return str(self.api_url).rstrip("/")

    def resolve_private_key(self) -> str:
        """Return the PEM private key.

        Raises:
            ConfigurationError: If no key is configured or the key file is unreadable
        """
        if self.private_key is not None:
            # keys stored in env vars often carry literal \n sequences
            return self.private_key.get_secret_value().replace("\\n", "\n")
        if self.private_key_path is not None:
            try:
                return self.private_key_path.read_text()
            except OSError as e:
                raise ConfigurationError(f"Cannot read GitHub App private key: {self.private_key_path}") from e
        raise ConfigurationError("GitHub App private key not configured (set private_key or private_key_path)")


class TokenCacheConfig(BaseModel):
    """Installation token cache configuration."""

    redis_url: str | None = Field(default=None, description="Redis URL; the in-memory store is used when unset")
    key_prefix: str = Field(default="github:installation_token", description="Prefix of cache hash keys")
    refresh_margin_seconds: int = Field(
        default=60, ge=0, description="Tokens expiring within this window are refreshed"
    )
    max_ttl_seconds: int = Field(default=3600, ge=1, description="Upper bound of the cache entry TTL")


class CodefreshConfig(BaseModel):
    """Codefresh CLI configuration."""

    cli: str = Field(default="codefresh", description="Codefresh CLI executable")
    config_dir: Path = Field(default=DEFAULT_CODEFRESH_DIR, description="Directory for generated pipeline YAML")
    git_context: str = Field(default="github", description="Codefresh git integration used for checkout")
    wait_timeout_seconds: float = Field(default=180.0, gt=0, description="Maximum wait for an image build")
    poll_interval_seconds: float = Field(default=10.0, gt=0, description="Build status poll interval")

    @model_validator(mode="after")
    def _check_intervals(self) -> CodefreshConfig:
        if self.poll_interval_seconds > self.wait_timeout_seconds:
            raise ValueError("poll_interval_seconds must not exceed wait_timeout_seconds")
        return self


class TriggerSettings(BaseSettings):
    """Main ci-trigger settings.

    Values come from a YAML file (``from_yaml``) or from environment
    variables such as ``CI_TRIGGER_GITHUB__APP_ID``.
    """

    model_config = SettingsConfigDict(
        env_prefix="CI_TRIGGER_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    github: GitHubAppConfig = Field(default_factory=GitHubAppConfig)
    token_cache: TokenCacheConfig = Field(default_factory=TokenCacheConfig)
    codefresh: CodefreshConfig = Field(default_factory=CodefreshConfig)
    log_level: str = Field(default="INFO", description="Minimum log level")

    @classmethod
    def from_yaml(cls, config_path: str) -> TriggerSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            TriggerSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing required fields
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e
        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left unchanged.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
