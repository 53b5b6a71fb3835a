"""Unit tests for the ci_trigger.main CLI module.

This module tests the CLI entry point including:
- All CLI commands (token, ref, render, command, build, trigger, tag-exists, logs)
- Configuration loading and error handling
- Option parsing helpers
"""

from unittest.mock import AsyncMock, MagicMock, patch

import click
import pytest
import yaml
from click.testing import CliRunner

from ci_trigger.exceptions import ConfigurationError
from ci_trigger.main import cli, load_options, parse_variables, resolve_installation_id
from ci_trigger.models.domain import BranchRef

BUILD_ID = "672ea2c44b9c09ed7c91a8ef"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def mock_configure_logging():
    """Keep CLI invocations from reconfiguring structlog for other tests."""
    with patch("ci_trigger.main.configure_logging") as mock:
        yield mock


@pytest.fixture
def config_file(tmp_path):
    """Create a configuration file."""
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""
github:
  app_id: 1234
  private_key: test-key
  installation_id: 55
codefresh:
  config_dir: {tmp_path / "codefresh"}
"""
    )
    return path


@pytest.fixture
def options_file(tmp_path):
    """Create a pipeline options file."""
    path = tmp_path / "options.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "branch": "feature/login",
                "image_tag": "latest",
                "repo": "goodrx/web",
                "revision": "abc123",
                "ecr_repo": "lfc/web",
                "ecr_domain": "1234.dkr.ecr.us-west-2.amazonaws.com",
                "build_pipeline_name": "lifecycle/build",
                "env_vars": {"NODE_ENV": "production"},
                "deploy": {"uuid": "deploy-1", "build_uuid": "build-1"},
            }
        )
    )
    return path


# =============================================================================
# CLI group
# =============================================================================


class TestCliGroup:
    """Tests for the CLI group and configuration loading."""

    def test_help(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        for command in ("token", "ref", "render", "command", "build", "trigger", "tag-exists", "logs"):
            assert command in result.output

    def test_missing_config_file(self, cli_runner, tmp_path, options_file):
        result = cli_runner.invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "render", str(options_file)])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output

    def test_log_level_passed(self, cli_runner, options_file, mock_configure_logging):
        result = cli_runner.invoke(cli, ["--log-level", "DEBUG", "render", str(options_file)])

        assert result.exit_code == 0
        mock_configure_logging.assert_called_once_with("DEBUG")


# =============================================================================
# Generation commands
# =============================================================================


class TestRenderCommand:
    """Tests for the render command."""

    def test_render(self, cli_runner, options_file):
        result = cli_runner.invoke(cli, ["render", str(options_file)])

        assert result.exit_code == 0
        document = yaml.safe_load(result.output)
        assert document["steps"]["Checkout"]["revision"] == "abc123"
        assert document["steps"]["Build"]["tag"] == "latest"

    def test_configured_git_context(self, cli_runner, options_file, tmp_path):
        config = tmp_path / "ci-trigger.yaml"
        config.write_text("codefresh:\n  git_context: github-enterprise\n")

        result = cli_runner.invoke(cli, ["--config", str(config), "render", str(options_file)])

        assert result.exit_code == 0
        assert yaml.safe_load(result.output)["steps"]["Checkout"]["git"] == "github-enterprise"

    def test_invalid_options(self, cli_runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("branch: main\nbogus: 1\n")

        result = cli_runner.invoke(cli, ["render", str(path)])

        assert result.exit_code == 1
        assert "Error: Unknown pipeline option(s): bogus" in result.output


class TestCommandCommand:
    """Tests for the command command."""

    def test_command(self, cli_runner, options_file, tmp_path):
        result = cli_runner.invoke(cli, ["command", str(options_file), "--config-dir", str(tmp_path / "cf")])

        assert result.exit_code == 0
        assert '-b "feature/login"' in result.output
        assert "latest" in result.output
        assert "-v 'NODE_ENV'='production'" in result.output
        assert str(tmp_path / "cf") in result.output

    def test_command_uses_configured_dir(self, cli_runner, config_file, options_file, tmp_path):
        result = cli_runner.invoke(cli, ["--config", str(config_file), "command", str(options_file)])

        assert result.exit_code == 0
        assert str(tmp_path / "codefresh") in result.output


# =============================================================================
# GitHub commands
# =============================================================================


class TestTokenCommand:
    """Tests for the token command."""

    @patch("ci_trigger.main.create_token_service")
    def test_token(self, mock_create, cli_runner, config_file):
        mock_create.return_value.get_app_token = AsyncMock(return_value="ghs_abc")
        mock_create.return_value.aclose = AsyncMock()

        result = cli_runner.invoke(cli, ["--config", str(config_file), "token"])

        assert result.exit_code == 0
        assert result.output.strip() == "ghs_abc"
        mock_create.return_value.get_app_token.assert_awaited_once_with(55)
        mock_create.return_value.aclose.assert_awaited_once()

    @patch("ci_trigger.main.create_token_service")
    def test_token_explicit_installation(self, mock_create, cli_runner, config_file):
        mock_create.return_value.get_app_token = AsyncMock(return_value="ghs_abc")
        mock_create.return_value.aclose = AsyncMock()

        result = cli_runner.invoke(cli, ["--config", str(config_file), "token", "--installation-id", "7"])

        assert result.exit_code == 0
        mock_create.return_value.get_app_token.assert_awaited_once_with(7)

    def test_token_without_app_id(self, cli_runner, tmp_path):
        config = tmp_path / "config.yaml"
        config.write_text("github:\n  installation_id: 5\n")

        result = cli_runner.invoke(cli, ["--config", str(config), "token"])

        assert result.exit_code == 1
        assert "GitHub App id not configured" in result.output

    @patch("ci_trigger.main.create_token_service")
    def test_token_exchange_failure(self, mock_create, cli_runner, config_file):
        mock_create.return_value.get_app_token = AsyncMock(side_effect=RuntimeError("401 Bad credentials"))
        mock_create.return_value.aclose = AsyncMock()

        result = cli_runner.invoke(cli, ["--config", str(config_file), "token"])

        assert result.exit_code == 1
        assert "Unexpected error: 401 Bad credentials" in result.output
        mock_create.return_value.aclose.assert_awaited_once()


class TestRefCommand:
    """Tests for the ref command."""

    @patch("ci_trigger.main.RefResolver")
    @patch("ci_trigger.main.create_token_service")
    def test_ref(self, mock_create, mock_resolver_class, cli_runner, config_file):
        resolver = MagicMock()
        resolver.get_ref_for_branch_name = AsyncMock(
            return_value=BranchRef(data={"ref": "refs/heads/main", "object": {"sha": "aa218f56"}})
        )
        resolver.aclose = AsyncMock()
        mock_resolver_class.return_value = resolver

        result = cli_runner.invoke(cli, ["--config", str(config_file), "ref", "goodrx", "web", "main"])

        assert result.exit_code == 0
        assert '"sha": "aa218f56"' in result.output
        resolver.get_ref_for_branch_name.assert_awaited_once_with("goodrx", "web", "main", 55)
        resolver.aclose.assert_awaited_once()


# =============================================================================
# Codefresh commands
# =============================================================================


class TestBuildCommand:
    """Tests for the build command."""

    @patch("ci_trigger.main.BuildTrigger")
    def test_build(self, mock_trigger_class, cli_runner, config_file, options_file):
        build_trigger = MagicMock()
        build_trigger.trigger_build = AsyncMock(return_value=(BUILD_ID, "abc123"))
        build_trigger.aclose = AsyncMock()
        mock_trigger_class.from_settings.return_value = build_trigger

        result = cli_runner.invoke(cli, ["--config", str(config_file), "build", str(options_file)])

        assert result.exit_code == 0
        assert f"{BUILD_ID} abc123" in result.output
        installation_id, options = build_trigger.trigger_build.await_args.args
        assert installation_id == 55
        assert options.branch == "feature/login"
        build_trigger.aclose.assert_awaited_once()

    @patch("ci_trigger.main.wait_for_image", new_callable=AsyncMock)
    @patch("ci_trigger.main.BuildTrigger")
    def test_build_wait_failure(self, mock_trigger_class, mock_wait, cli_runner, config_file, options_file):
        build_trigger = MagicMock()
        build_trigger.trigger_build = AsyncMock(return_value=(BUILD_ID, "abc123"))
        build_trigger.aclose = AsyncMock()
        mock_trigger_class.from_settings.return_value = build_trigger
        mock_wait.return_value = False

        result = cli_runner.invoke(cli, ["--config", str(config_file), "build", str(options_file), "--wait"])

        assert result.exit_code == 1
        assert f"Build {BUILD_ID} did not succeed" in result.output
        mock_wait.assert_awaited_once()

    def test_build_needs_installation_without_revision(self, cli_runner, tmp_path):
        options = tmp_path / "options.yaml"
        options.write_text("branch: main\nimage_tag: v1\nrepo: goodrx/web\n")

        result = cli_runner.invoke(cli, ["build", str(options)])

        assert result.exit_code == 1
        assert "No installation id given" in result.output

    @patch("ci_trigger.orchestrator.build_image", new_callable=AsyncMock)
    def test_build_with_revision_without_github_app(self, mock_build_image, cli_runner, options_file, monkeypatch):
        monkeypatch.delenv("CI_TRIGGER_GITHUB__APP_ID", raising=False)
        mock_build_image.return_value = BUILD_ID

        result = cli_runner.invoke(cli, ["build", str(options_file)])

        assert result.exit_code == 0
        assert f"{BUILD_ID} abc123" in result.output
        options = mock_build_image.await_args.args[0]
        assert options.revision == "abc123"

    @patch("ci_trigger.main.BuildTrigger")
    def test_build_closes_trigger_on_failure(self, mock_trigger_class, cli_runner, config_file, options_file):
        build_trigger = MagicMock()
        build_trigger.trigger_build = AsyncMock(side_effect=RuntimeError("codefresh down"))
        build_trigger.aclose = AsyncMock()
        mock_trigger_class.from_settings.return_value = build_trigger

        result = cli_runner.invoke(cli, ["--config", str(config_file), "build", str(options_file)])

        assert result.exit_code == 1
        assert "codefresh down" in result.output
        build_trigger.aclose.assert_awaited_once()


class TestTriggerCommand:
    """Tests for the trigger command."""

    @patch("ci_trigger.main.trigger_pipeline", new_callable=AsyncMock)
    def test_trigger(self, mock_trigger, cli_runner):
        mock_trigger.return_value = BUILD_ID

        result = cli_runner.invoke(cli, ["trigger", "foo", "--trigger", "bar", "-v", "branch=baz", "-v", "TAG=x=y"])

        assert result.exit_code == 0
        assert BUILD_ID in result.output
        mock_trigger.assert_awaited_once_with("foo", "bar", {"branch": "baz", "TAG": "x=y"}, cli="codefresh")

    def test_trigger_bad_variable(self, cli_runner):
        result = cli_runner.invoke(cli, ["trigger", "foo", "--trigger", "bar", "-v", "novalue"])

        assert result.exit_code == 2
        assert "expected KEY=VALUE" in result.output

    def test_trigger_without_branch(self, cli_runner):
        result = cli_runner.invoke(cli, ["trigger", "foo", "--trigger", "bar", "-v", "TAG=x"])

        assert result.exit_code == 1
        assert 'no "branch" variable' in result.output


# =============================================================================
# Helpers
# =============================================================================


class TestHelpers:
    """Tests for option parsing helpers."""

    def test_parse_variables(self):
        assert parse_variables(("A=1", "B=")) == {"A": "1", "B": ""}

    def test_parse_variables_rejects_missing_key(self):
        with pytest.raises(click.BadParameter):
            parse_variables(("=1",))

    def test_resolve_installation_id_prefers_argument(self):
        settings = MagicMock()
        settings.github.installation_id = 5

        assert resolve_installation_id(settings, 9) == 9
        assert resolve_installation_id(settings, None) == 5

    def test_resolve_installation_id_missing(self):
        settings = MagicMock()
        settings.github.installation_id = None

        with pytest.raises(ConfigurationError):
            resolve_installation_id(settings, None)

    def test_load_options_requires_mapping(self, tmp_path):
        path = tmp_path / "options.yaml"
        path.write_text("- a\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            load_options(str(path))


class TestTagExistsCommand:
    """Tests for the tag-exists command."""

    @patch("ci_trigger.main.tag_exists", new_callable=AsyncMock)
    def test_present(self, mock_tag_exists, cli_runner):
        mock_tag_exists.return_value = True

        result = cli_runner.invoke(
            cli, ["tag-exists", "abc123", "--ecr-repo", "lfc/web", "--ecr-domain", "1234.dkr.ecr.us-west-2.amazonaws.com"]
        )

        assert result.exit_code == 0
        assert "present" in result.output
        mock_tag_exists.assert_awaited_once_with(
            "abc123", ecr_repo="lfc/web", ecr_domain="1234.dkr.ecr.us-west-2.amazonaws.com"
        )

    @patch("ci_trigger.main.tag_exists", new_callable=AsyncMock)
    def test_missing(self, mock_tag_exists, cli_runner):
        mock_tag_exists.return_value = False

        result = cli_runner.invoke(cli, ["tag-exists", "abc123"])

        assert result.exit_code == 1
        assert "missing" in result.output
        mock_tag_exists.assert_awaited_once_with("abc123", ecr_repo="lifecycle-deployments", ecr_domain="")


class TestLogsCommand:
    """Tests for the logs command."""

    @patch("ci_trigger.main.get_logs", new_callable=AsyncMock)
    def test_logs(self, mock_get_logs, cli_runner):
        mock_get_logs.return_value = "Step 1/3 : FROM node:20\n"

        result = cli_runner.invoke(cli, ["logs", BUILD_ID])

        assert result.exit_code == 0
        assert result.output == "Step 1/3 : FROM node:20\n"
        mock_get_logs.assert_awaited_once_with(BUILD_ID, cli="codefresh")
