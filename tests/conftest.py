"""Pytest configuration and shared fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from ci_trigger.github.store import InMemoryStore
from ci_trigger.models.domain import DeployContext, InstallationToken, PipelineOptions

ECR_DOMAIN = "account-id.dkr.ecr.us-west-2.amazonaws.com"


class StubAuthenticator:
    """Authenticator double that records calls and returns queued tokens."""

    def __init__(self, *tokens: str, error: Exception | None = None, lifetime: timedelta = timedelta(hours=1)):
        self.tokens = list(tokens) or ["ghs_token_1"]
        self.error = error
        self.lifetime = lifetime
        self.calls: list[int] = []

    async def authenticate(self, installation_id: int) -> InstallationToken:
        self.calls.append(installation_id)
        if self.error is not None:
            raise self.error
        value = self.tokens[min(len(self.calls), len(self.tokens)) - 1]
        return InstallationToken(value=value, expires_at=datetime.now(UTC) + self.lifetime)


@pytest.fixture
def memory_store() -> InMemoryStore:
    """Empty in-memory token store."""
    return InMemoryStore()


@pytest.fixture
def authenticator(make_authenticator) -> StubAuthenticator:
    """Authenticator handing out ghs_token_1, then ghs_token_2."""
    return make_authenticator("ghs_token_1", "ghs_token_2")


@pytest.fixture
def pipeline_options() -> PipelineOptions:
    """Options for a build of test-org/test-repo on main."""
    return PipelineOptions(
        branch="main",
        image_tag="abc123",
        repo="test-org/test-repo",
        revision="abc123def456",
        ecr_repo="lfc/lifecycle-deployments",
        ecr_domain=ECR_DOMAIN,
        build_pipeline_name="lifecycle/build",
        dockerfile_path="Dockerfile",
        deploy=DeployContext(uuid="456", build_uuid="123", branch_name="foo"),
        uuid="123",
    )


@pytest.fixture
def make_authenticator():
    """Factory for StubAuthenticator instances."""
    return StubAuthenticator
