"""Branch ref resolution through the GitHub REST API."""

from typing import Any

import structlog

from ci_trigger.github.client import GITHUB_API_URL, ClientFactory, construct_client, create_client
from ci_trigger.models.domain import BranchRef

log = structlog.get_logger(__name__)

REF_ROUTE = "GET /repos/{owner}/{repo}/git/ref/{ref}"


class RefResolver:
    """Resolves branch names to their current git ref.

    Refs are read from the API on every call; they move too often to be
    cached locally.
    """

    def __init__(
        self,
        token_service: Any,
        client_factory: ClientFactory = construct_client,
        base_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
    ):
        """Initialize resolver.

        Args:
            token_service: TokenService providing installation tokens
            client_factory: Builds an ApiClient from a token
            base_url: GitHub API base URL (for GitHub Enterprise)
            timeout: HTTP timeout in seconds
        """
        self.token_service = token_service
        self.client_factory = client_factory
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def aclose(self) -> None:
        await self.token_service.aclose()

    async def get_ref_for_branch_name(
        self,
        owner: str,
        repo: str,
        branch: str,
        installation_id: int,
        logger: Any = None,
    ) -> BranchRef:
        """Fetch ``refs/heads/<branch>`` for a repository.

        Args:
            owner: Repository owner
            repo: Repository name
            branch: Branch name, without the ``refs/heads/`` prefix
            installation_id: Installation whose token is used
            logger: Optional logger bound into the client

        Returns:
            BranchRef holding the raw ref payload

        Raises:
            httpx.HTTPStatusError: Not found, auth rejected, etc.
            httpx.TransportError: Network failures
        """
        logger = logger or log
        client = await create_client(
            installation_id,
            self.token_service,
            client_factory=self.client_factory,
            logger=logger,
            caller="get_ref_for_branch_name",
            base_url=self.base_url,
            timeout=self.timeout,
        )
        try:
            async with client:
                resp = await client.request(REF_ROUTE, owner=owner, repo=repo, ref=f"heads/{branch}")
        except Exception as e:
            logger.error(
                "github_get_ref_failed",
                owner=owner,
                repo=repo,
                branch=branch,
                error=str(e),
            )
            raise

        ref = BranchRef(data=resp.data, status=resp.status, headers=resp.headers)
        logger.info("github_ref_resolved", owner=owner, repo=repo, branch=branch, sha=ref.sha)
        return ref
