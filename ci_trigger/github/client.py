"""Authenticated GitHub REST API client construction.

``construct_client`` turns an installation token into an ``ApiClient``: a
bundle of an octokit-style ``request`` function, the token ``auth``
handler, a structured ``log`` and a ``hook`` registry over the underlying
``httpx.AsyncClient`` event hooks. Construction performs no network I/O.

Example:
    >>> async with construct_client(token, caller="get_ref_for_branch_name") as client:
    ...     resp = await client.request(
    ...         "GET /repos/{owner}/{repo}/git/ref/{ref}",
    ...         owner="goodrx", repo="web", ref="heads/main",
    ...     )
    ...     resp.data["object"]["sha"]
"""

import re
from collections.abc import Awaitable, Callable, Generator
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx
import structlog

from ci_trigger.models.domain import ApiResponse

log = structlog.get_logger(__name__)

GITHUB_API_URL = "https://api.github.com"
GITHUB_MEDIA_TYPE = "application/vnd.github+json"
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "ci-trigger"

EventHook = Callable[[Any], Awaitable[None]]

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


class TokenAuth(httpx.Auth):
    """Installation token authentication.

    Sets ``Authorization: token <value>`` on every request. Awaiting the
    instance returns the current auth state, mirroring octokit's
    ``auth()`` call.
    """

    def __init__(self, token: str, token_type: str = "installation"):
        self.token = token
        self.token_type = token_type

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers["Authorization"] = f"token {self.token}"
        yield request

    async def __call__(self) -> dict[str, str]:
        return {"type": "token", "token": self.token, "token_type": self.token_type}

    def update(self, token: str) -> None:
        """Swap the token used for subsequent requests."""
        self.token = token


class HookRegistry:
    """Registers request lifecycle hooks on an ``httpx.AsyncClient``.

    Hooks are async callables; ``before`` hooks receive the outgoing
    ``httpx.Request`` and ``after`` hooks the ``httpx.Response``. Both
    methods return the hook so they can be used as decorators.
    """

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    def before(self, hook: EventHook) -> EventHook:
        self._http.event_hooks["request"].append(hook)
        return hook

    def after(self, hook: EventHook) -> EventHook:
        self._http.event_hooks["response"].append(hook)
        return hook

    def remove(self, hook: EventHook) -> bool:
        """Unregister a hook; returns False if it was not registered."""
        for hooks in self._http.event_hooks.values():
            if hook in hooks:
                hooks.remove(hook)
                return True
        return False

    @property
    def request_hooks(self) -> list[EventHook]:
        return list(self._http.event_hooks["request"])

    @property
    def response_hooks(self) -> list[EventHook]:
        return list(self._http.event_hooks["response"])


@dataclass
class ApiClient:
    """Capabilities of an authenticated GitHub session.

    Attributes:
        request: ``await request(route, **params) -> ApiResponse``
        auth: Token auth handler
        log: Structured logger bound to the caller
        hook: Request lifecycle hook registry
        http: Underlying HTTP client
    """

    request: Callable[..., Awaitable[ApiResponse]]
    auth: TokenAuth
    log: Any
    hook: HookRegistry
    http: httpx.AsyncClient

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


ClientFactory = Callable[..., ApiClient]


def expand_route(route: str, params: dict[str, Any]) -> tuple[str, str, dict[str, Any]]:
    """Split an octokit-style route into method, path and leftover params.

    ``"GET /repos/{owner}/{repo}"`` with ``owner="a", repo="b", per_page=5``
    gives ``("GET", "/repos/a/b", {"per_page": 5})``. Values are URL-quoted
    with ``/`` kept, so ``ref="heads/feature/x"`` stays a path.

    Raises:
        ValueError: If a placeholder has no matching parameter
    """
    method, _, template = route.strip().partition(" ")
    if not template:
        method, template = "GET", method
    remaining = dict(params)

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in remaining:
            raise ValueError(f"Missing route parameter '{name}' for {route}")
        return quote(str(remaining.pop(name)), safe="/")

    return method.upper(), _PLACEHOLDER.sub(substitute, template.strip()), remaining


def request_insights(response: httpx.Response, caller: str = "") -> dict[str, Any]:
    """Summarize caching and rate-limit headers of a GitHub response."""
    headers = response.headers
    return {
        "caller": caller,
        "method": response.request.method,
        "path": response.request.url.path,
        "status": response.status_code,
        "etag": headers.get("etag"),
        "last_modified": headers.get("last-modified"),
        "rate_limit": headers.get("x-ratelimit-limit"),
        "rate_used": headers.get("x-ratelimit-used"),
        "rate_reset": headers.get("x-ratelimit-reset"),
    }


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return None
    if "json" in response.headers.get("content-type", ""):
        return response.json()
    return response.text


def construct_client(
    token: str,
    *,
    base_url: str = GITHUB_API_URL,
    logger: Any = None,
    caller: str = "",
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ApiClient:
    """Build an authenticated API client for a token.

    Args:
        token: Installation access token
        base_url: GitHub API base URL (for GitHub Enterprise)
        logger: Structured logger to bind; defaults to this module's logger
        caller: Name of the calling operation, bound to log events
        timeout: HTTP timeout in seconds
        transport: Optional httpx transport (e.g. ``httpx.MockTransport``)

    Returns:
        ApiClient with request, auth, log and hook populated

    Raises:
        ValueError: If token is empty
    """
    if not token or not token.strip():
        raise ValueError("A token is required to construct a GitHub client")

    auth = TokenAuth(token.strip())
    client_log = (logger or log).bind(caller=caller)
    http = httpx.AsyncClient(
        base_url=base_url.rstrip("/"),
        auth=auth,
        headers={
            "Accept": GITHUB_MEDIA_TYPE,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
            "User-Agent": USER_AGENT,
        },
        timeout=timeout,
        transport=transport,
    )
    hook = HookRegistry(http)

    @hook.after
    async def _record_request(response: httpx.Response) -> None:
        client_log.debug("github_api_request", **request_insights(response, caller))

    async def request(
        route: str,
        *,
        headers: dict[str, str] | None = None,
        data: Any = None,
        **params: Any,
    ) -> ApiResponse:
        method, path, query = expand_route(route, params)
        response = await http.request(method, path, params=query or None, json=data, headers=headers)
        response.raise_for_status()
        return ApiResponse(
            status=response.status_code,
            url=str(response.url),
            headers=dict(response.headers),
            data=_decode(response),
        )

    return ApiClient(request=request, auth=auth, log=client_log, hook=hook, http=http)


async def create_client(
    installation_id: int,
    token_service: Any,
    *,
    client_factory: ClientFactory = construct_client,
    logger: Any = None,
    **kwargs: Any,
) -> ApiClient:
    """Obtain an installation token and construct a client for it.

    ``token_service`` is a ``TokenService`` (or anything with the same
    ``get_app_token`` coroutine). Token errors propagate unchanged.
    """
    token = await token_service.get_app_token(installation_id, logger=logger)
    return client_factory(token, logger=logger, **kwargs)
