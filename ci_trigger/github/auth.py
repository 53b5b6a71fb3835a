"""GitHub App installation token acquisition and caching.

``TokenService`` returns a valid installation access token for an
installation id. Tokens are cached in a ``KeyValueStore`` hash keyed by
installation, together with their expiry, and the hash carries a TTL so
stale entries evict themselves. The actual token exchange is delegated to
an ``InstallationAuthenticator``.

Example:
    >>> authenticator = GitHubAppAuthenticator(app_id=1234, private_key=pem)
    >>> tokens = TokenService(InMemoryStore(), authenticator)
    >>> token = await tokens.get_app_token(56789)
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import structlog
from github import Auth, GithubIntegration  # type: ignore[import-not-found]

from ci_trigger.config.settings import TriggerSettings
from ci_trigger.exceptions import ConfigurationError
from ci_trigger.github.store import KeyValueStore, create_store
from ci_trigger.models.domain import InstallationToken

log = structlog.get_logger(__name__)

# GitHub installation tokens are valid for one hour
DEFAULT_TOKEN_LIFETIME = timedelta(hours=1)


class InstallationAuthenticator(Protocol):
    """Exchanges GitHub App credentials for an installation token."""

    async def authenticate(self, installation_id: int) -> InstallationToken:
        """Return a fresh token for the installation.

        Errors are raised unchanged to the caller.
        """
        ...


class GitHubAppAuthenticator:
    """Installation token exchange through PyGithub's ``GithubIntegration``."""

    def __init__(
        self,
        app_id: int,
        private_key: str,
        base_url: str = "https://api.github.com",
    ):
        """Initialize authenticator.

        Args:
            app_id: GitHub App id
            private_key: GitHub App private key (PEM)
            base_url: GitHub API base URL (for GitHub Enterprise)
        """
        self.app_id = app_id
        self.base_url = base_url.rstrip("/")
        self._integration = GithubIntegration(
            auth=Auth.AppAuth(app_id, private_key),
            base_url=self.base_url,
        )

    async def authenticate(self, installation_id: int) -> InstallationToken:
        # PyGithub is synchronous, keep the exchange off the event loop
        authorization = await asyncio.to_thread(self._integration.get_access_token, installation_id)
        log.info(
            "installation_token_issued",
            app_id=self.app_id,
            installation_id=installation_id,
            expires_at=str(authorization.expires_at),
        )
        return InstallationToken(value=authorization.token, expires_at=authorization.expires_at)


class CallbackAuthenticator:
    """Adapts an async callback returning ``{"token": ..., "expires_at"?: ...}``."""

    def __init__(self, callback: Callable[[int], Awaitable[Mapping[str, Any]]]):
        self._callback = callback

    async def authenticate(self, installation_id: int) -> InstallationToken:
        result = await self._callback(installation_id)
        expires_at = result.get("expires_at") or result.get("expiresAt")
        if isinstance(expires_at, str):
            expires_at = datetime.fromisoformat(expires_at)
        return InstallationToken(value=result["token"], expires_at=expires_at)


class TokenService:
    """Returns cached or freshly exchanged installation access tokens.

    Concurrent refreshes for the same installation are not coordinated:
    each caller may exchange a token and the last store write wins, which
    is harmless because every issued token is valid.
    """

    def __init__(
        self,
        store: KeyValueStore,
        authenticator: InstallationAuthenticator,
        *,
        key_prefix: str = "github:installation_token",
        refresh_margin_seconds: int = 60,
        max_ttl_seconds: int = 3600,
    ):
        """Initialize token service.

        Args:
            store: Hash store holding cached tokens
            authenticator: Performs the installation token exchange
            key_prefix: Prefix of per-installation hash keys
            refresh_margin_seconds: Tokens expiring within this window are
                treated as expired
            max_ttl_seconds: Upper bound for the cache entry TTL
        """
        self._store = store
        self._authenticator = authenticator
        self.key_prefix = key_prefix
        self.refresh_margin = timedelta(seconds=refresh_margin_seconds)
        self.max_ttl_seconds = max_ttl_seconds

    async def __aenter__(self) -> "TokenService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying store (Redis connection pool)."""
        await self._store.aclose()

    def cache_key(self, installation_id: int) -> str:
        return f"{self.key_prefix}:{installation_id}"

    async def get_app_token(self, installation_id: int, logger: Any = None) -> str:
        """Return a valid installation access token.

        Args:
            installation_id: GitHub App installation id (positive)
            logger: Optional logger that records exchange failures

        Returns:
            Installation access token

        Raises:
            ValueError: If installation_id is not a positive integer
            Exception: Whatever the authenticator or the store raise,
                unchanged
        """
        if isinstance(installation_id, bool) or not isinstance(installation_id, int) or installation_id <= 0:
            raise ValueError(f"installation_id must be a positive integer, got {installation_id!r}")

        key = self.cache_key(installation_id)
        cached = await self._store.hgetall(key)
        token = self._valid_cached_token(cached)
        if token is not None:
            log.debug("installation_token_cache_hit", installation_id=installation_id)
            return token

        log.debug("installation_token_cache_miss", installation_id=installation_id)
        try:
            installation_token = await self._authenticator.authenticate(installation_id)
        except Exception as e:
            (logger or log).error(
                "installation_token_exchange_failed",
                installation_id=installation_id,
                error=str(e),
            )
            raise

        await self._cache_token(key, installation_token)
        return installation_token.value

    async def invalidate(self, installation_id: int) -> None:
        """Drop the cached token, e.g. after GitHub rejected it."""
        await self._store.delete(self.cache_key(installation_id))
        log.info("installation_token_invalidated", installation_id=installation_id)

    def _valid_cached_token(self, cached: Mapping[str, str] | None) -> str | None:
        if not cached or not cached.get("token") or not cached.get("expires_at"):
            return None
        try:
            expires_at = _as_utc(datetime.fromisoformat(cached["expires_at"]))
        except ValueError:
            log.warning("installation_token_cache_corrupt", expires_at=cached.get("expires_at"))
            return None
        if expires_at - self.refresh_margin <= datetime.now(UTC):
            return None
        return cached["token"]

    async def _cache_token(self, key: str, installation_token: InstallationToken) -> None:
        now = datetime.now(UTC)
        expires_at = (
            _as_utc(installation_token.expires_at)
            if installation_token.expires_at is not None
            else now + DEFAULT_TOKEN_LIFETIME
        )
        ttl = int((expires_at - self.refresh_margin - now).total_seconds())
        ttl = min(ttl, self.max_ttl_seconds)
        if ttl <= 0:
            log.warning("installation_token_not_cached", key=key, expires_at=expires_at.isoformat())
            return

        # hash and TTL are written together so no entry is left without expiry
        async with self._store.pipeline(transaction=True) as pipe:
            pipe.hset(key, mapping={"token": installation_token.value, "expires_at": expires_at.isoformat()})
            pipe.expire(key, ttl)
            await pipe.execute()
        log.debug("installation_token_cached", key=key, ttl=ttl)


def _as_utc(value: datetime) -> datetime:
    # PyGithub versions differ on whether expires_at is timezone-aware
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


def create_token_service(settings: TriggerSettings, store: KeyValueStore | None = None) -> TokenService:
    """Build a ``TokenService`` backed by the configured store and GitHub App.

    Raises:
        ConfigurationError: If the GitHub App id or private key is missing
    """
    github = settings.github
    if github.app_id is None:
        raise ConfigurationError("GitHub App id not configured (github.app_id)")

    cache = settings.token_cache
    return TokenService(
        store if store is not None else create_store(cache),
        GitHubAppAuthenticator(
            app_id=github.app_id,
            private_key=github.resolve_private_key(),
            base_url=github.base_url,
        ),
        key_prefix=cache.key_prefix,
        refresh_margin_seconds=cache.refresh_margin_seconds,
        max_ttl_seconds=cache.max_ttl_seconds,
    )
