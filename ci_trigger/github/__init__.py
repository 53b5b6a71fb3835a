"""GitHub App authentication pipeline.

Key Components:
    - TokenService: cached installation access tokens
    - GitHubAppAuthenticator / CallbackAuthenticator: token exchange
    - construct_client: token -> ApiClient (request, auth, log, hook)
    - RefResolver: branch name -> BranchRef
    - InMemoryStore / create_store: token cache backends
"""

from ci_trigger.github.auth import (
    CallbackAuthenticator,
    GitHubAppAuthenticator,
    InstallationAuthenticator,
    TokenService,
    create_token_service,
)
from ci_trigger.github.client import ApiClient, HookRegistry, TokenAuth, construct_client, create_client
from ci_trigger.github.refs import RefResolver
from ci_trigger.github.store import InMemoryStore, KeyValueStore, create_store

__all__ = [
    "ApiClient",
    "CallbackAuthenticator",
    "GitHubAppAuthenticator",
    "HookRegistry",
    "InMemoryStore",
    "InstallationAuthenticator",
    "KeyValueStore",
    "RefResolver",
    "TokenAuth",
    "TokenService",
    "construct_client",
    "create_client",
    "create_store",
    "create_token_service",
]
