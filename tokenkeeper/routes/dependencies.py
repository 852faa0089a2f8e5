"""FastAPI dependency providers for the token lifecycle."""
from functools import lru_cache

from fastapi import Depends

from tokenkeeper.core.config import settings
from tokenkeeper.core.database import engine
from tokenkeeper.oauth.client import IdentityProviderClient
from tokenkeeper.services.token_manager import TokenLifecycleManager
from tokenkeeper.store import CredentialStore


def get_store() -> CredentialStore:
    """Dependency for the credential store."""
    return CredentialStore(engine)


@lru_cache
def get_provider() -> IdentityProviderClient:
    """Shared provider client; its HTTP connection pool is reused."""
    return IdentityProviderClient.from_settings(settings)


def get_manager(
    store: CredentialStore = Depends(get_store),
    provider: IdentityProviderClient = Depends(get_provider),
) -> TokenLifecycleManager:
    """Dependency for the token lifecycle manager."""
    return TokenLifecycleManager.from_settings(settings, store, provider)


def close_provider() -> None:
    """Close the shared provider client if a request ever created it."""
    if get_provider.cache_info().currsize:
        get_provider().close()
        get_provider.cache_clear()
