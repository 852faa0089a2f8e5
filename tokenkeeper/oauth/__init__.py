from tokenkeeper.oauth.client import IdentityProviderClient, IdentityProviderError, TokenGrant

__all__ = ["IdentityProviderClient", "IdentityProviderError", "TokenGrant"]
