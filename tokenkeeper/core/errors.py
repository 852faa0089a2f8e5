"""Error taxonomy for the token lifecycle.

Every failure a caller can act on has its own exception type. Store-level
problems (connectivity, transaction conflicts) are reported separately as
:class:`StoreError` because they are safe to retry, unlike the lifecycle
errors which reflect the state of a record or a provider decision.
"""


class TokenLifecycleError(Exception):
    """Base class for token lifecycle failures."""


class NotFound(TokenLifecycleError):
    """A principal, credential or pending authorization is absent or consumed."""


class OwnershipMismatch(TokenLifecycleError):
    """A re-authentication target belongs to a different principal."""


class ExchangeFailed(TokenLifecycleError):
    """The identity provider rejected the authorization code."""


class VerificationFailed(TokenLifecycleError):
    """The identity verification call did not succeed."""


class Invalidated(TokenLifecycleError):
    """The refresh token was cleared; the principal must re-authenticate."""


class RefreshRejected(TokenLifecycleError):
    """The provider rejected a refresh; the credential has been invalidated."""


class StoreError(Exception):
    """Infrastructure failure in the persistence layer."""
