"""Token lifecycle orchestration.

The manager drives the three-legged OAuth flow and keeps credentials
usable:

1. :meth:`TokenLifecycleManager.begin_authorization` records a pending
   authorization and returns the provider redirect URL.
2. :meth:`TokenLifecycleManager.complete_authorization` consumes the pending
   record named by the callback's state, exchanges the code and stores the
   resulting tokens.
3. :meth:`TokenLifecycleManager.get_usable_access_token` hands out the
   current access token, refreshing it first when it is inside the renewal
   window.

The pending record is deleted as soon as the callback finds it, before the
code exchange. A failed exchange therefore cannot be retried with the same
state; the caller restarts at step 1.
"""
import logging
from datetime import timedelta

from tokenkeeper.core.clock import Clock, as_utc, utcnow
from tokenkeeper.core.config import Settings
from tokenkeeper.core.errors import (
    ExchangeFailed,
    Invalidated,
    NotFound,
    RefreshRejected,
    VerificationFailed,
)
from tokenkeeper.models import NO_EXISTING_CREDENTIAL, AccessCredential, Principal
from tokenkeeper.oauth.client import IdentityProviderClient, IdentityProviderError
from tokenkeeper.store import CredentialStore

logger = logging.getLogger(__name__)


def normalize_scopes(scopes: str) -> str:
    """Collapse whitespace in a space-delimited scope string."""
    normalized = " ".join(scopes.split())
    if not normalized:
        raise ValueError("At least one scope is required")
    return normalized


class TokenLifecycleManager:
    """Issue, correlate and renew provider tokens for principals."""

    def __init__(
        self,
        store: CredentialStore,
        provider: IdentityProviderClient,
        *,
        callback_url: str,
        verify_url: str,
        pending_lifetime: timedelta = timedelta(minutes=10),
        clock: Clock = utcnow,
    ):
        self.store = store
        self.provider = provider
        self.callback_url = callback_url
        self.verify_url = verify_url
        self.pending_lifetime = pending_lifetime
        self.clock = clock

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: CredentialStore,
        provider: IdentityProviderClient | None = None,
    ) -> "TokenLifecycleManager":
        return cls(
            store,
            provider or IdentityProviderClient.from_settings(settings),
            callback_url=settings.sso_callback_url,
            verify_url=settings.sso_verify_url,
            pending_lifetime=timedelta(minutes=settings.pending_authorization_lifetime_minutes),
        )

    def begin_authorization(
        self,
        principal_id: int,
        scopes: str,
        callback_url: str | None = None,
        existing_credential_id: int = NO_EXISTING_CREDENTIAL,
    ) -> str:
        """Start an authorization and return the provider redirect URL.

        Raises:
            NotFound: the principal is missing or inactive, or
                ``existing_credential_id`` is not one of its credentials.
            ValueError: ``scopes`` is empty.
        """
        scopes = normalize_scopes(scopes)
        self._active_principal(principal_id)

        if existing_credential_id != NO_EXISTING_CREDENTIAL:
            existing = self.store.get_credential(existing_credential_id)
            if existing is None or existing.principal_id != principal_id:
                raise NotFound(
                    f"Principal {principal_id} has no credential {existing_credential_id}"
                )

        now = self.clock()
        pending = self.store.create_pending(
            principal_id=principal_id,
            scopes=scopes,
            callback_url=callback_url or self.callback_url,
            created_at=now,
            expires_at=now + self.pending_lifetime,
            existing_credential_id=existing_credential_id,
        )
        logger.info(
            f"Authorization {pending.id} started for principal {principal_id} "
            f"(scopes={scopes!r}, reauth={pending.is_reauthentication})"
        )
        return self.provider.build_authorization_url(
            pending.callback_url, scopes, pending.state_key
        )

    def complete_authorization(
        self, state_key: str, code: str, verify_url: str | None = None
    ) -> int:
        """Finish an authorization from its provider callback.

        Returns the ID of the created or updated credential. The access
        token itself is only handed out by :meth:`get_usable_access_token`.

        Raises:
            NotFound: no live pending authorization carries ``state_key``,
                or it expired before the reaper removed it.
            ExchangeFailed: the provider rejected the code.
            VerificationFailed: the identity lookup failed.
            OwnershipMismatch: the re-authentication target changed owner
                or disappeared.
        """
        # Single use: consumed before the exchange, whatever its outcome
        pending = self.store.consume_pending_by_state(state_key) if state_key else None
        if pending is None:
            logger.warning("Callback presented an unknown or consumed state")
            raise NotFound("No pending authorization for the presented state")
        if pending.is_expired(self.clock()):
            logger.warning(f"Callback arrived after authorization {pending.id} expired")
            raise NotFound("No pending authorization for the presented state")

        try:
            grant = self.provider.exchange_code(code, pending.callback_url)
        except IdentityProviderError as e:
            logger.warning(f"Code exchange failed for authorization {pending.id}: {e}")
            raise ExchangeFailed(str(e)) from e

        try:
            display_name = self.provider.verify_identity(
                grant.access_token, verify_url or self.verify_url
            )
        except IdentityProviderError as e:
            logger.warning(f"Identity verification failed for authorization {pending.id}: {e}")
            raise VerificationFailed(str(e)) from e

        now = self.clock()
        credential = self.store.record_grant(
            principal_id=pending.principal_id,
            scopes=pending.scopes,
            display_name=display_name,
            access_token=grant.access_token,
            expires_at=now + timedelta(seconds=grant.expires_in),
            refresh_token=grant.refresh_token,
            existing_credential_id=pending.existing_credential_id,
        )
        self.store.touch_principal(pending.principal_id, now)
        logger.info(
            f"Authorization {pending.id} completed: credential {credential.id} "
            f"for principal {pending.principal_id}"
        )
        return credential.id

    def get_usable_access_token(self, credential_id: int, expiry_window: timedelta) -> str:
        """Return an access token valid for at least ``expiry_window``.

        Outside the renewal window the stored token is returned untouched.
        Inside it the token is refreshed. Any refresh failure clears the
        refresh token, including transport errors and timeouts that may
        have been transient, unless another refresh replaced it meanwhile.

        Raises:
            NotFound: no such credential.
            Invalidated: the refresh token was cleared by an earlier failure.
            RefreshRejected: the provider refused the refresh just now.
        """
        if expiry_window < timedelta(0):
            raise ValueError("Expiry window must not be negative")

        credential = self.store.get_credential(credential_id)
        if credential is None:
            raise NotFound(f"No credential with ID {credential_id}")

        now = self.clock()
        if not self._needs_refresh(credential, now, expiry_window):
            return credential.access_token

        if not credential.usable:
            raise Invalidated(f"Credential {credential_id} requires re-authentication")

        try:
            grant = self.provider.refresh(credential.refresh_token)
        except IdentityProviderError as e:
            if self.store.invalidate_credential(credential_id, credential.refresh_token):
                logger.warning(
                    f"Refresh failed for credential {credential_id}, refresh token cleared: {e}"
                )
            else:
                logger.warning(
                    f"Refresh failed for credential {credential_id}, kept the refresh token "
                    f"a concurrent refresh stored: {e}"
                )
            raise RefreshRejected(f"Failed to refresh credential {credential_id}") from e

        refreshed_at = self.clock()
        updated = self.store.apply_refresh(
            credential_id,
            access_token=grant.access_token,
            expires_at=refreshed_at + timedelta(seconds=grant.expires_in),
            refresh_token=grant.refresh_token,
        )
        logger.info(f"Refreshed access token for credential {credential_id}")
        return updated.access_token

    def list_credentials(self, principal_id: int) -> list[AccessCredential]:
        self._active_principal(principal_id)
        return self.store.list_credentials(principal_id)

    def delete_credential(self, principal_id: int, credential_id: int) -> None:
        if not self.store.delete_credential(principal_id, credential_id):
            raise NotFound(f"Principal {principal_id} has no credential {credential_id}")
        logger.info(f"Deleted credential {credential_id} of principal {principal_id}")

    def create_principal(self, is_admin: bool = False) -> Principal:
        return self.store.create_principal(is_admin=is_admin, now=self.clock())

    def _active_principal(self, principal_id: int) -> Principal:
        principal = self.store.get_principal(principal_id)
        if principal is None or not principal.is_active:
            raise NotFound(f"No active principal with ID {principal_id}")
        return principal

    @staticmethod
    def _needs_refresh(credential: AccessCredential, now, window: timedelta) -> bool:
        if credential.access_token_expires_at is None or not credential.access_token:
            return True
        return as_utc(credential.access_token_expires_at) - now < window
