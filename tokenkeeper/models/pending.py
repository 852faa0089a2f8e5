"""Pending authorization model for in-flight OAuth redirects.

A PendingAuthorization exists only between the moment a principal is sent
to the identity provider and the moment the provider calls back (or the
reaper decides the attempt was abandoned). The ``state_key`` column is the
correlation token the provider echoes back in the callback.
"""

from datetime import datetime

from sqlmodel import Field, SQLModel

from tokenkeeper.core.clock import as_utc

# Sentinel for "this authorization creates a new credential"
NO_EXISTING_CREDENTIAL = -1


class PendingAuthorization(SQLModel, table=True):
    """An authorization request waiting for its provider callback.

    Attributes:
        id: Unique numeric identifier assigned by the database.
        principal_id: Principal that started the authorization.
        created_at: When the authorization was started.
        expires_at: created_at plus the configured pending lifetime.
        scopes: Space-delimited scopes requested from the provider.
        random_seed: Secret seed mixed into the state key. Never leaves
            the store.
        state_key: Correlation token sent to and echoed by the provider.
            Unset only inside the transaction that creates the row.
        existing_credential_id: Credential to update on completion, or
            NO_EXISTING_CREDENTIAL for a fresh grant.
        callback_url: redirect_uri sent with the authorization request.
            The code exchange must present the same value.
    """
    id: int | None = Field(default=None, primary_key=True)
    principal_id: int = Field(foreign_key="principal.id", index=True)
    created_at: datetime
    expires_at: datetime = Field(index=True)
    scopes: str
    random_seed: str
    state_key: str | None = Field(default=None, unique=True, index=True)
    existing_credential_id: int = Field(default=NO_EXISTING_CREDENTIAL)
    callback_url: str

    @property
    def is_reauthentication(self) -> bool:
        return self.existing_credential_id != NO_EXISTING_CREDENTIAL

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) <= now
