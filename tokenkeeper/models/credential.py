"""Access credential model for long-lived provider tokens.

An AccessCredential keeps the current access/refresh token pair for one
principal and scope set. Its ID is stable: refreshes and
re-authentications rewrite the token columns in place.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from tokenkeeper.models.principal import Principal


class AccessCredential(SQLModel, table=True):
    """Stored OAuth2 tokens for one principal.

    Attributes:
        id: Unique numeric identifier assigned by the database.
        principal_id: Owning principal.
        scopes: Space-delimited scopes granted at the last authorization.
        display_name: Name the provider reported for the authenticated
            principal.
        access_token: Short-lived token for API requests.
        access_token_expires_at: When the access token expires.
        refresh_token: Token used to obtain new access tokens. None once a
            refresh has been rejected; only a new authorization restores it.
        principal: Reference to the owning Principal.
    """
    id: int | None = Field(default=None, primary_key=True)
    principal_id: int = Field(foreign_key="principal.id", index=True)
    scopes: str
    display_name: str | None = None
    access_token: str | None = None
    access_token_expires_at: datetime | None = None
    refresh_token: str | None = None

    principal: Optional["Principal"] = Relationship(back_populates="credentials")

    @property
    def usable(self) -> bool:
        """True while a refresh token is held."""
        return bool(self.refresh_token)


class AccessCredentialRead(SQLModel):
    """Public view of a credential. Token values are never exposed."""
    id: int
    principal_id: int
    scopes: str
    display_name: str | None
    access_token_expires_at: datetime | None
    usable: bool

    @classmethod
    def from_credential(cls, credential: AccessCredential) -> "AccessCredentialRead":
        return cls(
            id=credential.id,
            principal_id=credential.principal_id,
            scopes=credential.scopes,
            display_name=credential.display_name,
            access_token_expires_at=credential.access_token_expires_at,
            usable=credential.usable,
        )
