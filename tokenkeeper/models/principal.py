"""Principal model for the external accounts tokens are issued to.

The principal directory itself is owned by the wider platform. This table
holds the minimum the token lifecycle needs: an identity to hang
credentials off and an active flag to refuse new authorizations.
"""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlmodel import Field, Relationship, SQLModel

from tokenkeeper.core.clock import utcnow

if TYPE_CHECKING:
    from tokenkeeper.models.credential import AccessCredential


class Principal(SQLModel, table=True):
    """An external user account on whose behalf tokens are issued.

    Attributes:
        id: Unique numeric identifier assigned by the database.
        created_at: When the account was created.
        last_seen_at: Last time the account completed an authorization.
        is_admin: Whether the account has administrative privileges.
        is_active: Inactive accounts cannot start new authorizations.
        credentials: Access credentials owned by this account.
    """
    id: int | None = Field(default=None, primary_key=True)
    created_at: datetime = Field(default_factory=utcnow)
    last_seen_at: datetime = Field(default_factory=utcnow)
    is_admin: bool = Field(default=False)
    is_active: bool = Field(default=True)

    credentials: list["AccessCredential"] = Relationship(back_populates="principal")
