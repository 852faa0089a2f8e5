"""Persistence for principals, pending authorizations and credentials.

Every public method runs in its own transaction: a fresh session is opened,
the work is done, and the session commits once. Read-modify-write updates
on a credential lock the row first (``SELECT ... FOR UPDATE`` where the
backend supports it) so concurrent refreshes serialize instead of
interleaving.
"""
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from tokenkeeper.core.clock import utcnow
from tokenkeeper.core.errors import NotFound, OwnershipMismatch, StoreError
from tokenkeeper.models import (
    NO_EXISTING_CREDENTIAL,
    AccessCredential,
    PendingAuthorization,
    Principal,
)
from tokenkeeper.oauth.state import (
    derive_state_key,
    generate_seed,
    record_id_from_state,
    state_matches,
)

logger = logging.getLogger(__name__)


class CredentialStore:
    """Atomic single-operation access to the token tables."""

    def __init__(self, engine: Engine):
        self.engine = engine

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open a session, commit on success, roll back and wrap DB errors."""
        try:
            with Session(self.engine, expire_on_commit=False) as session:
                yield session
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Store transaction failed: {e}")
            raise StoreError(str(e)) from e

    # Principals

    def create_principal(self, is_admin: bool = False, now: datetime | None = None) -> Principal:
        now = now or utcnow()
        with self.transaction() as session:
            principal = Principal(created_at=now, last_seen_at=now, is_admin=is_admin)
            session.add(principal)
            session.flush()
            return principal

    def get_principal(self, principal_id: int) -> Principal | None:
        with self.transaction() as session:
            return session.get(Principal, principal_id)

    def touch_principal(self, principal_id: int, now: datetime | None = None) -> None:
        with self.transaction() as session:
            principal = session.get(Principal, principal_id)
            if principal is None:
                raise NotFound(f"No principal with ID {principal_id}")
            principal.last_seen_at = now or utcnow()
            session.add(principal)

    # Pending authorizations

    def create_pending(
        self,
        *,
        principal_id: int,
        scopes: str,
        callback_url: str,
        created_at: datetime,
        expires_at: datetime,
        existing_credential_id: int = NO_EXISTING_CREDENTIAL,
    ) -> PendingAuthorization:
        """Insert a pending authorization and derive its state key.

        The state key depends on the row ID, so the row is flushed first to
        obtain it. Both writes commit together.
        """
        with self.transaction() as session:
            pending = PendingAuthorization(
                principal_id=principal_id,
                scopes=scopes,
                callback_url=callback_url,
                created_at=created_at,
                expires_at=expires_at,
                random_seed=generate_seed(),
                existing_credential_id=existing_credential_id,
            )
            session.add(pending)
            session.flush()
            pending.state_key = derive_state_key(pending.id, pending.random_seed)
            session.add(pending)
            return pending

    def get_pending_by_state(self, state_key: str) -> PendingAuthorization | None:
        with self.transaction() as session:
            return self._pending_for_state(session, state_key)

    def consume_pending_by_state(self, state_key: str) -> PendingAuthorization | None:
        """Look up and delete a pending authorization in one transaction.

        Returns None when no live record carries ``state_key``, including
        when a concurrent callback deleted it first. At most one caller ever
        receives a given record.
        """
        with self.transaction() as session:
            pending = self._pending_for_state(session, state_key, lock=True)
            if pending is None:
                return None
            result = session.connection().execute(
                delete(PendingAuthorization.__table__).where(
                    PendingAuthorization.id == pending.id
                )
            )
            if result.rowcount != 1:
                return None
            return pending

    def list_expired_pending(self, cutoff: datetime) -> list[PendingAuthorization]:
        with self.transaction() as session:
            return list(
                session.exec(
                    select(PendingAuthorization).where(
                        PendingAuthorization.expires_at <= cutoff
                    )
                ).all()
            )

    def delete_expired_pending(self, cutoff: datetime) -> int:
        """Delete every pending authorization expiring at or before cutoff."""
        with self.transaction() as session:
            expired = session.exec(
                select(PendingAuthorization).where(
                    PendingAuthorization.expires_at <= cutoff
                )
            ).all()
            for pending in expired:
                session.delete(pending)
            return len(expired)

    # Access credentials

    def get_credential(self, credential_id: int) -> AccessCredential | None:
        with self.transaction() as session:
            return session.get(AccessCredential, credential_id)

    def list_credentials(self, principal_id: int) -> list[AccessCredential]:
        with self.transaction() as session:
            return list(
                session.exec(
                    select(AccessCredential)
                    .where(AccessCredential.principal_id == principal_id)
                    .order_by(AccessCredential.id)
                ).all()
            )

    def record_grant(
        self,
        *,
        principal_id: int,
        scopes: str,
        display_name: str,
        access_token: str,
        expires_at: datetime,
        refresh_token: str,
        existing_credential_id: int = NO_EXISTING_CREDENTIAL,
    ) -> AccessCredential:
        """Write a completed authorization into a new or existing credential.

        For a re-authentication the target credential is re-read under lock
        and must still belong to ``principal_id``.
        """
        with self.transaction() as session:
            if existing_credential_id != NO_EXISTING_CREDENTIAL:
                credential = self._locked_credential(session, existing_credential_id)
                if credential is None or credential.principal_id != principal_id:
                    raise OwnershipMismatch(
                        f"Credential {existing_credential_id} is not owned by "
                        f"principal {principal_id}"
                    )
            else:
                credential = AccessCredential(principal_id=principal_id, scopes=scopes)

            credential.scopes = scopes
            credential.display_name = display_name
            credential.access_token = access_token
            credential.access_token_expires_at = expires_at
            credential.refresh_token = refresh_token
            session.add(credential)
            session.flush()
            return credential

    def apply_refresh(
        self,
        credential_id: int,
        *,
        access_token: str,
        expires_at: datetime,
        refresh_token: str | None,
    ) -> AccessCredential:
        """Overwrite the token triple after a successful refresh.

        A ``refresh_token`` of None keeps the stored one; providers that do
        not rotate refresh tokens omit it from the response.
        """
        with self.transaction() as session:
            credential = self._locked_credential(session, credential_id)
            if credential is None:
                raise NotFound(f"No credential with ID {credential_id}")
            credential.access_token = access_token
            credential.access_token_expires_at = expires_at
            if refresh_token:
                credential.refresh_token = refresh_token
            session.add(credential)
            return credential

    def invalidate_credential(self, credential_id: int, failed_refresh_token: str) -> bool:
        """Clear the refresh token so the credential requires re-authentication.

        Only clears it while it still equals ``failed_refresh_token``. If a
        concurrent refresh already rotated the token, the newer one is kept
        and False is returned.
        """
        with self.transaction() as session:
            credential = self._locked_credential(session, credential_id)
            if credential is None:
                raise NotFound(f"No credential with ID {credential_id}")
            if credential.refresh_token != failed_refresh_token:
                return False
            credential.refresh_token = None
            session.add(credential)
            return True

    def delete_credential(self, principal_id: int, credential_id: int) -> bool:
        """Delete a credential if it belongs to ``principal_id``."""
        with self.transaction() as session:
            credential = session.get(AccessCredential, credential_id)
            if credential is None or credential.principal_id != principal_id:
                return False
            session.delete(credential)
            return True

    @staticmethod
    def _locked_credential(session: Session, credential_id: int) -> AccessCredential | None:
        return session.exec(
            select(AccessCredential)
            .where(AccessCredential.id == credential_id)
            .with_for_update()
        ).first()

    @staticmethod
    def _pending_for_state(
        session: Session, state_key: str, lock: bool = False
    ) -> PendingAuthorization | None:
        record_id = record_id_from_state(state_key)
        if record_id is None:
            return None
        statement = select(PendingAuthorization).where(PendingAuthorization.id == record_id)
        if lock:
            statement = statement.with_for_update()
        pending = session.exec(statement).first()
        if pending is None or not state_matches(pending.state_key, state_key):
            return None
        return pending
