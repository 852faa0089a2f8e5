"""Correlation token ("state") derivation.

A state key has the form ``<record id>.<digest>`` where the digest is
SHA-256 over the pending record's ID and a 32-byte seed from the OS CSPRNG.
The ID makes it unique and lets the callback find the record by primary
key; the seed makes the digest unguessable. The digest is then checked in
constant time, so lookup never compares secret material in SQL.
"""
import hashlib
import hmac
import secrets

SEED_BYTES = 32


def generate_seed() -> str:
    """Return a fresh random seed, hex encoded for storage."""
    return secrets.token_bytes(SEED_BYTES).hex()


def derive_state_key(record_id: int, seed: str) -> str:
    """Hash the record ID and seed into the correlation token."""
    digest = hashlib.sha256()
    digest.update(record_id.to_bytes(8, "big", signed=True))
    digest.update(bytes.fromhex(seed))
    return f"{record_id}.{digest.hexdigest()}"


def record_id_from_state(state_key: str) -> int | None:
    """Extract the pending record ID, or None for a malformed state."""
    record_id, sep, digest = state_key.partition(".")
    if not sep or not digest or len(record_id) > 18:
        return None
    if not (record_id.isascii() and record_id.isdigit()):
        return None
    return int(record_id)


def state_matches(expected: str | None, presented: str) -> bool:
    """Constant-time comparison of a stored and a presented state key."""
    if not expected or not presented:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), presented.encode("utf-8"))
