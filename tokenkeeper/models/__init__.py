from tokenkeeper.models.credential import AccessCredential, AccessCredentialRead
from tokenkeeper.models.pending import NO_EXISTING_CREDENTIAL, PendingAuthorization
from tokenkeeper.models.principal import Principal

__all__ = [
    "AccessCredential",
    "AccessCredentialRead",
    "NO_EXISTING_CREDENTIAL",
    "PendingAuthorization",
    "Principal",
]
