"""Credential routes for listing, using and removing stored tokens."""
from datetime import timedelta

from fastapi import APIRouter, Depends, Query, Response

from tokenkeeper.core.config import settings
from tokenkeeper.models import AccessCredentialRead
from tokenkeeper.routes.dependencies import get_manager
from tokenkeeper.services.token_manager import TokenLifecycleManager

router = APIRouter(prefix="/credentials", tags=["credentials"])


@router.get("", response_model=list[AccessCredentialRead])
def list_credentials(
    principal_id: int,
    manager: TokenLifecycleManager = Depends(get_manager),
):
    """List a principal's credentials without their token values."""
    return [
        AccessCredentialRead.from_credential(c)
        for c in manager.list_credentials(principal_id)
    ]


@router.post("/{credential_id}/token")
def usable_token(
    credential_id: int,
    window_seconds: int = Query(default=settings.default_refresh_window_seconds, ge=0),
    manager: TokenLifecycleManager = Depends(get_manager),
):
    """
    Return an access token valid for at least window_seconds.

    Refreshes the token first when it expires inside the window.
    """
    token = manager.get_usable_access_token(
        credential_id, timedelta(seconds=window_seconds)
    )
    return {"credential_id": credential_id, "access_token": token}


@router.delete("/{credential_id}", status_code=204)
def delete_credential(
    credential_id: int,
    principal_id: int,
    manager: TokenLifecycleManager = Depends(get_manager),
):
    """Remove a credential owned by principal_id."""
    manager.delete_credential(principal_id, credential_id)
    return Response(status_code=204)
