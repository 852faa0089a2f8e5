"""Authorization routes: start the provider redirect and handle its callback."""
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from tokenkeeper.models import NO_EXISTING_CREDENTIAL
from tokenkeeper.routes.dependencies import get_manager
from tokenkeeper.services.token_manager import TokenLifecycleManager

router = APIRouter(prefix="/auth", tags=["auth"])


def wants_json(request: Request) -> bool:
    """Check if the client prefers a JSON response over a redirect."""
    accept = request.headers.get("accept", "")
    return "application/json" in accept


@router.get("/authorize")
def authorize(
    request: Request,
    principal_id: int,
    scopes: str,
    existing_credential_id: int = NO_EXISTING_CREDENTIAL,
    manager: TokenLifecycleManager = Depends(get_manager),
):
    """
    Start an authorization for a principal.

    Redirects the browser to the identity provider's consent page. Clients
    sending Accept: application/json receive the URL as JSON instead.
    Pass existing_credential_id to re-authenticate a credential the
    principal already owns.
    """
    url = manager.begin_authorization(
        principal_id, scopes, existing_credential_id=existing_credential_id
    )
    if wants_json(request):
        return {"authorization_url": url}
    return RedirectResponse(url, status_code=307)


@router.get("/callback")
def callback(
    state: str = Query(...),
    code: str = Query(...),
    manager: TokenLifecycleManager = Depends(get_manager),
):
    """
    Provider callback.

    Consumes the pending authorization named by state, exchanges the code
    and stores the resulting tokens. A state can only be used once.
    """
    credential_id = manager.complete_authorization(state, code)
    return {"status": "connected", "credential_id": credential_id}
