"""OAuth authorization routes."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from issue_calendar.calendar.tokens import TokenManager, build_authorization_url
from issue_calendar.core.config import settings
from issue_calendar.core.dependencies import get_token_manager, to_http_exception
from issue_calendar.core.errors import SyncError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


class TokenRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: str
    code: str
    redirect_uri: str | None = None


@router.get("/oauth/url")
async def oauth_url():
    """Return the Google consent URL the user opens to grant access."""
    try:
        return {"authUrl": build_authorization_url(settings.google_client_id)}
    except SyncError as e:
        raise to_http_exception(e)


@router.post("/oauth/token")
def oauth_token(request: TokenRequest, tokens: TokenManager = Depends(get_token_manager)):
    """
    Exchange an authorization code and store the user's tokens.

    Provider error descriptions are returned as-is so the user sees why
    Google rejected the code.
    """
    if not request.code:
        raise HTTPException(status_code=400, detail="Authorization code is required")

    try:
        tokens.authorize(request.user_id, request.code, request.redirect_uri)
    except SyncError as e:
        raise to_http_exception(e)
    return {"success": True}


@router.get("/auth/status/{user_id}")
def auth_status(user_id: str, tokens: TokenManager = Depends(get_token_manager)):
    """Report whether the user is authorized and how long the access token lasts."""
    return tokens.status(user_id)


@router.post("/auth/refresh/{user_id}")
def refresh_token(user_id: str, tokens: TokenManager = Depends(get_token_manager)):
    """Force an access token refresh."""
    try:
        tokens.refresh(user_id)
    except SyncError as e:
        logger.error(f"Manual token refresh failed for {user_id}: {e}")
        raise to_http_exception(e)
    return {"success": True, "status": tokens.status(user_id)}


@router.post("/auth/logout/{user_id}")
def logout(user_id: str, tokens: TokenManager = Depends(get_token_manager)):
    """Forget all OAuth tokens for the user."""
    tokens.deauthorize(user_id)
    return {"success": True}
