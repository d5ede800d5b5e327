import logging
import time
from urllib.parse import urlencode
from fastapi import APIRouter, Depends, HTTPException, Request, Security, status
from fastapi.responses import RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials
from jose import JWTError
from sqlalchemy.orm import Session

from app.api import deps
from app.core.cache import blacklist_token
from app.core.config import settings
from app.core.security import (
    create_access_token,
    create_oauth_state,
    get_token_payload,
    is_valid_shop_domain,
    verify_oauth_hmac,
    verify_oauth_state,
)
from app.core.shopify_client import exchange_code_for_token, normalize_shop_domain
from app.db.session import get_db
from app.models.shop import ShopSession
from app.schemas.auth import Token

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("/install")
def install(shop: str):
    """
    Start the OAuth flow by redirecting the merchant to Shopify's consent screen.
    """
    shop = normalize_shop_domain(shop)
    if not is_valid_shop_domain(shop):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid shop domain")
    query = urlencode({
        "client_id": settings.SHOPIFY_API_KEY,
        "scope": settings.SHOPIFY_SCOPES,
        "redirect_uri": f"{settings.APP_URL.rstrip('/')}{settings.API_V1_STR}/auth/callback",
        "state": create_oauth_state(shop),
    })
    return RedirectResponse(f"https://{shop}/admin/oauth/authorize?{query}")

@router.get("/callback", response_model=Token)
def callback(request: Request, db: Session = Depends(get_db)):
    """
    Finish OAuth: verify the redirect, store the shop's offline token and
    issue an API token for the merchant app.
    """
    params = dict(request.query_params)
    shop = normalize_shop_domain(params.get("shop"))
    code = params.get("code")
    state = params.get("state")
    if not shop or not code or not state or not params.get("hmac"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="shop, code, state and hmac are required")
    if not is_valid_shop_domain(shop):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid shop domain")
    if not verify_oauth_state(state, shop):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid state parameter")
    if not verify_oauth_hmac(params):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="HMAC verification failed")

    grant = exchange_code_for_token(shop, code)
    access_token = grant.get("access_token")
    if not access_token:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Shopify returned no access token")

    session = db.query(ShopSession).filter(ShopSession.shop == shop).first()
    if session is None:
        session = ShopSession(shop=shop)
        db.add(session)
    session.access_token = access_token
    session.scopes = grant.get("scope") or params.get("scope") or settings.SHOPIFY_SCOPES
    session.is_active = True
    session.uninstalled_at = None
    db.commit()
    logger.info("shop %s installed", shop)

    return {
        "access_token": create_access_token(data={"sub": shop}),
        "token_type": "bearer",
        "shop": shop,
    }

@router.post("/logout")
async def logout(credentials: HTTPAuthorizationCredentials = Security(deps.security)) -> dict:
    """
    Invalidate the current token until it would have expired.
    """
    token = credentials.credentials
    try:
        payload = get_token_payload(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate token",
        )
    ttl = max(int(payload.get("exp", 0)) - int(time.time()), 0)
    blacklist_token(token, ttl)
    return {"message": "Successfully logged out"}
