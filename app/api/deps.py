import json
import logging
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.core.cache import is_token_blacklisted
from app.core.security import get_token_payload, verify_webhook_hmac
from app.core.shopify_client import ShopifyClient, get_shopify_client
from app.db.session import get_db
from app.models.shop import ShopSession
from app.schemas.auth import TokenPayload
from app.schemas.webhook import WebhookDelivery

logger = logging.getLogger(__name__)

security = HTTPBearer()

async def get_current_shop(
    credentials: HTTPAuthorizationCredentials = Security(security),
    db: Session = Depends(get_db)
) -> ShopSession:
    """Resolve the bearer token to the installed shop it was issued for."""
    token = credentials.credentials
    try:
        token_data = TokenPayload(**get_token_payload(token))
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials"
        )
    if not token_data.sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials"
        )

    if is_token_blacklisted(token):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has been invalidated"
        )

    session = (
        db.query(ShopSession)
        .filter(ShopSession.shop == token_data.sub, ShopSession.is_active.is_(True))
        .first()
    )
    if not session:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Shop is not installed"
        )
    return session

def get_client_factory(db: Session = Depends(get_db)) -> Callable[[Optional[str]], ShopifyClient]:
    """Shopify client lookup bound to the request's session."""
    def client_for(shop: Optional[str]) -> ShopifyClient:
        return get_shopify_client(db, shop)
    return client_for

async def get_webhook_delivery(request: Request) -> WebhookDelivery:
    body = await request.body()
    if not verify_webhook_hmac(body, request.headers.get("X-Shopify-Hmac-Sha256")):
        logger.warning("rejected webhook with invalid signature from %s", request.headers.get("X-Shopify-Shop-Domain"))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    return WebhookDelivery(
        payload=payload,
        topic=request.headers.get("X-Shopify-Topic"),
        shop=request.headers.get("X-Shopify-Shop-Domain"),
        webhook_id=request.headers.get("X-Shopify-Webhook-Id"),
    )
