import base64
import hashlib
import hmac
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Mapping, Optional

from jose import JWTError, jwt

from app.core.config import settings

SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9\-]*\.myshopify\.com$")


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def get_token_payload(token: str) -> Dict[str, Any]:
    """Decode a token issued by this app; raises JWTError when invalid or expired."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def create_oauth_state(shop: str) -> str:
    return create_access_token(
        {"shop": shop, "purpose": "oauth"},
        expires_delta=timedelta(minutes=settings.OAUTH_STATE_EXPIRE_MINUTES),
    )


def verify_oauth_state(state: str, shop: str) -> bool:
    try:
        payload = get_token_payload(state)
    except JWTError:
        return False
    return payload.get("purpose") == "oauth" and payload.get("shop") == shop


def is_valid_shop_domain(shop: str) -> bool:
    return bool(shop) and SHOP_DOMAIN_RE.match(shop) is not None


def verify_oauth_hmac(query: Mapping[str, str], secret: Optional[str] = None) -> bool:
    """Check the hex HMAC Shopify appends to OAuth redirects."""
    secret = secret or settings.SHOPIFY_API_SECRET
    params = {k: v for k, v in query.items() if k not in ("hmac", "signature")}
    message = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
    digest = hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest, query.get("hmac", ""))


def verify_webhook_hmac(body: bytes, header_hmac: Optional[str], secret: Optional[str] = None) -> bool:
    """Check the base64 HMAC of a webhook body (X-Shopify-Hmac-Sha256)."""
    if not header_hmac:
        return False
    secret = secret or settings.SHOPIFY_API_SECRET
    digest = hmac.new(secret.encode(), body, hashlib.sha256).digest()
    return hmac.compare_digest(base64.b64encode(digest).decode(), header_hmac)
