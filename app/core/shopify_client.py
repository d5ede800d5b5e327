import logging
from typing import Any, Dict, List, Optional

import requests
from sqlalchemy.orm import Session
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from app.core.config import settings
from app.core.errors import PlatformTransportError, PlatformUserError
from app.models.shop import ShopSession

logger = logging.getLogger(__name__)

VARIANT_CREATE = """
mutation productVariantCreate($input: ProductVariantInput!) {
  productVariantCreate(input: $input) {
    productVariant { id title price sku }
    userErrors { field message }
  }
}
"""

DRAFT_ORDER_CREATE = """
mutation draftOrderCreate($input: DraftOrderInput!) {
  draftOrderCreate(input: $input) {
    draftOrder { id name invoiceUrl totalPrice }
    userErrors { field message }
  }
}
"""

PRODUCT_VARIANTS_QUERY = """
query productVariants($id: ID!) {
  product(id: $id) {
    id
    title
    options { id name values }
    variants(first: 100) {
      edges { node { id title price sku inventoryQuantity selectedOptions { name value } } }
    }
  }
}
"""

LOCATIONS_QUERY = """
query {
  locations(first: 1) { edges { node { id name } } }
}
"""

PRODUCTS_QUERY = """
query products($first: Int!, $after: String) {
  products(first: $first, after: $after) {
    pageInfo { hasNextPage endCursor }
    edges { node { id handle title description status featuredImage { url } } }
  }
}
"""


def to_gid(kind: str, value: Any) -> str:
    """Return a Shopify global id, leaving values that already are one untouched."""
    value = str(value)
    if value.startswith("gid://"):
        return value
    return f"gid://shopify/{kind}/{value}"


def numeric_id(gid: Any) -> int:
    return int(str(gid).rsplit("/", 1)[-1])


def normalize_shop_domain(value: Optional[str]) -> str:
    v = (value or "").strip().lower()
    for prefix in ("https://", "http://"):
        if v.startswith(prefix):
            v = v[len(prefix):]
    return v.strip("/ ")


def _user_errors(payload: Optional[Dict[str, Any]]) -> List[str]:
    errors = (payload or {}).get("userErrors") or []
    return [e.get("message", str(e)) for e in errors]


def _is_transient(exc: BaseException) -> bool:
    """Connection failures, timeouts, throttling and 5xx are worth another attempt."""
    if isinstance(exc, (requests.exceptions.ConnectionError, requests.exceptions.Timeout)):
        return True
    if isinstance(exc, requests.exceptions.HTTPError) and exc.response is not None:
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class ShopifyClient:
    """Admin API client for one shop."""

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.shop = normalize_shop_domain(shop)
        self.access_token = access_token
        self.api_version = api_version or settings.SHOPIFY_API_VERSION
        self.timeout = timeout or settings.SHOPIFY_TIMEOUT
        self.base_url = f"https://{self.shop}/admin/api/{self.api_version}"
        self._location_id: Optional[str] = settings.SHOPIFY_LOCATION_ID

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self.access_token,
        }

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, max=8),
        retry=retry_if_exception(_is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        r = requests.request(method, url, headers=self.headers, timeout=self.timeout, **kwargs)
        r.raise_for_status()
        return r.json() if r.content else {}

    def graphql(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            j = self._request(
                "POST",
                f"{self.base_url}/graphql.json",
                json={"query": query, "variables": variables or {}},
            )
        except requests.exceptions.RequestException as e:
            logger.error("Shopify GraphQL request to %s failed: %s", self.shop, e)
            raise PlatformTransportError(f"Shopify request failed: {e}", shop=self.shop)
        if j.get("errors"):
            messages = [err.get("message", str(err)) for err in j["errors"]]
            raise PlatformUserError("Shopify GraphQL errors", messages=messages)
        return j.get("data") or {}

    def rest(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """Minimal REST helper for endpoints not covered by GraphQL."""
        try:
            return self._request(method, f"{self.base_url}/{path.lstrip('/')}", **kwargs)
        except requests.exceptions.RequestException as e:
            logger.error("Shopify REST %s %s failed: %s", method, path, e)
            raise PlatformTransportError(f"Shopify request failed: {e}", shop=self.shop)

    def get_primary_location_id(self) -> Optional[str]:
        if self._location_id:
            return to_gid("Location", self._location_id)
        data = self.graphql(LOCATIONS_QUERY)
        edges = ((data.get("locations") or {}).get("edges")) or []
        if edges:
            self._location_id = edges[0]["node"]["id"]
        return self._location_id

    def create_variant(
        self,
        product_id: str,
        price: float,
        options: List[str],
        sku: Optional[str] = None,
        inventory_quantity: int = 0,
    ) -> Dict[str, Any]:
        """Create a product variant and return the created node (``id`` is its GID)."""
        variant_input: Dict[str, Any] = {
            "productId": to_gid("Product", product_id),
            "price": f"{float(price or 0):.2f}",
            "options": options,
            "inventoryPolicy": "DENY",
        }
        if sku:
            variant_input["sku"] = sku
        location_id = self.get_primary_location_id()
        if location_id:
            variant_input["inventoryQuantities"] = [
                {"availableQuantity": int(inventory_quantity or 0), "locationId": location_id}
            ]

        data = self.graphql(VARIANT_CREATE, {"input": variant_input})
        payload = data.get("productVariantCreate") or {}
        messages = _user_errors(payload)
        if messages:
            raise PlatformUserError("Shopify rejected variant creation", messages=messages)
        variant = payload.get("productVariant")
        if not variant or not variant.get("id"):
            raise PlatformUserError("Shopify returned no variant", messages=[])
        return variant

    def create_draft_order(self, line_items: List[Dict[str, Any]], note: Optional[str] = None) -> Dict[str, Any]:
        draft_input: Dict[str, Any] = {"lineItems": line_items}
        if note:
            draft_input["note"] = note
        data = self.graphql(DRAFT_ORDER_CREATE, {"input": draft_input})
        payload = data.get("draftOrderCreate") or {}
        messages = _user_errors(payload)
        if messages:
            raise PlatformUserError("Shopify rejected draft order", messages=messages)
        return payload.get("draftOrder") or {}

    def get_product_variants(self, product_id: str) -> Dict[str, Any]:
        data = self.graphql(PRODUCT_VARIANTS_QUERY, {"id": to_gid("Product", product_id)})
        product = data.get("product")
        if not product:
            return {"product": None, "variants": []}
        variants = [edge["node"] for edge in (product.get("variants") or {}).get("edges", [])]
        return {"product": product, "variants": variants}

    def list_products(self, limit: int = 250) -> List[Dict[str, Any]]:
        products: List[Dict[str, Any]] = []
        after = None
        while len(products) < limit:
            data = self.graphql(PRODUCTS_QUERY, {"first": min(50, limit - len(products)), "after": after})
            page = data.get("products") or {}
            products.extend(edge["node"] for edge in page.get("edges", []))
            info = page.get("pageInfo") or {}
            if not info.get("hasNextPage"):
                break
            after = info.get("endCursor")
        return products


def exchange_code_for_token(shop: str, code: str) -> Dict[str, Any]:
    """Swap an OAuth authorization code for an offline access token."""
    shop = normalize_shop_domain(shop)
    try:
        r = requests.post(
            f"https://{shop}/admin/oauth/access_token",
            json={
                "client_id": settings.SHOPIFY_API_KEY,
                "client_secret": settings.SHOPIFY_API_SECRET,
                "code": code,
            },
            timeout=settings.SHOPIFY_TIMEOUT,
        )
        r.raise_for_status()
    except requests.exceptions.RequestException as e:
        logger.error("OAuth token exchange for %s failed: %s", shop, e)
        raise PlatformTransportError(f"Token exchange failed: {e}", shop=shop)
    return r.json()


def get_shopify_client(db: Session, shop_domain: Optional[str]) -> ShopifyClient:
    """Build a client from the stored OAuth session, or the custom-app credentials."""
    shop = normalize_shop_domain(shop_domain)
    if shop:
        session = (
            db.query(ShopSession)
            .filter(ShopSession.shop == shop, ShopSession.is_active.is_(True))
            .first()
        )
        if session:
            return ShopifyClient(session.shop, session.access_token)

    fallback_shop = normalize_shop_domain(settings.SHOPIFY_SHOP_DOMAIN)
    if settings.SHOPIFY_ACCESS_TOKEN and fallback_shop and (not shop or shop == fallback_shop):
        return ShopifyClient(fallback_shop, settings.SHOPIFY_ACCESS_TOKEN)

    raise PlatformTransportError("No Shopify credentials available", shop=shop or None)
