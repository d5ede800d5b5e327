import os

os.environ["SQLALCHEMY_DATABASE_URI"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["SHOPIFY_API_KEY"] = "test-api-key"
os.environ["SHOPIFY_API_SECRET"] = "test-api-secret"
os.environ["SHOPIFY_SHOP_DOMAIN"] = ""
os.environ["SHOPIFY_ACCESS_TOKEN"] = ""
os.environ["SHOPIFY_LOCATION_ID"] = "1"
os.environ["REDIS_URL"] = ""

import threading

import pytest
from fastapi.testclient import TestClient

from app.api import deps
from app.core.security import create_access_token
from app.db.session import Base, SessionLocal, engine, get_db
from app.main import app
from app.models.attribute import ProductAttribute
from app.models.attribute_value import ProductAttributeValue
from app.models.product import Product
from app.models.product_attribute import ProductAttributeLink
from app.models.shop import ShopSession
from app.services.attributes import slugify

SHOP = "test-shop.myshopify.com"


class FakeShopifyClient:
    """Records calls instead of talking to Shopify."""

    def __init__(self):
        self.shop = SHOP
        self.created = []
        self.draft_orders = []
        self.products = []
        self.remote_variants = []
        self.fail_with = None
        self._next_id = 1000
        self._lock = threading.Lock()

    def create_variant(self, product_id, price, options, sku=None, inventory_quantity=0):
        with self._lock:
            self.created.append({
                "product_id": product_id,
                "price": price,
                "options": options,
                "sku": sku,
                "inventory_quantity": inventory_quantity,
            })
            if self.fail_with is not None:
                raise self.fail_with
            self._next_id += 1
            return {"id": f"gid://shopify/ProductVariant/{self._next_id}"}

    def create_draft_order(self, line_items, note=None):
        self.draft_orders.append(line_items)
        return {
            "id": "gid://shopify/DraftOrder/1",
            "name": "#D1",
            "invoiceUrl": f"https://{SHOP}/invoices/abc",
            "totalPrice": "0.00",
        }

    def get_product_variants(self, product_id):
        return {"product": {"id": product_id}, "variants": self.remote_variants}

    def list_products(self, limit=250):
        return self.products


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def shopify():
    return FakeShopifyClient()


@pytest.fixture
def client_for(shopify):
    return lambda shop: shopify


@pytest.fixture
def client(db, client_for):
    def override_get_db():
        try:
            yield db
        finally:
            db.rollback()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_client_factory] = lambda: client_for
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def shop_session(db):
    session = ShopSession(shop=SHOP, access_token="shpat_test", scopes="read_products")
    db.add(session)
    db.commit()
    return session


@pytest.fixture
def auth_headers(shop_session):
    token = create_access_token(data={"sub": SHOP})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def make_attribute(db):
    def _make(name, values, display_order=0, is_primary=False, shop=SHOP):
        attribute = ProductAttribute(
            shop_domain=shop,
            name=name,
            slug=slugify(name),
            display_order=display_order,
            is_primary=is_primary,
        )
        for position, value in enumerate(values):
            attribute.values.append(ProductAttributeValue(
                value=value,
                slug=slugify(value),
                display_order=position,
            ))
        db.add(attribute)
        db.commit()
        return attribute
    return _make


@pytest.fixture
def make_product(db):
    def _make(shopify_id="gid://shopify/Product/1", title="Signet Ring", attributes=(), shop=SHOP):
        product = Product(shop_domain=shop, shopify_product_id=shopify_id, title=title)
        for attribute in attributes:
            product.attribute_links.append(ProductAttributeLink(attribute_id=attribute.id))
        db.add(product)
        db.commit()
        return product
    return _make


@pytest.fixture
def size_color(make_attribute):
    size = make_attribute("Size", ["S", "M", "L"], display_order=0)
    color = make_attribute("Color", ["Red", "Blue"], display_order=1, is_primary=True)
    return size, color
